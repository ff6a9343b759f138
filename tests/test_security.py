"""
Tests for credential encryption and the access policy.
"""

import base64

import pytest

from pdfdeck.errors import AccessDeniedError, ConfigurationRequiredError, CredentialError
from pdfdeck.security import AccessPolicy, Session, decrypt, encrypt
from pdfdeck.security.credentials import NONCE_BYTES, SALT_BYTES, SECRET_ENV_VAR

SECRET = "server-secret-for-tests"


# --- Credentials ---


def test_round_trip():
    ciphertext = encrypt("AIza-test-key", SECRET)

    assert decrypt(ciphertext, SECRET) == "AIza-test-key"


def test_ciphertexts_differ():
    """Same plaintext, fresh salt and nonce every time."""
    first = encrypt("AIza-test-key", SECRET)
    second = encrypt("AIza-test-key", SECRET)

    assert first != second
    assert decrypt(first, SECRET) == decrypt(second, SECRET)


def test_ciphertext_layout():
    """salt || nonce || ciphertext+tag, base64 encoded."""
    raw = base64.b64decode(encrypt("abc", SECRET))

    # 3 bytes of plaintext plus a 16-byte GCM tag
    assert len(raw) == SALT_BYTES + NONCE_BYTES + 3 + 16


def test_wrong_secret():
    ciphertext = encrypt("AIza-test-key", SECRET)

    with pytest.raises(CredentialError):
        decrypt(ciphertext, "another-secret")


def test_tampered_ciphertext():
    """Test a flipped byte fails authentication."""
    raw = bytearray(base64.b64decode(encrypt("AIza-test-key", SECRET)))
    raw[-1] ^= 0x01
    tampered = base64.b64encode(bytes(raw)).decode("ascii")

    with pytest.raises(CredentialError):
        decrypt(tampered, SECRET)


@pytest.mark.parametrize("ciphertext", ["not base64!!", base64.b64encode(b"short").decode("ascii")])
def test_malformed_ciphertext(ciphertext):
    with pytest.raises(CredentialError):
        decrypt(ciphertext, SECRET)


def test_secret_from_environment(monkeypatch):
    monkeypatch.setenv(SECRET_ENV_VAR, SECRET)

    assert decrypt(encrypt("from-env")) == "from-env"


def test_missing_secret(monkeypatch):
    monkeypatch.delenv(SECRET_ENV_VAR, raising=False)

    with pytest.raises(ConfigurationRequiredError):
        encrypt("AIza-test-key")


# --- Access policy ---


def test_admin_from_env(monkeypatch):
    """Test ADMIN_EMAIL is a comma-separated, case-insensitive list."""
    monkeypatch.setenv("ADMIN_EMAIL", "Boss@Example.com, second@example.com")
    policy = AccessPolicy.from_env()

    assert policy.is_admin(Session(user_id="u1", email="boss@example.com"))
    assert policy.is_admin(Session(user_id="u2", email="SECOND@example.com"))
    assert not policy.is_admin(Session(user_id="u3", email="someone@example.com"))
    assert not policy.is_admin(None)


def test_can_register():
    """Admins and allow-listed emails only."""
    allowed = {"friend@example.com"}
    policy = AccessPolicy(admin_emails=["admin@example.com"], is_allowed=allowed.__contains__)

    assert policy.can_register("admin@example.com")
    assert policy.can_register("Friend@Example.com")
    assert not policy.can_register("stranger@example.com")
    assert not policy.can_register("")
    assert not policy.can_register(None)


def test_allow_list_is_checked_every_time():
    """Test removals take effect immediately."""
    allowed = {"friend@example.com"}
    policy = AccessPolicy(is_allowed=allowed.__contains__)

    assert policy.can_register("friend@example.com")
    allowed.discard("friend@example.com")
    assert not policy.can_register("friend@example.com")


def test_require_session():
    policy = AccessPolicy()

    with pytest.raises(AccessDeniedError) as exc_info:
        policy.require_session(None)
    assert exc_info.value.status_code == 401

    session = Session(user_id="u1")
    assert policy.require_session(session) is session


def test_require_admin():
    policy = AccessPolicy(admin_emails=["admin@example.com"])

    with pytest.raises(AccessDeniedError) as exc_info:
        policy.require_admin(Session(user_id="u1", email="user@example.com"))
    assert exc_info.value.status_code == 403

    with pytest.raises(AccessDeniedError) as exc_info:
        policy.require_admin(None)
    assert exc_info.value.status_code == 401

    admin = Session(user_id="u2", email="admin@example.com")
    assert policy.require_admin(admin) is admin
