"""
Repositories over the database tables.
"""

from typing import List, Optional

from sqlalchemy.orm import Session as DBSession

from server.db import AllowedUser, User, UserSecret


def _normalize(email: str) -> str:
    return email.strip().lower()


class CredentialStore:
    """Encrypted per-user API keys. Plaintext never reaches this layer."""

    def __init__(self, db: DBSession):
        self.db = db

    def get_encrypted_key(self, user_id: str) -> Optional[str]:
        secret = self.db.get(UserSecret, user_id)
        return secret.encrypted_api_key if secret else None

    def save_encrypted_key(self, user_id: str, ciphertext: str) -> None:
        secret = self.db.get(UserSecret, user_id)
        if secret is None:
            secret = UserSecret(user_id=user_id, encrypted_api_key=ciphertext)
            self.db.add(secret)
        else:
            secret.encrypted_api_key = ciphertext
        self.db.commit()

    def has_key(self, user_id: str) -> bool:
        return self.get_encrypted_key(user_id) is not None


class AllowListStore:
    """Emails allowed to register, managed by admins."""

    def __init__(self, db: DBSession):
        self.db = db

    def list(self) -> List[AllowedUser]:
        return self.db.query(AllowedUser).order_by(AllowedUser.created_at).all()

    def contains(self, email: str) -> bool:
        return self.db.get(AllowedUser, _normalize(email)) is not None

    def add(self, email: str, added_by: Optional[str] = None) -> AllowedUser:
        email = _normalize(email)
        entry = self.db.get(AllowedUser, email)
        if entry is None:
            entry = AllowedUser(email=email, added_by=added_by)
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
        return entry

    def remove(self, email: str) -> bool:
        entry = self.db.get(AllowedUser, _normalize(email))
        if entry is None:
            return False
        self.db.delete(entry)
        self.db.commit()
        return True


class UserStore:
    """Registered users."""

    def __init__(self, db: DBSession):
        self.db = db

    def register(self, user_id: str, email: Optional[str]) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            user = User(id=user_id, email=email)
            self.db.add(user)
        else:
            user.email = email
        self.db.commit()
        self.db.refresh(user)
        return user
