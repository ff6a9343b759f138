"""
Database models and setup.

Only per-user data lives here: encrypted API keys, the registration
allow-list and registered users. Conversion jobs are held in memory.
"""

import os
from datetime import datetime

from sqlalchemy import create_engine, Column, String, DateTime
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class UserSecret(Base):
    """A user's model API key, encrypted at rest."""
    __tablename__ = "user_secrets"

    user_id = Column(String, primary_key=True)
    encrypted_api_key = Column(String, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AllowedUser(Base):
    """An email address allowed to register."""
    __tablename__ = "allowed_users"

    email = Column(String, primary_key=True)
    added_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class User(Base):
    """A registered user."""
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


# Database connection
DATABASE_URL = os.getenv("PDFDECK_DATABASE_URL", "sqlite:///server/pdfdeck.db")
engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Initialize database."""
    Base.metadata.create_all(bind=engine)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
