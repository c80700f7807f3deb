import uuid
from sqlalchemy import Column, DateTime, String, Uuid
from sqlalchemy.sql import func
from mealmind.core.database import Base


class User(Base):
    """
    User model representing registered accounts.

    Passwords are stored as argon2 hashes, never plaintext.
    """
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    # Stored trimmed and lowercased; uniqueness is enforced here, not in the handler
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
