"""
User Repository - data access for accounts
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from mealmind.core.exceptions import ConflictError, PersistenceError
from mealmind.models.user import User

logger = logging.getLogger(__name__)

EMAIL_TAKEN_MESSAGE = "email already registered"


class UserRepository:
    """Repository for user data access"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: UUID) -> Optional[User]:
        try:
            return self.db.get(User, user_id)
        except SQLAlchemyError as e:
            logger.error("get user %s failed: %s", user_id, e)
            raise PersistenceError() from e

    def find_by_email(self, email: str) -> Optional[User]:
        """Look up a user by already-normalized email"""
        try:
            return self.db.query(User).filter(User.email == email).first()
        except SQLAlchemyError as e:
            logger.error("find_by_email failed: %s", e)
            raise PersistenceError() from e

    def create(self, email: str, password_hash: str) -> User:
        """
        Insert a user.

        A unique-constraint violation (two registrations racing past the
        pre-check) raises ConflictError; any other database failure raises
        PersistenceError.
        """
        user = User(email=email, password_hash=password_hash)
        try:
            self.db.add(user)
            self.db.commit()
        except IntegrityError as e:
            # Only the unique email index can fail here
            self.db.rollback()
            logger.warning("duplicate email on insert")
            raise ConflictError(EMAIL_TAKEN_MESSAGE) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("create user failed: %s", e)
            raise PersistenceError() from e
        # Loads server-side defaults such as created_at
        self.db.refresh(user)
        return user
