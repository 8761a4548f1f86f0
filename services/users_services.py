from models.users_models import User
from sqlalchemy.orm import Session
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


class UserService:
    """Identity record store for verified targets"""

    def __init__(self, db: Session):
        self.db = db

    # ==================== USER METHODS ====================

    def get_user_by_email(self, email: str):
        return self.db.query(User).filter(User.email == email).first()

    def get_user_by_phone_number(self, phone_number: str):
        return self.db.query(User).filter(User.phone == phone_number).first()

    def upsert_verified_identity(self, target: str) -> UUID:
        """
        Create or update the identity record for a verified target.

        Runs inside the caller's transaction: the caller commits together
        with the challenge transition, so nothing is committed here.
        """
        is_phone = target.startswith("+")
        if is_phone:
            user = self.get_user_by_phone_number(target)
        else:
            user = self.get_user_by_email(target)

        if user is None:
            user = User(email=None if is_phone else target, phone=target if is_phone else None)
            self.db.add(user)
            logger.info("Creating identity record for %s", target)

        user.mark_verified("phone" if is_phone else "email")
        self.db.flush()
        return user.id
