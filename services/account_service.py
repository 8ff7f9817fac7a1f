# services/account_service.py
import logging
import re

from services.errors import AlreadyRegisteredError, ValidationError
from services.models import User

logger = logging.getLogger(__name__)

USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")


class AccountService:
    def __init__(self, ledger):
        self.ledger = ledger

    # -----------------------------------
    # 회원 등록
    # -----------------------------------
    def register_user(self, user_id: str) -> User:
        if not user_id or not USER_ID_PATTERN.match(user_id):
            raise ValidationError("User ID must be 1-64 letters, digits, '_' or '-'.")

        logger.info("Registering user with ID %s.", user_id)
        with self.ledger.transaction() as tx:
            if tx.users.get_user(user_id) is not None:
                raise AlreadyRegisteredError(f"User with ID {user_id} is already registered.")
            user = tx.users.create_user(user_id)

        logger.info("Registered user with ID %s.", user_id)
        return user

    # -----------------------------------
    # 사용자 조회
    # -----------------------------------
    def get_user(self, user_id: str) -> User | None:
        with self.ledger.transaction() as tx:
            return tx.users.get_user(user_id)
