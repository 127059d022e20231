"""
Password Service

bcrypt hashing and verification with a configurable work factor.
"""

import bcrypt

from joauth.utils.logger import get_logger

logger = get_logger(__name__)

# bcrypt only looks at the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72


class PasswordService:
    """Hashes and checks plaintext passwords"""

    def __init__(self, salt_rounds: int = 12):
        self.salt_rounds = salt_rounds

    @staticmethod
    def fits(password: str) -> bool:
        """Whether ``password`` is short enough to be hashed without truncation."""
        return len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES

    def hash_password(self, password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.salt_rounds)).decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"[PasswordService] Password verification error: {str(e)}")
            return False
