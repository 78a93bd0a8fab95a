"""Account signup, password hashing and session tokens."""

import base64
import hashlib
import hmac
import logging
import secrets
from typing import Optional

from paperchat.database.repository import Repository
from paperchat.exceptions import AuthenticationError, ValidationError
from paperchat.models.chat import User

logger = logging.getLogger(__name__)

HASH_PREFIX = "pbkdf2_sha256"
HASH_ITERATIONS = 240_000


def hash_password(password: str, *, iterations: int = HASH_ITERATIONS) -> str:
    """Return ``pbkdf2_sha256$<iterations>$<salt>$<digest>``."""
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return "$".join([
        HASH_PREFIX,
        str(iterations),
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(digest).decode("ascii"),
    ])


def verify_password(password: str, stored: str) -> bool:
    """Constant-time check of *password* against a stored hash."""
    try:
        prefix, iterations, salt_b64, digest_b64 = stored.split("$")
        if prefix != HASH_PREFIX:
            return False
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(digest_b64)
        computed = hashlib.pbkdf2_hmac(
            "sha256", password.encode("utf-8"), salt, int(iterations)
        )
    except ValueError:
        return False
    return hmac.compare_digest(computed, expected)


class AuthService:
    """Signup, login and session resolution on top of the repository."""

    def __init__(self, repo: Repository, session_days: int = 30):
        self.repo = repo
        self.session_days = session_days

    def signup(self, name: str, email: str, password: str) -> User:
        """Create an account.

        Raises:
            ValidationError: Missing field or email already registered
        """
        email = (email or "").strip()
        if not email or not password:
            raise ValidationError("Email and password are required")
        user = self.repo.create_user(email, (name or "").strip(), hash_password(password))
        logger.info("Created user %s", user.email)
        return user

    def login(self, email: str, password: str) -> tuple[User, str]:
        """Check credentials and open a session.

        Returns:
            Tuple of (user, session token)

        Raises:
            AuthenticationError: Unknown email or wrong password
        """
        if not email or not password:
            raise ValidationError("Email and password are required")
        user = self.repo.find_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid email or password")
        token = self.repo.create_session(user.id, days=self.session_days)
        return user, token

    def resolve(self, token: Optional[str]) -> Optional[User]:
        """Return the user behind a session token, or None."""
        if not token:
            return None
        return self.repo.find_user_by_token(token)

    def logout(self, token: Optional[str]) -> None:
        if token:
            self.repo.delete_session(token)
