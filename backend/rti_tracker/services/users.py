"""
User Registry

Registration issues a random sign-in key that is shown to the user once;
only its bcrypt hash is stored. Users migrated from the legacy store keep
their unsalted sha256 hash (prefixed "sha256$") until they next register
a key, and are verified with a constant-time comparison.
"""
import hashlib
import hmac
import logging
import secrets
from typing import List, Tuple
from uuid import uuid4

import bcrypt

from ..errors import InvalidCredential, UserNotFound
from ..models.domain import Role, User, utcnow
from .mirror.base import MirrorStore
from .mirror.migrations import LEGACY_CREDENTIAL_PREFIX

logger = logging.getLogger(__name__)


def hash_credential(key: str) -> str:
    """Hash a sign-in key using bcrypt."""
    return bcrypt.hashpw(key.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_credential(key: str, credential_hash: str) -> bool:
    """Verify a sign-in key against a stored hash."""
    if credential_hash.startswith(LEGACY_CREDENTIAL_PREFIX):
        expected = credential_hash[len(LEGACY_CREDENTIAL_PREFIX):]
        actual = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return hmac.compare_digest(actual, expected)
    try:
        return bcrypt.checkpw(key.encode("utf-8"), credential_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def new_user_id() -> str:
    return f"U-{uuid4().hex[:8]}"


class UserRegistry:
    def __init__(self, store: MirrorStore):
        self.store = store

    def register_user(
        self,
        name: str,
        external_identity_number: str,
        role: Role,
        wallet_address: str = "",
    ) -> Tuple[User, str]:
        """
        Create a user and return it with its one-time sign-in key.

        Raises:
            DuplicateUser: external_identity_number is already registered
        """
        signin_key = secrets.token_hex(32)
        user = self.store.create_user(User(
            id=new_user_id(),
            name=name,
            external_identity_number=external_identity_number,
            role=Role(role),
            credential_hash=hash_credential(signin_key),
            wallet_address=wallet_address or "",
            created_at=utcnow(),
        ))
        logger.info(f"User registered: {user.id} ({user.role.value})")
        return user, signin_key

    def verify_credential(self, user_id: str, signin_key: str) -> User:
        """
        Raises:
            InvalidCredential: Unknown user or wrong key
        """
        user = self.store.find_user_by_id(user_id)
        if user is None or not check_credential(signin_key, user.credential_hash):
            raise InvalidCredential("Invalid user id or sign-in key")
        return user

    def get_user(self, user_id: str) -> User:
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise UserNotFound(f"User not found: {user_id}")
        return user

    def list_officers(self) -> List[User]:
        return self.store.list_users_by_role(Role.OFFICER)
