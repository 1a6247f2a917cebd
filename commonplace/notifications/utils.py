"""
commonplace.notifications.utils — User lookup and message checks
=================================================================
"""

from __future__ import annotations

import logging
from typing import Any, NamedTuple, Protocol

from pydantic import ValidationError

from commonplace.config import CommonplaceConfig
from commonplace.constants import DBEndpoints
from commonplace.notifications.schemas import DirectMessage
from commonplace.store.documents import DocumentStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Auth provider boundary
# ---------------------------------------------------------------------------
class AuthProvider(Protocol):
    """Resolves an auth account id to its email address."""

    async def get_email(self, auth_id: str) -> str | None: ...


class CollectionAuthProvider:
    """Reads emails from a collection mirroring the auth provider's accounts.

    Each record is keyed by auth id and carries an ``email`` field.
    """

    def __init__(self, store: DocumentStore, collection: str = DBEndpoints.AUTH_USERS) -> None:
        self._store = store
        self._collection = collection

    async def get_email(self, auth_id: str) -> str | None:
        account = await self._store.get_document(f"{self._collection}/{auth_id}")
        if account is None or account.get("_deleted"):
            return None
        return account.get("email")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
class UserAndEmail(NamedTuple):
    to_user: dict[str, Any]
    to_user_email: str


async def get_user_and_email(
    store: DocumentStore, auth: AuthProvider, user_id: str
) -> UserAndEmail:
    """Load user *user_id* and resolve their email through *auth*.

    Raises
    ------
    LookupError
        If the user does not exist or has no email on record.
    """
    user = await store.get_document(f"{DBEndpoints.USERS}/{user_id}")
    if user is None or user.get("_deleted"):
        raise LookupError(f"User not found: '{user_id}'")

    email = await auth.get_email(user.get("_authID") or user_id)
    if not email:
        raise LookupError(f"No email on record for user '{user_id}'")
    return UserAndEmail(user, email)


async def is_valid_email_creation_request(
    store: DocumentStore,
    auth: AuthProvider,
    message: dict[str, Any],
    cfg: CommonplaceConfig,
) -> bool:
    """Return True if *message* may be delivered to its receiver.

    The receiver must exist, hold one of ``cfg.message_roles``, have opted
    in to public contact, and not be the sender.
    """
    try:
        msg = DirectMessage.model_validate(message)
    except ValidationError:
        logger.warning("Rejecting malformed message record: %s", message.get("_id"))
        return False

    try:
        receiver, receiver_email = await get_user_and_email(store, auth, msg.to_user_name)
    except LookupError:
        logger.info("Message %s: receiver '%s' not found", msg.id, msg.to_user_name)
        return False

    roles = set(receiver.get("userRoles") or [])
    if not roles.intersection(cfg.message_roles):
        logger.info("Message %s: receiver lacks a permitted role", msg.id)
        return False

    if not receiver.get("isContactableByPublic"):
        logger.info("Message %s: receiver is not contactable", msg.id)
        return False

    if receiver_email.strip().lower() == msg.email.strip().lower():
        logger.info("Message %s: sender and receiver are the same", msg.id)
        return False

    return True
