"""
commonplace.notifications.emails — Creation handlers → outbound emails
=======================================================================

Each handler receives a freshly created record and, when the record
qualifies, adds email records to the ``emails`` collection.  Delivery is
done by an external process draining that collection.

Direct messages are marked ``isSent`` only after both emails are queued.
The two adds and the mark are separate writes: a failure in between leaves
a partial send that a later run cannot tell apart from a full one.
"""

from __future__ import annotations

import logging
from typing import Any

from commonplace.config import CommonplaceConfig
from commonplace.constants import MODIFIED_FIELD, DBEndpoints, Moderation
from commonplace.notifications import templates, utils
from commonplace.notifications.schemas import EmailMessage, OutboundEmail
from commonplace.store.documents import DocumentStore
from commonplace.store.paths import timestamp

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Composes notification emails for new messages and submissions.

    Parameters
    ----------
    store : DocumentStore
        Backend holding users, messages and the outbound ``emails`` collection.
    auth : AuthProvider
        Resolves user accounts to email addresses.
    cfg : CommonplaceConfig
        Site identity and messaging rules.
    """

    def __init__(
        self, store: DocumentStore, auth: utils.AuthProvider, cfg: CommonplaceConfig
    ) -> None:
        self._store = store
        self._auth = auth
        self._cfg = cfg

    async def _queue_email(
        self, to: str, message: EmailMessage, reply_to: str | None = None
    ) -> str:
        email = OutboundEmail(to=to, reply_to=reply_to, message=message)
        email_id = await self._store.add_document(DBEndpoints.EMAILS, email.to_record())
        logger.info("Queued email %s: '%s'", email_id, message.subject)
        return email_id

    # -------------------------------------------------------------------
    # Direct messages
    # -------------------------------------------------------------------
    async def create_message_emails(self, message: dict[str, Any]) -> int:
        """Notify receiver and sender of a new direct message.

        Returns the number of emails queued (0 or 2).
        """
        is_valid = await utils.is_valid_email_creation_request(
            self._store, self._auth, message, self._cfg
        )
        if not is_valid:
            return 0
        if message.get("isSent"):
            logger.info("Message %s already sent — skipping", message.get("_id"))
            return 0

        to_user, to_user_email = await utils.get_user_and_email(
            self._store, self._auth, message["toUserName"]
        )
        await self._queue_email(
            to_user_email,
            templates.get_receiver_message_email(self._cfg, to_user, message),
            reply_to=message["email"],
        )
        await self._queue_email(
            message["email"],
            templates.get_sender_message_email(self._cfg, to_user, message),
        )
        await self._store.set_document(
            f"{DBEndpoints.MESSAGES}/{message['_id']}",
            {**message, "isSent": True, MODIFIED_FIELD: timestamp()},
            merge=False,
        )
        return 2

    # -------------------------------------------------------------------
    # Submissions
    # -------------------------------------------------------------------
    async def create_howto_submission_email(self, howto: dict[str, Any]) -> int:
        """Confirm a how-to submission to its creator when it awaits review."""
        to_user, to_user_email = await utils.get_user_and_email(
            self._store, self._auth, howto["_createdBy"]
        )
        if howto.get("moderation") != Moderation.AWAITING_MODERATION:
            return 0
        await self._queue_email(
            to_user_email,
            templates.get_howto_submission_email(self._cfg, to_user, howto),
        )
        return 1

    async def create_map_pin_submission_email(self, map_pin: dict[str, Any]) -> int:
        """Confirm a map pin submission; a pin's ``_id`` is its owner's user id."""
        to_user, to_user_email = await utils.get_user_and_email(
            self._store, self._auth, map_pin["_id"]
        )
        if map_pin.get("moderation") != Moderation.AWAITING_MODERATION:
            return 0
        await self._queue_email(
            to_user_email,
            templates.get_map_pin_submission_email(self._cfg, to_user, map_pin),
        )
        return 1
