"""
commonplace.notifications.schemas — Record schemas
====================================================
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Outbound email record, drained by the external delivery process
# ---------------------------------------------------------------------------
class EmailMessage(BaseModel):
    subject: str
    html: str


class OutboundEmail(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: str
    reply_to: str | None = Field(default=None, alias="replyTo")
    message: EmailMessage

    def to_record(self) -> dict:
        """Render as the stored record shape (``replyTo`` only when set)."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Inbound records
# ---------------------------------------------------------------------------
class DirectMessage(BaseModel):
    """A record in the ``messages`` collection."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    email: str  # sender's address
    text: str = ""
    to_user_name: str = Field(alias="toUserName")
    is_sent: bool = Field(default=False, alias="isSent")
