"""
commonplace.notifications.templates — Email subjects and bodies
================================================================

Pure builders: records in, :class:`EmailMessage` out.  All user-supplied
text is HTML-escaped.
"""

from __future__ import annotations

from html import escape
from typing import Any

from commonplace.config import CommonplaceConfig
from commonplace.notifications.schemas import EmailMessage

HOW_TO_SUBMISSION_SUBJECT = "Your how-to has been submitted"
MAP_PIN_SUBMISSION_SUBJECT = "Your map pin has been submitted"
RECEIVER_MESSAGE_SUBJECT = "You received a message"
SENDER_MESSAGE_SUBJECT = "Your message has been sent"

SIGNOFF = "Cheers,<br/>The Community Team"


def _display_name(user: dict[str, Any]) -> str:
    return str(user.get("displayName") or user.get("userName") or user.get("_id", ""))


def _wrap(greeting_name: str, body: str) -> str:
    return (
        f"<p>Hey {escape(greeting_name)},</p>"
        f"{body}"
        f"<p>{SIGNOFF}</p>"
    )


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------
def get_howto_submission_email(
    cfg: CommonplaceConfig, user: dict[str, Any], howto: dict[str, Any]
) -> EmailMessage:
    title = escape(str(howto.get("title", "")))
    slug = escape(str(howto.get("slug", "")))
    body = (
        f"<p>Thanks for sharing your how-to <strong>{title}</strong> "
        f"on {escape(cfg.site_name)}!</p>"
        "<p>It is now awaiting review from our moderators. We will let you "
        "know as soon as it is published.</p>"
        f'<p><a href="{cfg.site_url}/how-to/{slug}">View your how-to</a></p>'
    )
    return EmailMessage(
        subject=HOW_TO_SUBMISSION_SUBJECT, html=_wrap(_display_name(user), body)
    )


def get_map_pin_submission_email(
    cfg: CommonplaceConfig, user: dict[str, Any], map_pin: dict[str, Any]
) -> EmailMessage:
    pin_id = escape(str(map_pin.get("_id", "")))
    body = (
        "<p>Your map pin has been submitted.</p>"
        "<p>Our moderators will review it shortly and it will appear on the "
        "map once approved.</p>"
        f'<p><a href="{cfg.site_url}/map#{pin_id}">View your pin</a></p>'
    )
    return EmailMessage(
        subject=MAP_PIN_SUBMISSION_SUBJECT, html=_wrap(_display_name(user), body)
    )


# ---------------------------------------------------------------------------
# Direct messages
# ---------------------------------------------------------------------------
def get_receiver_message_email(
    cfg: CommonplaceConfig, receiver: dict[str, Any], message: dict[str, Any]
) -> EmailMessage:
    sender = escape(str(message.get("email", "")))
    text = escape(str(message.get("text", ""))).replace("\n", "<br/>")
    body = (
        f"<p>You received a message from {sender} through your "
        f"{escape(cfg.site_name)} profile:</p>"
        f"<blockquote>{text}</blockquote>"
        "<p>Reply to this email to answer them directly.</p>"
    )
    return EmailMessage(
        subject=RECEIVER_MESSAGE_SUBJECT, html=_wrap(_display_name(receiver), body)
    )


def get_sender_message_email(
    cfg: CommonplaceConfig, receiver: dict[str, Any], message: dict[str, Any]
) -> EmailMessage:
    text = escape(str(message.get("text", ""))).replace("\n", "<br/>")
    receiver_name = escape(_display_name(receiver))
    body = (
        f"<p>Your message to {receiver_name} has been sent:</p>"
        f"<blockquote>{text}</blockquote>"
        f"<p>They can reply to you at {escape(str(message.get('email', '')))}.</p>"
    )
    return EmailMessage(subject=SENDER_MESSAGE_SUBJECT, html=_wrap("there", body))
