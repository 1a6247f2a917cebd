"""
commonplace.constants — Shared constants
=========================================

Collection names and the reserved fields every stored record carries.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------
class DBEndpoints:
    """Top-level collection names."""
    USERS = "users"
    HOWTOS = "howtos"
    MAPPINS = "mappins"
    MESSAGES = "messages"
    RESEARCH = "research"
    EMAILS = "emails"
    AUTH_USERS = "auth_users"


# ---------------------------------------------------------------------------
# Reserved record fields
# ---------------------------------------------------------------------------
ID_FIELD = "_id"
MODIFIED_FIELD = "_modified"
DELETED_FIELD = "_deleted"


# ---------------------------------------------------------------------------
# Moderation states
# ---------------------------------------------------------------------------
class Moderation:
    DRAFT = "draft"
    AWAITING_MODERATION = "awaiting-moderation"
    REJECTED = "rejected"
    ACCEPTED = "accepted"
