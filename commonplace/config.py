"""
commonplace.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for site identity and notification settings.
Secrets (``DATABASE_URL``) stay in the environment / ``.env``.

Usage::

    from commonplace.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.site_url)          # "https://community.example.org"
    print(cfg.message_roles)     # ("beta-tester",)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

DEFAULT_MESSAGE_ROLES: tuple[str, ...] = ("beta-tester",)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CommonplaceConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    site_name: str
    site_url: str

    # Messaging: receivers must hold one of these roles to be contactable
    message_roles: tuple[str, ...] = field(default=DEFAULT_MESSAGE_ROLES)

    # Optional
    alert_webhook_url: str | None = None  # Where trigger failures are reported


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> CommonplaceConfig:
    """Read *path* and return a :class:`CommonplaceConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    roles = raw.get("message_roles")
    return CommonplaceConfig(
        site_name=raw["site_name"],
        site_url=str(raw["site_url"]).rstrip("/"),
        message_roles=tuple(roles) if roles else DEFAULT_MESSAGE_ROLES,
        alert_webhook_url=raw.get("alert_webhook_url") or None,
    )
