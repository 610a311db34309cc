"""Harness configuration.

Values come from the process environment, falling back to `.env` /
`.env.defaults` (see :mod:`invite_e2e.env_defaults`). Secrets have no
built-in defaults: a missing API credential or mailbox key fails fast when the
component needing it is first used, with a message naming the variable.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from invite_e2e.env_defaults import get_env
from invite_e2e.environments import EnvironmentProfile, get_test_env, is_production, load_profile
from invite_e2e.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_TEST_PASSWORD = "Autodesk1!"


def _env_bool(key: str, default: bool) -> bool:
    raw = get_env(key)
    if raw is None:
        return default
    return raw.strip().lower() in {"true", "1", "yes"}


def _env_float(key: str, default: float) -> float:
    raw = get_env(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc


def _env_int(key: str) -> Optional[int]:
    raw = get_env(key)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


@dataclass
class HarnessSettings:
    """Everything a run needs to know, passed explicitly to each component."""

    test_env: str = "staging-us"
    config_dir: str = "config"
    test_data_dir: str = "test-data"
    screenshot_dir: Optional[str] = None

    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    mailosaur_api_key: Optional[str] = None
    mailosaur_server_id: Optional[str] = None
    mailosaur_base_url: Optional[str] = None

    headless: bool = True
    slow_mo_ms: int = 0

    test_password: str = DEFAULT_TEST_PASSWORD
    invite_email_timeout: float = 60.0
    passcode_email_timeout: float = 60.0
    inbox_poll_interval: float = 2.0
    element_timeout: float = 3.0
    field_timeout: float = 10.0
    settle_delay: float = 3.0
    batch_limit: Optional[int] = None

    def environment(self) -> EnvironmentProfile:
        return load_profile(self.test_env, self.config_dir)

    def require_api_credentials(self) -> Tuple[str, str]:
        if not self.client_id or not self.client_secret:
            suffix = "_PROD" if is_production(self.test_env) else ""
            raise ConfigError(
                f"Product API credentials required: set CLIENT_ID{suffix} and CLIENT_SECRET{suffix}"
            )
        return self.client_id, self.client_secret

    def require_mailbox(self) -> Tuple[str, str]:
        if not self.mailosaur_api_key or not self.mailosaur_server_id:
            raise ConfigError(
                "Mailbox access required: set MAILOSAUR_API_KEY and MAILOSAUR_SERVER_ID "
                f"(or provide {Path(self.config_dir) / 'mailosaur.json'})"
            )
        return self.mailosaur_api_key, self.mailosaur_server_id


def _mailosaur_file(config_dir: str) -> dict:
    path = Path(config_dir) / "mailosaur.json"
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{path} is not valid JSON: {exc}") from exc


def _api_credentials(test_env: str) -> Tuple[Optional[str], Optional[str]]:
    client_id = get_env("CLIENT_ID")
    client_secret = get_env("CLIENT_SECRET")
    if is_production(test_env):
        client_id = get_env("CLIENT_ID_PROD") or client_id
        client_secret = get_env("CLIENT_SECRET_PROD") or client_secret
    return client_id, client_secret


def load_settings(test_env: Optional[str] = None) -> HarnessSettings:
    """Build settings from the environment for ``test_env`` (default: TEST_ENV)."""
    env_name = test_env or get_test_env()
    config_dir = get_env("HARNESS_CONFIG_DIR", "config") or "config"
    mailosaur = _mailosaur_file(config_dir)
    client_id, client_secret = _api_credentials(env_name)

    settings = HarnessSettings(
        test_env=env_name,
        config_dir=config_dir,
        test_data_dir=get_env("TEST_DATA_DIR", "test-data") or "test-data",
        screenshot_dir=get_env("SCREENSHOT_DIR") or None,
        client_id=client_id,
        client_secret=client_secret,
        mailosaur_api_key=get_env("MAILOSAUR_API_KEY") or mailosaur.get("apiKey"),
        mailosaur_server_id=get_env("MAILOSAUR_SERVER_ID") or mailosaur.get("serverId"),
        mailosaur_base_url=get_env("MAILOSAUR_BASE_URL") or None,
        headless=_env_bool("PLAYWRIGHT_HEADLESS", True),
        slow_mo_ms=_env_int("PLAYWRIGHT_SLOW_MO_MS") or 0,
        test_password=get_env("TEST_PASSWORD", DEFAULT_TEST_PASSWORD) or DEFAULT_TEST_PASSWORD,
        invite_email_timeout=_env_float("INVITE_EMAIL_TIMEOUT", 60.0),
        passcode_email_timeout=_env_float("PASSCODE_EMAIL_TIMEOUT", 60.0),
        inbox_poll_interval=_env_float("INBOX_POLL_INTERVAL", 2.0),
        element_timeout=_env_float("ELEMENT_TIMEOUT", 3.0),
        field_timeout=_env_float("FIELD_TIMEOUT", 10.0),
        settle_delay=_env_float("SETTLE_DELAY", 3.0),
        batch_limit=_env_int("BATCH_LIMIT"),
    )
    logger.debug(
        "Settings loaded (env=%s, headless=%s, data_dir=%s)",
        settings.test_env, settings.headless, settings.test_data_dir,
    )
    return settings
