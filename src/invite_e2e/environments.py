"""Target environment profiles.

Each product environment (staging-us, prod-us, ...) is described by a JSON
file under ``config/environments/<name>.json``:

    {
      "baseURL": "developer-stg.api.example.com",
      "region": "us",
      "defaultUserId": "U5C2W7A7KJMLA9E7",
      "accountIds": {"account1": "...", "account2": "..."},
      "accountUsersPath": "/admin/v1/accounts/{account_id}/users"
    }

Selection is via the TEST_ENV env var (default "staging-us").
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from invite_e2e.env_defaults import get_env
from invite_e2e.errors import ConfigError

DEFAULT_TEST_ENV = "staging-us"
DEFAULT_ACCOUNT_USERS_PATH = "/bim360/admin/v1/accounts/{account_id}/users"
PROJECTS_PATH = "/construction/admin/v1/accounts/{account_id}/projects"
PROJECT_USERS_PATH = "/construction/admin/v1/projects/{project_id}/users"


@dataclass
class EnvironmentProfile:
    """API host, headers and account ids for one product environment."""
    name: str
    base_url: str
    region: str
    default_user_id: str
    account_ids: Dict[str, str] = field(default_factory=dict)
    account_users_path: str = DEFAULT_ACCOUNT_USERS_PATH

    @property
    def is_production(self) -> bool:
        return is_production(self.name)

    @property
    def api_root(self) -> str:
        if self.base_url.startswith(("http://", "https://")):
            return self.base_url.rstrip("/")
        return f"https://{self.base_url.rstrip('/')}"

    def account_id(self, key: str) -> str:
        """Resolve an account key (e.g. "account1") or pass a literal id through."""
        return self.account_ids.get(key, key)

    def first_account_id(self) -> Optional[str]:
        return next(iter(self.account_ids.values()), None)

    def account_users_url(self, account_id: str) -> str:
        return self.account_users_path.format(account_id=account_id)

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "EnvironmentProfile":
        account_ids = data.get("accountIds") or {}
        if isinstance(account_ids, list):
            account_ids = {f"account{i + 1}": value for i, value in enumerate(account_ids)}
        missing = [key for key in ("baseURL", "region", "defaultUserId") if not data.get(key)]
        if missing:
            raise ConfigError(f"Environment profile '{name}' is missing: {', '.join(missing)}")
        return cls(
            name=name,
            base_url=data["baseURL"],
            region=data["region"],
            default_user_id=data["defaultUserId"],
            account_ids=dict(account_ids),
            account_users_path=data.get("accountUsersPath") or DEFAULT_ACCOUNT_USERS_PATH,
        )


def is_production(env_name: str) -> bool:
    return env_name.startswith("prod-")


def get_test_env() -> str:
    return get_env("TEST_ENV", DEFAULT_TEST_ENV) or DEFAULT_TEST_ENV


def get_profile_path(env_name: str, config_dir: Path | str = "config") -> Path:
    return Path(config_dir) / "environments" / f"{env_name}.json"


def load_profile(env_name: str, config_dir: Path | str = "config") -> EnvironmentProfile:
    """Load the profile for ``env_name``; a missing or unreadable file is fatal."""
    path = get_profile_path(env_name, config_dir)
    if not path.exists():
        raise ConfigError(
            f"Environment config not found: {path}\n"
            f"TEST_ENV={env_name}\n"
            f"Create {path} with baseURL, region, defaultUserId and accountIds"
        )
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Environment config {path} is not valid JSON: {exc}") from exc
    return EnvironmentProfile.from_dict(env_name, data)
