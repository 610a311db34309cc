"""Tests for settings loading and environment profiles."""
import json

import pytest

from invite_e2e.config import DEFAULT_TEST_PASSWORD, load_settings
from invite_e2e.env_defaults import load_defaults
from invite_e2e.environments import EnvironmentProfile, load_profile
from invite_e2e.errors import ConfigError

HARNESS_VARS = [
    "TEST_ENV", "CLIENT_ID", "CLIENT_SECRET", "CLIENT_ID_PROD", "CLIENT_SECRET_PROD",
    "MAILOSAUR_API_KEY", "MAILOSAUR_SERVER_ID", "MAILOSAUR_BASE_URL", "HARNESS_CONFIG_DIR",
    "PLAYWRIGHT_HEADLESS", "PLAYWRIGHT_SLOW_MO_MS", "INVITE_EMAIL_TIMEOUT", "PASSCODE_EMAIL_TIMEOUT",
    "INBOX_POLL_INTERVAL", "ELEMENT_TIMEOUT", "FIELD_TIMEOUT", "SETTLE_DELAY", "TEST_DATA_DIR",
    "SCREENSHOT_DIR", "TEST_PASSWORD", "BATCH_LIMIT",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in HARNESS_VARS:
        monkeypatch.delenv(name, raising=False)


def _write_profile(tmp_path, name="staging-us", **overrides):
    data = {
        "baseURL": "developer-stg.api.example.com",
        "region": "us",
        "defaultUserId": "U5C2W7A7KJMLA9E7",
        "accountIds": {"account1": "acc-1", "account2": "acc-2"},
    }
    data.update(overrides)
    path = tmp_path / "config" / "environments" / f"{name}.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))
    return path


def test_defaults():
    settings = load_settings()

    assert settings.test_env == "staging-us"
    assert settings.headless is True
    assert settings.slow_mo_ms == 0
    assert settings.invite_email_timeout == 60.0
    assert settings.element_timeout == 3.0
    assert settings.settle_delay == 3.0
    assert settings.test_password == DEFAULT_TEST_PASSWORD == "Autodesk1!"
    assert settings.test_data_dir == "test-data"
    assert settings.screenshot_dir is None
    assert settings.batch_limit is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("PLAYWRIGHT_HEADLESS", "false")
    monkeypatch.setenv("PLAYWRIGHT_SLOW_MO_MS", "250")
    monkeypatch.setenv("INVITE_EMAIL_TIMEOUT", "90")
    monkeypatch.setenv("BATCH_LIMIT", "8")

    settings = load_settings()

    assert settings.headless is False
    assert settings.slow_mo_ms == 250
    assert settings.invite_email_timeout == 90.0
    assert settings.batch_limit == 8


def test_env_defaults_file_is_read(tmp_path, monkeypatch):
    (tmp_path / ".env.defaults").write_text("TEST_ENV=qa\nSETTLE_DELAY=1.5\n")
    (tmp_path / ".env").write_text("export SETTLE_DELAY='0.5'\n")
    load_defaults.cache_clear()

    settings = load_settings()

    assert settings.test_env == "qa"
    assert settings.settle_delay == 0.5

    monkeypatch.setenv("TEST_ENV", "prod-us")
    assert load_settings().test_env == "prod-us"


def test_production_credentials_take_precedence(monkeypatch):
    monkeypatch.setenv("CLIENT_ID", "stg-id")
    monkeypatch.setenv("CLIENT_SECRET", "stg-secret")
    monkeypatch.setenv("CLIENT_ID_PROD", "prod-id")
    monkeypatch.setenv("CLIENT_SECRET_PROD", "prod-secret")

    assert load_settings("staging-us").require_api_credentials() == ("stg-id", "stg-secret")
    assert load_settings("prod-emea").require_api_credentials() == ("prod-id", "prod-secret")


def test_missing_credentials_fail_fast():
    with pytest.raises(ConfigError, match="CLIENT_ID_PROD"):
        load_settings("prod-us").require_api_credentials()


def test_mailbox_from_config_file(tmp_path):
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "mailosaur.json").write_text(json.dumps({"apiKey": "file-key", "serverId": "abcd1234"}))

    assert load_settings().require_mailbox() == ("file-key", "abcd1234")


def test_mailbox_env_beats_config_file(tmp_path, monkeypatch):
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "mailosaur.json").write_text(json.dumps({"apiKey": "file-key", "serverId": "abcd1234"}))
    monkeypatch.setenv("MAILOSAUR_API_KEY", "env-key")

    assert load_settings().require_mailbox() == ("env-key", "abcd1234")


def test_missing_mailbox_fails_fast():
    with pytest.raises(ConfigError, match="MAILOSAUR_API_KEY"):
        load_settings().require_mailbox()


def test_invalid_number_is_config_error(monkeypatch):
    monkeypatch.setenv("ELEMENT_TIMEOUT", "soon")

    with pytest.raises(ConfigError, match="ELEMENT_TIMEOUT"):
        load_settings()


def test_profile_loading(tmp_path):
    _write_profile(tmp_path, accountUsersPath="/bim360-qa/admin/v1/accounts/{account_id}/users")

    profile = load_settings().environment()

    assert profile.api_root == "https://developer-stg.api.example.com"
    assert profile.account_id("account2") == "acc-2"
    assert profile.account_id("literal-id") == "literal-id"
    assert profile.first_account_id() == "acc-1"
    assert profile.account_users_url("acc-1") == "/bim360-qa/admin/v1/accounts/acc-1/users"


def test_profile_accepts_account_list():
    profile = EnvironmentProfile.from_dict("qa", {
        "baseURL": "https://dev.example.com/", "region": "us", "defaultUserId": "U1",
        "accountIds": ["first", "second"],
    })

    assert profile.account_ids == {"account1": "first", "account2": "second"}
    assert profile.api_root == "https://dev.example.com"
    assert profile.account_users_url("first") == "/bim360/admin/v1/accounts/first/users"
    assert not profile.is_production


def test_missing_profile_is_config_error(tmp_path):
    with pytest.raises(ConfigError, match="TEST_ENV=nowhere"):
        load_profile("nowhere", tmp_path / "config")


def test_incomplete_profile_is_config_error(tmp_path):
    _write_profile(tmp_path, region="")

    with pytest.raises(ConfigError, match="region"):
        load_profile("staging-us", tmp_path / "config")
