import sys
from pathlib import Path

import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
for path in (ROOT / "src", ROOT / "tests"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from fakes import SERVER_ID, FakeMailosaur
from invite_e2e.config import HarnessSettings
from invite_e2e.env_defaults import load_defaults
from invite_e2e.mailbox import InboxPoller, MailosaurClient


@pytest.fixture(autouse=True)
def isolated_env_defaults(monkeypatch, tmp_path):
    """Run every test from an empty directory so no local .env leaks in."""
    monkeypatch.chdir(tmp_path)
    load_defaults.cache_clear()
    yield
    load_defaults.cache_clear()


@pytest.fixture()
def settings(tmp_path) -> HarnessSettings:
    """Settings with waits short enough for in-memory pages and inboxes."""
    return HarnessSettings(
        test_env="staging-us",
        test_data_dir=str(tmp_path / "test-data"),
        mailosaur_api_key="key",
        mailosaur_server_id=SERVER_ID,
        invite_email_timeout=0.5,
        passcode_email_timeout=0.5,
        inbox_poll_interval=0.01,
        element_timeout=0.01,
        field_timeout=0.01,
        settle_delay=0,
    )


@pytest.fixture()
def mailosaur() -> FakeMailosaur:
    return FakeMailosaur()


@pytest_asyncio.fixture()
async def mailbox_client(mailosaur):
    async with MailosaurClient("key", transport=mailosaur.transport()) as client:
        yield client


@pytest_asyncio.fixture()
async def poller(mailbox_client, settings) -> InboxPoller:
    return InboxPoller(mailbox_client, SERVER_ID, poll_interval=settings.inbox_poll_interval)
