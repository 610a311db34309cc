"""Invited-accounts fixture: written by provisioning, read by the activation batch.

Two files are produced per environment:
- test-data/invited-emails-<env>.json: full records plus a per-role summary
- test-data/invited-emails-<env>.txt: one address per line

The ledger is an explicit object handed to the provisioner; nothing here is
module-global.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from invite_e2e.errors import FixtureError
from invite_e2e.models import InvitedAccount, Role, utc_now_iso

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def fixture_paths(data_dir: PathLike, env_name: str) -> Tuple[Path, Path]:
    """Return the (json, txt) fixture paths for ``env_name``."""
    base = Path(data_dir)
    return base / f"invited-emails-{env_name}.json", base / f"invited-emails-{env_name}.txt"


class InvitationLedger:
    """Accumulates invited accounts in the order they were invited."""

    def __init__(self) -> None:
        self._accounts: List[InvitedAccount] = []

    def __len__(self) -> int:
        return len(self._accounts)

    @property
    def accounts(self) -> List[InvitedAccount]:
        return list(self._accounts)

    def add(
        self,
        email: str,
        role: Union[Role, str],
        account_id: Optional[str] = None,
        project_id: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> InvitedAccount:
        record = InvitedAccount(
            email=email,
            role=role.value if isinstance(role, Role) else role,
            account_id=account_id,
            project_id=project_id,
            first_name=first_name,
            last_name=last_name,
        )
        self._accounts.append(record)
        logger.debug("Recorded invitation %s (%s)", email, record.role)
        return record

    def summary(self) -> Dict[str, int]:
        """Number of invitations per role."""
        return dict(Counter(account.role for account in self._accounts))

    def to_document(self) -> Dict[str, object]:
        return {
            "generatedAt": utc_now_iso(),
            "totalEmails": len(self._accounts),
            "emails": [account.to_dict() for account in self._accounts],
            "summary": self.summary(),
        }

    def save_json(self, path: PathLike) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(self.to_document(), indent=2), encoding="utf-8")
        logger.info("Saved %d invited email(s) to %s", len(self._accounts), target)
        return target

    def save_text(self, path: PathLike) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("\n".join(account.email for account in self._accounts), encoding="utf-8")
        logger.info("Saved %d email address(es) to %s", len(self._accounts), target)
        return target

    def save(self, data_dir: PathLike, env_name: str) -> Tuple[Path, Path]:
        json_path, text_path = fixture_paths(data_dir, env_name)
        return self.save_json(json_path), self.save_text(text_path)


def load_fixture(path: PathLike) -> List[InvitedAccount]:
    """Load invited accounts from a JSON fixture.

    Raises:
        FixtureError: file missing, not JSON, or without any email records
    """
    source = Path(path)
    if not source.exists():
        raise FixtureError(f"Invited-emails fixture not found: {source} (run provisioning first)")
    try:
        document = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise FixtureError(f"Invited-emails fixture {source} is not valid JSON: {exc}") from exc

    raw_emails = document.get("emails") if isinstance(document, dict) else None
    if not raw_emails:
        raise FixtureError(f"Invited-emails fixture {source} contains no emails")
    try:
        accounts = [InvitedAccount.from_dict(entry) for entry in raw_emails]
    except (KeyError, TypeError, AttributeError) as exc:
        raise FixtureError(f"Malformed record in {source}: {exc}") from exc

    logger.info("Loaded %d invited account(s) from %s", len(accounts), source)
    return accounts


def cleanup(paths: Iterable[PathLike]) -> List[Path]:
    """Delete fixture files left by a previous run; returns the removed paths."""
    removed = []
    for path in paths:
        target = Path(path)
        if target.exists():
            target.unlink()
            removed.append(target)
            logger.info("Removed previous fixture %s", target)
    return removed
