"""Data model shared by provisioning, the inbox poller and the activation flow.

The fixture file written by provisioning uses camelCase keys; the dataclasses
here convert to and from that shape so the file stays readable by the other
tools that consume it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class Role(str, Enum):
    """Roles the provisioning plan invites users with."""

    PROJECT_ADMIN = "project_admin"
    ACCOUNT_ADMIN = "account_admin"
    PROJECT_EXECUTIVE = "project_executive"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class InvitedAccount:
    """A user invited by provisioning and awaiting activation.

    ``role`` is kept as a plain string so fixtures written by newer plans with
    roles this module does not know about still load.
    """

    email: str
    role: str
    account_id: Optional[str] = None
    project_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    invited_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> InvitedAccount:
        return cls(
            email=data["email"],
            role=data.get("userType") or data.get("role") or "",
            account_id=data.get("accountId"),
            project_id=data.get("projectId"),
            first_name=data.get("firstName"),
            last_name=data.get("lastName"),
            invited_at=data.get("invitedAt") or utc_now_iso(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "userType": self.role,
            "accountId": self.account_id,
            "projectId": self.project_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "invitedAt": self.invited_at,
        }


@dataclass(frozen=True)
class InboxLink:
    href: str
    text: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> InboxLink:
        return cls(href=data.get("href") or "", text=data.get("text") or "")


@dataclass
class InboxMessage:
    """A message fetched from the hosted mailbox."""

    id: str
    subject: str
    body_html: str = ""
    body_text: str = ""
    links: List[InboxLink] = field(default_factory=list)
    to: List[str] = field(default_factory=list)
    received: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> InboxMessage:
        html = data.get("html") or {}
        text = data.get("text") or {}
        raw_links = html.get("links") or text.get("links") or []
        return cls(
            id=data.get("id", ""),
            subject=data.get("subject") or "",
            body_html=html.get("body") or "",
            body_text=text.get("body") or "",
            links=[InboxLink.from_dict(link) for link in raw_links],
            to=[a.get("email", "") for a in (data.get("to") or [])],
            received=_parse_timestamp(data.get("received")),
        )

    def __repr__(self) -> str:
        return f"<InboxMessage id={self.id!r} subject={self.subject!r}>"


@dataclass(frozen=True)
class ExtractedInvitation:
    invitation_url: Optional[str]
    subject: str
    message_id: str
    matched_known_subject: bool


@dataclass(frozen=True)
class ExtractedPasscode:
    code: Optional[str]
    message_id: Optional[str] = None


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class AccountOutcome:
    """Result of one account's activation attempt."""

    email: str
    status: OutcomeStatus
    reason: str = ""
    final_state: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.COMPLETED


@dataclass
class BatchResult:
    """Aggregated outcome of a batch, built one account at a time."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    outcomes: List[AccountOutcome] = field(default_factory=list)

    def record(self, outcome: AccountOutcome) -> None:
        self.outcomes.append(outcome)
        self.processed += 1
        if outcome.succeeded:
            self.succeeded += 1
        else:
            self.failed += 1

    @property
    def success_rate(self) -> int:
        """Success rate as a rounded percentage."""
        if not self.processed:
            return 0
        return round(self.succeeded / self.processed * 100)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "successRate": self.success_rate,
            "outcomes": [
                {
                    "email": o.email,
                    "status": o.status.value,
                    "reason": o.reason,
                    "finalState": o.final_state,
                    "warnings": list(o.warnings),
                }
                for o in self.outcomes
            ],
        }
