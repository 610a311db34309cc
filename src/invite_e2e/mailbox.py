"""Hosted mailbox access: polling for invitation and passcode emails.

Invitations and one-time passcodes are delivered to a Mailosaur server. Every
invited address is unique to its user, so messages are looked up by
recipient rather than by session.

Usage:
    async with MailosaurClient(api_key="...") as client:
        poller = InboxPoller(client, server_id="abcd1234")
        invitation = await poller.wait_for_invitation("user@abcd1234.mailosaur.net")
        print(invitation.invitation_url)

The extraction helpers are plain functions over :class:`InboxMessage` and
never raise on a miss; they return ``None`` instead.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Callable, Collection, Iterable, Optional

import httpx

from invite_e2e.errors import TransportError
from invite_e2e.models import ExtractedInvitation, ExtractedPasscode, InboxMessage
from invite_e2e.waits import wait_until

logger = logging.getLogger(__name__)

INVITATION_SUBJECTS = (
    "Invitation to",
    "You have been invited",
    "Join the",
    "Welcome to the",
    "You're invited to join",
)

# Ordered from most to least specific; the first pattern that matches wins.
VERIFICATION_CODE_PATTERNS = (
    re.compile(r"verification code[:\s]*(\d{4,8})", re.IGNORECASE),
    re.compile(r"code[:\s]*(\d{4,8})", re.IGNORECASE),
    re.compile(r"enter[:\s]*(\d{4,8})", re.IGNORECASE),
    re.compile(r"(\d{6})"),
    re.compile(r"\b(\d{6})\b"),
)

MAILTO_SCHEME = "mailto:"


def is_invitation_subject(subject: str | None) -> bool:
    if not subject:
        return False
    return any(known in subject for known in INVITATION_SUBJECTS)


def extract_invitation_url(message: InboxMessage) -> str | None:
    """Return the invitation link from an invitation email.

    Only messages whose subject matches one of :data:`INVITATION_SUBJECTS`
    qualify. The first link that is not a ``mailto:`` link is the action
    button; contact/support links come as ``mailto:``.
    """
    if not is_invitation_subject(message.subject):
        return None
    for link in message.links:
        if link.href and not link.href.startswith(MAILTO_SCHEME):
            return link.href
    return None


def extract_invitation(message: InboxMessage) -> ExtractedInvitation:
    return ExtractedInvitation(
        invitation_url=extract_invitation_url(message),
        subject=message.subject,
        message_id=message.id,
        matched_known_subject=is_invitation_subject(message.subject),
    )


def extract_verification_code(message: InboxMessage) -> str | None:
    """Return the numeric verification code contained in a message.

    The rendered html body is preferred; the plain text body is used only when
    the message has no html part.
    """
    content = message.body_html or message.body_text or ""
    for pattern in VERIFICATION_CODE_PATTERNS:
        match = pattern.search(content)
        if match:
            return match.group(1)
    return None


class MailosaurClient:
    """Async client for the Mailosaur REST API.

    Args:
        api_key: Mailosaur API key (sent as the basic-auth username)
        base_url: API base URL
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests inject a MockTransport)
    """

    DEFAULT_BASE_URL = "https://mailosaur.com/api"

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ValueError("Mailosaur API key is required")
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=timeout,
            auth=(api_key, ""),
            transport=transport,
        )

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{endpoint}"
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                f"Mailbox request {method} {endpoint} failed with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Mailbox request {method} {endpoint} failed: {exc}") from exc
        return response

    async def search(
        self,
        server_id: str,
        sent_to: str,
        received_after: datetime | None = None,
        items_per_page: int = 50,
    ) -> list[dict[str, Any]]:
        """Return message summaries sent to ``sent_to`` (newest first)."""
        params: dict[str, Any] = {"server": server_id, "page": 0, "itemsPerPage": items_per_page}
        if received_after is not None:
            params["receivedAfter"] = received_after.isoformat()
        response = await self._request(
            "POST", "/messages/search", params=params, json={"sentTo": sent_to}
        )
        return response.json().get("items") or []

    async def get_message(self, message_id: str) -> InboxMessage:
        response = await self._request("GET", f"/messages/{message_id}")
        return InboxMessage.from_dict(response.json())

    async def delete_message(self, message_id: str) -> None:
        await self._request("DELETE", f"/messages/{message_id}")

    async def delete_all(self, server_id: str) -> None:
        await self._request("DELETE", "/messages", params={"server": server_id})

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> MailosaurClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


class InboxPoller:
    """Waits for messages addressed to a recipient and extracts their payload."""

    def __init__(self, client: MailosaurClient, server_id: str, poll_interval: float = 2.0):
        self.client = client
        self.server_id = server_id
        self.poll_interval = poll_interval

    async def wait_for_message(
        self,
        recipient: str,
        predicate: Optional[Callable[[InboxMessage], bool]] = None,
        timeout: float = 60.0,
        received_after: datetime | None = None,
    ) -> InboxMessage:
        """Poll until a message for ``recipient`` satisfying ``predicate`` arrives.

        Raises:
            WaitTimeoutError: nothing matched within ``timeout`` seconds
            TransportError: the mailbox service failed; not retried here
        """
        inspected: set[str] = set()

        async def poll() -> InboxMessage | None:
            summaries = await self.client.search(self.server_id, recipient, received_after)
            for summary in summaries:
                message_id = summary.get("id")
                if not message_id or message_id in inspected:
                    continue
                inspected.add(message_id)
                message = await self.client.get_message(message_id)
                if predicate is None or predicate(message):
                    return message
            return None

        logger.info("Waiting for email to %s (timeout %ss)", recipient, timeout)
        message = await wait_until(
            poll,
            timeout=timeout,
            poll_interval=self.poll_interval,
            description=f"email to {recipient}",
        )
        logger.info("Email received for %s: %r", recipient, message.subject)
        return message

    async def wait_for_invitation(self, recipient: str, timeout: float = 60.0) -> ExtractedInvitation:
        """Wait for the newest invitation email to ``recipient``.

        Passcode mails from an earlier activation of the same address are
        skipped; only subjects from :data:`INVITATION_SUBJECTS` match.
        """
        message = await self.wait_for_message(
            recipient, lambda m: is_invitation_subject(m.subject), timeout=timeout
        )
        invitation = extract_invitation(message)
        if invitation.invitation_url is None:
            logger.warning("Invitation email %s carries no web link", message.id)
        else:
            logger.info("Invitation URL: %s", invitation.invitation_url)
        return invitation

    async def wait_for_passcode(
        self,
        recipient: str,
        timeout: float = 60.0,
        exclude_ids: Collection[str] = (),
        received_after: datetime | None = None,
    ) -> ExtractedPasscode:
        """Wait for a message carrying a verification code.

        Messages listed in ``exclude_ids`` (typically the invitation already
        consumed) are ignored.
        """
        excluded = set(exclude_ids)

        def carries_code(message: InboxMessage) -> bool:
            return message.id not in excluded and extract_verification_code(message) is not None

        message = await self.wait_for_message(
            recipient, carries_code, timeout=timeout, received_after=received_after
        )
        code = extract_verification_code(message)
        logger.info("Found verification code for %s", recipient)
        return ExtractedPasscode(code=code, message_id=message.id)

    async def delete_messages(self, message_ids: Iterable[str]) -> None:
        for message_id in message_ids:
            await self.client.delete_message(message_id)

    async def purge(self) -> None:
        """Delete every message on the server."""
        await self.client.delete_all(self.server_id)
        logger.info("Deleted all messages from mailbox server %s", self.server_id)
