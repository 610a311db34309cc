"""Tests for extracting invitation links and passcodes from inbox messages."""
import pytest

from invite_e2e.mailbox import (
    extract_invitation,
    extract_invitation_url,
    extract_verification_code,
    is_invitation_subject,
)
from invite_e2e.models import InboxLink, InboxMessage


def _message(subject="Invitation to Project X", html="", text="", links=()):
    return InboxMessage(
        id="m1",
        subject=subject,
        body_html=html,
        body_text=text,
        links=[InboxLink(href=href) for href in links],
    )


def test_invitation_url_skips_mailto_links():
    message = _message(links=["mailto:help@example.com", "https://acc.example.com/invite/1", "https://other"])
    assert extract_invitation_url(message) == "https://acc.example.com/invite/1"


def test_invitation_url_requires_known_subject():
    message = _message(subject="Weekly digest", links=["https://acc.example.com/invite/1"])
    assert extract_invitation_url(message) is None
    invitation = extract_invitation(message)
    assert invitation.matched_known_subject is False
    assert invitation.invitation_url is None


def test_invitation_url_none_when_only_mailto_links():
    assert extract_invitation_url(_message(links=["mailto:a@b.c"])) is None


@pytest.mark.parametrize("subject", [
    "Invitation to ACME",
    "You have been invited to a project",
    "Join the team",
    "Welcome to the account",
    "You're invited to join ACME",
])
def test_known_invitation_subjects(subject):
    assert is_invitation_subject(subject)


def test_verification_code_from_text_body():
    assert extract_verification_code(_message(text="Your code: 482913")) == "482913"


def test_verification_code_prefers_html_body():
    message = _message(html="<p>Verification code: 111222</p>", text="code 999888")
    assert extract_verification_code(message) == "111222"


def test_verification_code_bare_six_digits():
    assert extract_verification_code(_message(html="<b>654321</b> expires soon")) == "654321"


def test_verification_code_missing_returns_none():
    assert extract_verification_code(_message(html="<p>No digits here</p>")) is None


def test_message_from_dict_falls_back_to_text_links():
    message = InboxMessage.from_dict({
        "id": "x",
        "subject": "Invitation to A",
        "html": {"body": "", "links": []},
        "text": {"body": "go", "links": [{"href": "https://t.example/1", "text": ""}]},
        "to": [{"email": "a@srv.mailosaur.net"}],
        "received": "2026-01-02T03:04:05Z",
    })
    assert [link.href for link in message.links] == ["https://t.example/1"]
    assert message.to == ["a@srv.mailosaur.net"]
    assert message.received.year == 2026
