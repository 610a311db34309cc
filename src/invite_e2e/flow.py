"""Activation flow: drives one invitation link to a completed account.

The executor navigates to the invitation URL, classifies the landed page and
hands over to the handler registered for that page variant. Every handler
ends in the shared Continue/passcode step except the already-registered one,
which touches nothing.

States reached are recorded in order on the :class:`FlowResult`, so a failed
outcome tells exactly how far the flow got.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Collection, Dict, List, Optional

from invite_e2e.browser import Browser, ToolError
from invite_e2e.classifier import (
    EMAIL_FIELD,
    PASSWORD_FIELD,
    PageVariant,
    classify_page,
    first_unchecked_general_terms,
)
from invite_e2e.config import HarnessSettings
from invite_e2e.errors import ClassificationError, FlowError, HarnessError
from invite_e2e.mailbox import InboxPoller
from invite_e2e.models import InvitedAccount, OutcomeStatus

logger = logging.getLogger(__name__)

FIRST_NAME_FIELD = 'input[name="firstName"], input[name="first_name"]'
LAST_NAME_FIELD = 'input[name="lastName"], input[name="last_name"]'

LEGACY_FIRST_NAME = 'input[name="FirstName"]'
LEGACY_LAST_NAME = 'input[name="LastName"]'
LEGACY_EMAIL = 'input[name="Email"]'
LEGACY_CONFIRM_EMAIL = 'input[name="ConfirmEmail"]'
LEGACY_PASSWORD = 'input[name="Password"]'
LEGACY_PRIVACY_CHECKBOX_ID = "privacypolicy_checkbox"

TWO_STEP_FIRST_SUBMIT = (
    'button[type="submit"], button:has-text("Continue"), '
    'button:has-text("Next"), button:has-text("Create")'
)
TWO_STEP_FINAL_SUBMIT = (
    'button[type="submit"], button:has-text("Create"), button:has-text("Complete")'
)
SINGLE_STEP_SUBMIT = (
    'button[type="submit"], button:has-text("Create"), button:has-text("Continue")'
)
LEGACY_SUBMIT = 'button[type="submit"], input[type="submit"]'

INTERSTITIAL_BUTTON = (
    'button:has-text("Continue"), button:has-text("Next"), button:has-text("Proceed")'
)
PASSCODE_FIELD = 'input[type="text"], input[name="code"], input[name="passcode"]'
PASSCODE_SUBMIT = (
    'button[type="submit"], button:has-text("Continue"), button:has-text("Verify")'
)

# Case-sensitive substrings of the page html that announce a passcode prompt.
OTP_KEYWORDS = ("passcode", "verification code", "Enter the code", "One-time", "6-digit")

ALREADY_ACTIVE_REASON = "skipped — already active"


class FlowState(str, Enum):
    LANDED = "landed"
    CLASSIFIED = "classified"
    FIELDS_FILLED = "fields_filled"
    SUBMITTED = "submitted"
    CONTINUE_CHECKED = "continue_checked"
    PASSCODE_CHALLENGED = "passcode_challenged"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class FlowResult:
    """What happened to one invitation link."""

    status: OutcomeStatus = OutcomeStatus.FAILED
    reason: str = ""
    variant: Optional[PageVariant] = None
    states: List[FlowState] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def final_state(self) -> Optional[FlowState]:
        return self.states[-1] if self.states else None

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.COMPLETED


@dataclass
class _FlowRun:
    """Per-invocation context handed to the variant handlers."""

    account: InvitedAccount
    invitation_url: str
    exclude_message_ids: Collection[str]
    started_at: datetime
    result: FlowResult

    def enter(self, state: FlowState) -> None:
        self.result.states.append(state)
        logger.debug("[%s] -> %s", self.account.email, state.value)

    def warn(self, message: str) -> None:
        self.result.warnings.append(message)
        logger.warning("[%s] %s", self.account.email, message)


def clean_name(raw: Optional[str], fallback: str) -> str:
    """Strip digits and surrounding whitespace; registration forms reject digits in names."""
    cleaned = re.sub(r"[0-9]", "", raw or "").strip()
    return cleaned or fallback


def display_name(raw: Optional[str], fallback: str) -> str:
    """Cleaned name with only the first letter upper-cased ("MFA12User3" -> "Mfauser")."""
    cleaned = clean_name(raw, fallback)
    return cleaned[:1].upper() + cleaned[1:].lower()


def _slug(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "-", value).strip("-").lower()


Handler = Callable[[_FlowRun], Awaitable[None]]


class FlowExecutor:
    """Runs the activation flow for one account at a time."""

    def __init__(self, browser: Browser, poller: Optional[InboxPoller], settings: HarnessSettings):
        self.browser = browser
        self.poller = poller
        self.settings = settings
        self._handlers: Dict[PageVariant, Handler] = {
            PageVariant.TWO_STEP_NEW: self._handle_two_step,
            PageVariant.SINGLE_STEP_NEW: self._handle_single_step,
            PageVariant.OLD_FORM: self._handle_old_form,
            PageVariant.ALREADY_REGISTERED: self._handle_already_registered,
            PageVariant.UNKNOWN: self._handle_unknown,
        }

    async def run(
        self,
        account: InvitedAccount,
        invitation_url: str,
        exclude_message_ids: Collection[str] = (),
    ) -> FlowResult:
        """Activate ``account`` through ``invitation_url``.

        Expected step failures (missing controls, element timeouts, browser
        errors, an unrecognized page) end in a FAILED result. Anything else
        propagates to the caller.
        """
        run = _FlowRun(
            account=account,
            invitation_url=invitation_url,
            exclude_message_ids=tuple(exclude_message_ids),
            started_at=datetime.now(timezone.utc),
            result=FlowResult(),
        )
        logger.info("Activating %s (%s)", account.email, account.role or "unknown role")
        try:
            await self.browser.goto(invitation_url)
            await self.browser.settle(self.settings.settle_delay)
            run.enter(FlowState.LANDED)
            logger.info("Landed on %s", self.browser.url)

            classification = await classify_page(self.browser, self.settings.element_timeout)
            run.result.variant = classification.variant
            run.enter(FlowState.CLASSIFIED)

            await self._handlers[classification.variant](run)
        except (HarnessError, ToolError) as exc:
            await self._fail(run, f"{type(exc).__name__}: {exc}")
        return run.result

    async def _fail(self, run: _FlowRun, reason: str) -> None:
        run.result.status = OutcomeStatus.FAILED
        run.result.reason = reason
        run.enter(FlowState.FAILED)
        logger.error("Activation failed for %s: %s", run.account.email, reason)
        variant = run.result.variant.value if run.result.variant else "unclassified"
        await self.browser.screenshot(f"failed-{_slug(run.account.email)}-{variant}")

    def _complete(self, run: _FlowRun, reason: str = "") -> None:
        run.result.status = OutcomeStatus.COMPLETED
        run.result.reason = reason
        run.enter(FlowState.COMPLETED)
        logger.info("Activation completed for %s", run.account.email)

    # ------------------------------------------------------------------
    # Variant handlers
    # ------------------------------------------------------------------

    async def _handle_two_step(self, run: _FlowRun) -> None:
        timeout = self.settings.field_timeout
        await self.browser.fill(EMAIL_FIELD, run.account.email, timeout=timeout)
        await self._accept_general_terms(run)
        run.enter(FlowState.FIELDS_FILLED)
        await self._submit(run, TWO_STEP_FIRST_SUBMIT)

        await self.browser.wait_for_visible(PASSWORD_FIELD, timeout=timeout)
        await self.browser.fill(PASSWORD_FIELD, self.settings.test_password, timeout=timeout)
        run.enter(FlowState.FIELDS_FILLED)
        await self._submit(run, TWO_STEP_FINAL_SUBMIT)

        await self._continue_and_passcode(run, check_continue=True)

    async def _handle_single_step(self, run: _FlowRun) -> None:
        first_name = display_name(run.account.first_name, "Test")
        last_name = display_name(run.account.last_name, "User")
        timeout = self.settings.field_timeout

        if await self.browser.count(FIRST_NAME_FIELD):
            await self.browser.fill(FIRST_NAME_FIELD, first_name, timeout=timeout)
        if await self.browser.count(LAST_NAME_FIELD):
            await self.browser.fill(LAST_NAME_FIELD, last_name, timeout=timeout)
        await self.browser.fill(PASSWORD_FIELD, self.settings.test_password, timeout=timeout)
        await self._accept_general_terms(run)
        run.enter(FlowState.FIELDS_FILLED)
        await self._submit(run, SINGLE_STEP_SUBMIT)

        await self._continue_and_passcode(run, check_continue=True)

    async def _handle_old_form(self, run: _FlowRun) -> None:
        account = run.account
        timeout = self.settings.field_timeout
        await self.browser.fill(LEGACY_FIRST_NAME, display_name(account.first_name, "Test"), timeout=timeout)
        await self.browser.fill(LEGACY_LAST_NAME, display_name(account.last_name, "User"), timeout=timeout)
        await self.browser.fill(LEGACY_EMAIL, account.email, timeout=timeout)
        await self.browser.fill(LEGACY_CONFIRM_EMAIL, account.email, timeout=timeout)
        await self.browser.fill(LEGACY_PASSWORD, self.settings.test_password, timeout=timeout)

        # The legacy privacy checkbox sits under a styled overlay.
        if not await self.browser.click_by_id(LEGACY_PRIVACY_CHECKBOX_ID):
            run.warn("Privacy policy checkbox not found on legacy form")
        run.enter(FlowState.FIELDS_FILLED)
        await self._submit(run, LEGACY_SUBMIT)

        await self._continue_and_passcode(run, check_continue=False)

    async def _handle_already_registered(self, run: _FlowRun) -> None:
        logger.info("%s is already registered, nothing to do", run.account.email)
        self._complete(run, ALREADY_ACTIVE_REASON)

    async def _handle_unknown(self, run: _FlowRun) -> None:
        title = await self.browser.title()
        raise ClassificationError(f"Unrecognized registration page {self.browser.url!r} (title {title!r})")

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _accept_general_terms(self, run: _FlowRun) -> None:
        """Check the first unchecked general-terms checkbox; never marketing ones."""
        checkbox = first_unchecked_general_terms(await self.browser.checkbox_states())
        if checkbox is None:
            logger.debug("No unchecked general terms checkbox on the page")
            return
        await self.browser.check_checkbox(checkbox.index)
        logger.info("Accepted general terms (%s)", checkbox.name or checkbox.id or checkbox.index)

    async def _submit(self, run: _FlowRun, selector: str) -> None:
        if not await self.browser.is_visible(selector, self.settings.element_timeout):
            raise FlowError(f"no submit control found ({selector})")
        await self.browser.click(selector, timeout=self.settings.field_timeout)
        run.enter(FlowState.SUBMITTED)
        await self.browser.settle(self.settings.settle_delay)
        logger.info("Form submitted, now at %s", self.browser.url)

    async def _continue_and_passcode(self, run: _FlowRun, check_continue: bool) -> None:
        """Click through an interstitial page and answer a passcode prompt if one shows up.

        Nothing in here fails the activation: the account was created by the
        submit, so problems are only recorded as warnings.
        """
        if check_continue:
            try:
                if await self.browser.is_visible(INTERSTITIAL_BUTTON, self.settings.element_timeout):
                    await self.browser.click(INTERSTITIAL_BUTTON, timeout=self.settings.field_timeout)
                    await self.browser.settle(self.settings.settle_delay)
                    logger.info("Clicked through interstitial, now at %s", self.browser.url)
            except (HarnessError, ToolError) as exc:
                run.warn(f"Continue button click failed: {exc}")
            run.enter(FlowState.CONTINUE_CHECKED)

        content = await self.browser.content()
        if any(keyword in content for keyword in OTP_KEYWORDS):
            run.enter(FlowState.PASSCODE_CHALLENGED)
            await self._answer_passcode(run)
        else:
            logger.info("No passcode prompt for %s", run.account.email)

        self._complete(run)

    async def _answer_passcode(self, run: _FlowRun) -> None:
        email = run.account.email
        if self.poller is None:
            run.warn("Passcode requested but no mailbox is configured")
            return
        try:
            passcode = await self.poller.wait_for_passcode(
                email,
                timeout=self.settings.passcode_email_timeout,
                exclude_ids=run.exclude_message_ids,
                received_after=run.started_at,
            )
            if not await self.browser.is_visible(PASSCODE_FIELD, self.settings.element_timeout):
                run.warn("Passcode input not found")
                return
            await self.browser.fill(PASSCODE_FIELD, passcode.code or "", timeout=self.settings.field_timeout)
            if not await self.browser.is_visible(PASSCODE_SUBMIT, self.settings.element_timeout):
                run.warn("Passcode submit button not found")
                return
            await self.browser.click(PASSCODE_SUBMIT, timeout=self.settings.field_timeout)
            await self.browser.settle(self.settings.settle_delay)
            logger.info("Passcode verified for %s", email)
        except (HarnessError, ToolError) as exc:
            run.warn(f"Passcode handling failed: {type(exc).__name__}: {exc}")
