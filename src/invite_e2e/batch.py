"""Sequential activation of every invited account in a fixture."""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from invite_e2e.browser import Browser
from invite_e2e.config import HarnessSettings
from invite_e2e.flow import FlowExecutor
from invite_e2e.mailbox import InboxPoller
from invite_e2e.models import AccountOutcome, BatchResult, InvitedAccount, OutcomeStatus

logger = logging.getLogger(__name__)

NO_INVITATION_REASON = "no invitation link found"


class BatchOrchestrator:
    """Walks the accounts one by one in a single shared browser session.

    A failure of one account never stops the batch: its exception is turned
    into a failed outcome and the next account starts from a reset session.
    """

    def __init__(
        self,
        browser: Browser,
        poller: InboxPoller,
        settings: HarnessSettings,
        executor: Optional[FlowExecutor] = None,
    ):
        self.browser = browser
        self.poller = poller
        self.settings = settings
        self.executor = executor or FlowExecutor(browser, poller, settings)

    async def process_all(
        self, accounts: Sequence[InvitedAccount], limit: Optional[int] = None
    ) -> BatchResult:
        """Activate ``accounts`` in order; ``limit`` takes only the first N of them."""
        selected = list(accounts if limit is None else accounts[:limit])
        logger.info("Processing %d of %d invited account(s)", len(selected), len(accounts))

        result = BatchResult()
        for position, account in enumerate(selected, start=1):
            logger.info("[%d/%d] %s (%s)", position, len(selected), account.email, account.role)
            try:
                outcome = await self.process_one(account)
            except Exception as exc:
                outcome = AccountOutcome(
                    email=account.email,
                    status=OutcomeStatus.FAILED,
                    reason=f"{type(exc).__name__}: {exc}",
                )
                logger.error("Account %s failed: %s", account.email, outcome.reason)
            result.record(outcome)

        try:
            await self.browser.reset_session()
        except Exception as exc:
            # Outcomes are already recorded; a dead browser must not lose them.
            logger.warning("Final session reset failed: %s: %s", type(exc).__name__, exc)
        self.log_summary(result)
        return result

    async def process_one(self, account: InvitedAccount) -> AccountOutcome:
        """Reset the session, fetch the invitation and run the activation flow."""
        await self.browser.reset_session()

        invitation = await self.poller.wait_for_invitation(
            account.email, timeout=self.settings.invite_email_timeout
        )
        if not invitation.invitation_url:
            logger.error("No invitation link in email %r for %s", invitation.subject, account.email)
            return AccountOutcome(
                email=account.email, status=OutcomeStatus.FAILED, reason=NO_INVITATION_REASON
            )

        flow = await self.executor.run(
            account, invitation.invitation_url, exclude_message_ids=[invitation.message_id]
        )
        return AccountOutcome(
            email=account.email,
            status=flow.status,
            reason=flow.reason,
            final_state=flow.final_state.value if flow.final_state else None,
            warnings=list(flow.warnings),
        )

    @staticmethod
    def log_summary(result: BatchResult) -> None:
        logger.info("=" * 60)
        logger.info("Activation summary")
        logger.info("  Total:        %d", result.processed)
        logger.info("  Success:      %d", result.succeeded)
        logger.info("  Errors:       %d", result.failed)
        logger.info("  Success Rate: %d%%", result.success_rate)
        for outcome in result.outcomes:
            if not outcome.succeeded:
                logger.info("  FAILED %s: %s", outcome.email, outcome.reason)
        logger.info("=" * 60)
