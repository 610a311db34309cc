"""Command line entry point: ``invite-e2e``.

Subcommands:
    provision   invite the role matrix (or one user) and write the fixture
    activate    activate every invited account from the fixture
    single      activate only the first invited account
    run-all     cleanup, provision, verify the fixture, then activate
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import anyio

from invite_e2e import __version__
from invite_e2e.api_client import ProductApiClient
from invite_e2e.batch import BatchOrchestrator
from invite_e2e.browser import browser_session
from invite_e2e.config import HarnessSettings, load_settings
from invite_e2e.env_defaults import get_env
from invite_e2e.errors import ConfigError, FixtureError, HarnessError
from invite_e2e.ledger import InvitationLedger, cleanup, fixture_paths, load_fixture
from invite_e2e.mailbox import InboxPoller, MailosaurClient
from invite_e2e.models import BatchResult, InvitedAccount
from invite_e2e.provisioning import Provisioner, default_plan, random_prefix, single_user_plan

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    if not verbose:
        # One line per mailbox poll is noise at INFO.
        logging.getLogger("httpx").setLevel(logging.WARNING)


def _mail_domain(settings: HarnessSettings) -> str:
    if not settings.mailosaur_server_id:
        raise ConfigError("MAILOSAUR_SERVER_ID is required to build invitation addresses")
    return f"{settings.mailosaur_server_id}.mailosaur.net"


def provision(settings: HarnessSettings, single_email: Optional[str] = None,
              account_key: Optional[str] = None) -> InvitationLedger:
    """Run a provisioning plan against the product API and write the fixture files."""
    client_id, client_secret = settings.require_api_credentials()
    environment = settings.environment()
    client = ProductApiClient(environment.api_root, environment.default_user_id, environment.region)
    try:
        client.authenticate(client_id, client_secret)
        ledger = InvitationLedger()
        if single_email is not None:
            email = single_email or get_env("USER_EMAIL") or f"custom@{_mail_domain(settings)}"
            key = account_key or get_env("ACCOUNT_ID") or environment.first_account_id()
            if not key:
                raise ConfigError(f"No account configured for {environment.name}; pass --account")
            plan = single_user_plan(email, key)
        else:
            plan = default_plan(random_prefix(), environment.name, _mail_domain(settings))
        Provisioner(client, ledger, environment).run_plan(plan)
    finally:
        client.close()

    if not len(ledger):
        raise FixtureError("Provisioning invited nobody; refusing to write an empty fixture")
    ledger.save(settings.test_data_dir, settings.test_env)
    return ledger


async def activate(settings: HarnessSettings, accounts: Sequence[InvitedAccount],
                   limit: Optional[int] = None) -> BatchResult:
    """Activate ``accounts`` in one browser session."""
    api_key, server_id = settings.require_mailbox()
    async with MailosaurClient(api_key, base_url=settings.mailosaur_base_url) as mailbox:
        poller = InboxPoller(mailbox, server_id, poll_interval=settings.inbox_poll_interval)
        async with browser_session(
            headless=settings.headless,
            slow_mo=settings.slow_mo_ms,
            screenshot_dir=settings.screenshot_dir,
        ) as browser:
            orchestrator = BatchOrchestrator(browser, poller, settings)
            return await orchestrator.process_all(accounts, limit=limit)


def _load_accounts(settings: HarnessSettings) -> List[InvitedAccount]:
    json_path, _ = fixture_paths(settings.test_data_dir, settings.test_env)
    return load_fixture(json_path)


def _write_report(result: BatchResult, report: Optional[str]) -> None:
    if not report:
        return
    path = Path(report)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
    logger.info("Batch report written to %s", path)


def _run_batch(settings: HarnessSettings, accounts: Sequence[InvitedAccount],
               limit: Optional[int], report: Optional[str]) -> int:
    result = anyio.run(activate, settings, accounts, limit)
    _write_report(result, report)
    return EXIT_OK if result.failed == 0 else EXIT_FAILURE


def cmd_provision(settings: HarnessSettings, args: argparse.Namespace) -> int:
    provision(settings, single_email=args.single, account_key=args.account)
    return EXIT_OK


def cmd_activate(settings: HarnessSettings, args: argparse.Namespace) -> int:
    limit = args.limit if args.limit is not None else settings.batch_limit
    return _run_batch(settings, _load_accounts(settings), limit, args.report)


def cmd_single(settings: HarnessSettings, args: argparse.Namespace) -> int:
    return _run_batch(settings, _load_accounts(settings)[:1], None, args.report)


def cmd_run_all(settings: HarnessSettings, args: argparse.Namespace) -> int:
    logger.info("=" * 60)
    logger.info("End-to-end run: provisioning + activation (%s)", settings.test_env)
    logger.info("=" * 60)

    logger.info("Step 1: cleaning up previous fixture files")
    cleanup(fixture_paths(settings.test_data_dir, settings.test_env))

    logger.info("Step 2: provisioning projects and invitations")
    provision(settings)

    logger.info("Step 3: verifying the fixture")
    accounts = _load_accounts(settings)
    for index, account in enumerate(accounts[:3], start=1):
        logger.info("  %d. %s (%s) - %s %s", index, account.email, account.role,
                    account.first_name or "", account.last_name or "")

    logger.info("Step 4: activating the first invited account")
    single_status = _run_batch(settings, accounts[:1], None, None)

    logger.info("Step 5: activating all invited accounts")
    limit = args.limit if args.limit is not None else settings.batch_limit
    batch_status = _run_batch(settings, accounts, limit, args.report)
    return max(single_status, batch_status)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invite-e2e",
        description="Provision invited users and drive their account activation end to end",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--env", dest="test_env", default=None,
                        help="Target environment (default: TEST_ENV or staging-us)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--screenshots", default=None, metavar="DIR",
                        help="Save screenshots of failed activations to DIR")
    subparsers = parser.add_subparsers(dest="command", required=True)

    prov = subparsers.add_parser("provision", help="Create projects, invite users, write the fixture")
    prov.add_argument("--single", nargs="?", const="", default=None, metavar="EMAIL",
                      help="Invite one account admin (default: USER_EMAIL or custom@<server>)")
    prov.add_argument("--account", default=None, metavar="KEY",
                      help="Account key or id for --single (default: ACCOUNT_ID or the first account)")
    prov.set_defaults(handler=cmd_provision)

    act = subparsers.add_parser("activate", help="Activate every invited account from the fixture")
    act.add_argument("--limit", type=int, default=None, help="Process only the first N accounts")
    act.add_argument("--report", default=None, metavar="PATH", help="Write the batch result as JSON")
    act.set_defaults(handler=cmd_activate)

    single = subparsers.add_parser("single", help="Activate only the first invited account")
    single.add_argument("--report", default=None, metavar="PATH", help="Write the result as JSON")
    single.set_defaults(handler=cmd_single)

    run_all = subparsers.add_parser("run-all", help="Cleanup, provision and activate")
    run_all.add_argument("--limit", type=int, default=None, help="Batch only the first N accounts")
    run_all.add_argument("--report", default=None, metavar="PATH", help="Write the batch result as JSON")
    run_all.set_defaults(handler=cmd_run_all)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        settings = load_settings(args.test_env)
        if args.headed:
            settings.headless = False
        if args.screenshots:
            settings.screenshot_dir = args.screenshots
        return args.handler(settings, args)
    except HarnessError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
