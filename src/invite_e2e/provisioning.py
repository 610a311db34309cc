"""
Provisioning: create projects and invite users through the product API.

The plan is declarative. Each account lists the projects to create, the users
invited to each project, and the users invited at account level:

    ACCOUNT 1:
      project "TESTING ADVANCE ADD"  -> project admin (APMA User)
      account level                  -> 2 account admins

    ACCOUNT 2:
      project "MFA"                  -> 2 project admins (MFA User)
      account level                  -> project executive, 2 account admins

Every invitation the API accepts is recorded in the :class:`InvitationLedger`,
which becomes the fixture the activation batch works from.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from invite_e2e.api_client import ProductApiClient
from invite_e2e.environments import PROJECT_USERS_PATH, PROJECTS_PATH, EnvironmentProfile
from invite_e2e.errors import ProductApiError
from invite_e2e.ledger import InvitationLedger
from invite_e2e.models import Role

logger = logging.getLogger(__name__)

PROJECT_ADMIN_PRODUCTS = [{"key": "projectAdministration", "access": "administrator"}]
ACCOUNT_ADMIN_ACCESS = {"accountAdmin": True, "accountStandardsAdministrator": True}
EXECUTIVE_ACCESS = {"executive": True}


def project_name(suffix: str, rng: Optional[random.Random] = None) -> str:
    """Unique project name: ``PR<3 random digits>-<last 6 digits of ms clock>-<suffix>``."""
    rng = rng or random.Random()
    stamp = str(int(time.time() * 1000))[-6:]
    return f"PR{rng.randint(100, 999)}-{stamp}-{suffix}"


@dataclass
class ProjectPayload:
    """Body of a project creation request."""
    name: str
    classification: str = "production"
    start_date: str = "2010-01-01"
    end_date: str = "2015-12-31"
    type: str = "Hospital"
    value: int = 1650000
    currency: str = "USD"
    job_number: str = "HP-0002"
    address_line1: str = "123 Main Street"
    address_line2: str = "Suite 2"
    city: str = "San Francisco"
    state_or_province: str = "California"
    postal_code: str = "94001"
    country: str = "United States"
    timezone: str = "America/Los_Angeles"
    construction_type: str = "New Construction"
    delivery_method: str = "Unit Price"
    current_phase: str = "Design"
    products: List[str] = field(default_factory=lambda: ["docs", "build"])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "classification": self.classification,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "type": self.type,
            "projectValue": {"value": self.value, "currency": self.currency},
            "jobNumber": self.job_number,
            "addressLine1": self.address_line1,
            "addressLine2": self.address_line2,
            "city": self.city,
            "stateOrProvince": self.state_or_province,
            "postalCode": self.postal_code,
            "country": self.country,
            "timezone": self.timezone,
            "constructionType": self.construction_type,
            "deliveryMethod": self.delivery_method,
            "currentPhase": self.current_phase,
            "products": [{"key": key} for key in self.products],
        }


@dataclass
class UserInvite:
    """One user invitation; project admins go to a project, everyone else to the account."""
    email: str
    first_name: str
    last_name: str
    role: Role

    @property
    def scope(self) -> str:
        return "project" if self.role is Role.PROJECT_ADMIN else "account"

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
        }
        if self.role is Role.PROJECT_ADMIN:
            payload["products"] = [dict(p) for p in PROJECT_ADMIN_PRODUCTS]
        elif self.role is Role.PROJECT_EXECUTIVE:
            payload["accessLevels"] = dict(EXECUTIVE_ACCESS)
        else:
            payload["accessLevels"] = dict(ACCOUNT_ADMIN_ACCESS)
        return payload


@dataclass
class InviteSpec:
    """One user the plan invites."""
    email: str
    first_name: str
    last_name: str
    role: Role

    def to_invite(self) -> UserInvite:
        return UserInvite(self.email, self.first_name, self.last_name, self.role)


@dataclass
class ProjectSpec:
    """A project and the users invited to it."""
    name_suffix: str
    invites: List[InviteSpec] = field(default_factory=list)


@dataclass
class AccountPlan:
    """Everything provisioned inside one account."""
    account_key: str
    projects: List[ProjectSpec] = field(default_factory=list)
    invites: List[InviteSpec] = field(default_factory=list)


def default_plan(prefix: str, env_name: str, mail_domain: str) -> List[AccountPlan]:
    """Two-account role matrix invited on every full run.

    ``prefix`` keeps addresses unique across runs; ``mail_domain`` is the
    mailbox server's domain (``<server id>.mailosaur.net``).
    """
    def address(local: str) -> str:
        return f"{prefix}{local}@{mail_domain}"

    return [
        AccountPlan(
            account_key="account1",
            projects=[
                ProjectSpec(
                    name_suffix="TESTING ADVANCE ADD",
                    invites=[
                        InviteSpec(address(f"user_apma_{env_name}+13"), "APMA", "User", Role.PROJECT_ADMIN),
                    ],
                ),
            ],
            invites=[
                InviteSpec(address(f"app_gallery_1_{env_name}+01"), "App Gallery", "One", Role.ACCOUNT_ADMIN),
                InviteSpec(address(f"custom_ints_1_{env_name}+01"), "Custom", "user", Role.ACCOUNT_ADMIN),
            ],
        ),
        AccountPlan(
            account_key="account2",
            projects=[
                ProjectSpec(
                    name_suffix="MFA",
                    invites=[
                        InviteSpec(address(f"user_mfa_{env_name}+01"), "MFA", "User", Role.PROJECT_ADMIN),
                        InviteSpec(address(f"user_mfa_{env_name}+05"), "MFA", "User", Role.PROJECT_ADMIN),
                    ],
                ),
            ],
            invites=[
                InviteSpec(address(f"user_mfa_{env_name}+04"), "MFA", "User", Role.PROJECT_EXECUTIVE),
                InviteSpec(address(f"user_mfa_{env_name}+02"), "MFA", "User", Role.ACCOUNT_ADMIN),
                InviteSpec(address(f"oversheetlimit+{env_name}"), "overlimit", "sheet", Role.ACCOUNT_ADMIN),
            ],
        ),
    ]


def single_user_plan(email: str, account_key: str) -> List[AccountPlan]:
    """Invite one account admin; ``account_key`` may be a profile key or a literal account id."""
    return [
        AccountPlan(
            account_key=account_key,
            invites=[InviteSpec(email, "Custom", "Integration", Role.ACCOUNT_ADMIN)],
        )
    ]


def random_prefix(rng: Optional[random.Random] = None) -> str:
    return str((rng or random.Random()).randint(100, 999))


class Provisioner:
    """Executes a provisioning plan and records every invitation in the ledger."""

    def __init__(self, client: ProductApiClient, ledger: InvitationLedger,
                 environment: EnvironmentProfile):
        self.client = client
        self.ledger = ledger
        self.environment = environment

    def create_project(self, account_id: str, payload: ProjectPayload) -> Dict[str, Any]:
        logger.info("Creating project %r in account %s", payload.name, account_id)
        project = self.client.post(PROJECTS_PATH.format(account_id=account_id), payload.to_dict())
        if not isinstance(project, dict) or not project.get("id"):
            raise ProductApiError("Project creation response carries no id", body=project)
        logger.info("Project created: %s", project["id"])
        return project

    def invite_user(self, invite: UserInvite, account_id: str,
                    project_id: Optional[str] = None) -> Dict[str, Any]:
        """Invite one user and record the invitation."""
        if invite.scope == "project":
            if not project_id:
                raise ValueError(f"{invite.email}: project-scoped invitation needs a project id")
            path = PROJECT_USERS_PATH.format(project_id=project_id)
        else:
            path = self.environment.account_users_url(account_id)

        logger.info("Inviting %s as %s", invite.email, invite.role.value)
        response = self.client.post(path, invite.to_payload())
        self.ledger.add(
            invite.email,
            invite.role,
            account_id=account_id,
            project_id=project_id if invite.scope == "project" else None,
            first_name=invite.first_name,
            last_name=invite.last_name,
        )
        return response

    def run_plan(self, plan: List[AccountPlan]) -> InvitationLedger:
        """Provision every account in ``plan``; the first API error aborts the run."""
        for account_plan in plan:
            account_id = self.environment.account_id(account_plan.account_key)
            logger.info("Provisioning %s (%s)", account_plan.account_key, account_id)

            for project_spec in account_plan.projects:
                project = self.create_project(account_id, ProjectPayload(name=project_name(project_spec.name_suffix)))
                for spec in project_spec.invites:
                    self.invite_user(spec.to_invite(), account_id, project_id=project["id"])

            for spec in account_plan.invites:
                self.invite_user(spec.to_invite(), account_id)

        logger.info("Provisioning finished: %d invitation(s) %s", len(self.ledger), self.ledger.summary())
        return self.ledger
