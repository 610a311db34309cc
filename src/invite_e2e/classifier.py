"""Registration page classification.

The activation link lands on one of several generations of the registration
UI. Field presence is the only signal that stays stable across redesigns, so
the classifier gathers presence flags from the DOM first (``collect_evidence``)
and then decides with a pure, ordered rule list (``decide_variant``).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from invite_e2e.browser import Browser, CheckboxState

logger = logging.getLogger(__name__)

EMAIL_FIELD = 'input[name="email"], input[type="email"]'
PASSWORD_FIELD = 'input[type="password"], input[name="password"], input[placeholder*="password" i]'
# The legacy form used PascalCase field names.
LEGACY_FIELDS = (
    'input[name="FirstName"], input[name="LastName"], '
    'input[name="Email"], input[name="ConfirmEmail"]'
)
SIGN_IN_AFFORDANCES = (
    'button:has-text("Sign in"), button:has-text("Log in"), '
    'a:has-text("Sign in"), :text("Already have an account")'
)

_MARKETING_HINTS = ("marketing", "newsletter", "optional", "promo")
_TERMS_HINTS = ("generalterms", "terms", "agree")


class PageVariant(str, Enum):
    OLD_FORM = "old_form"
    TWO_STEP_NEW = "two_step_new"
    SINGLE_STEP_NEW = "single_step_new"
    ALREADY_REGISTERED = "already_registered"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PageEvidence:
    """DOM presence flags a classification was based on."""

    has_email_field: bool = False
    has_general_terms_checkbox: bool = False
    has_marketing_checkbox: bool = False
    has_password_field: bool = False
    password_visible: bool = False
    checkbox_count: int = 0
    has_legacy_fields: bool = False
    has_sign_in_affordance: bool = False

    def describe(self) -> str:
        return (
            f"email={self.has_email_field} generalTerms={self.has_general_terms_checkbox} "
            f"marketing={self.has_marketing_checkbox} password={self.has_password_field}"
            f"/visible={self.password_visible} checkboxes={self.checkbox_count} "
            f"legacy={self.has_legacy_fields} signIn={self.has_sign_in_affordance}"
        )


@dataclass(frozen=True)
class Classification:
    variant: PageVariant
    evidence: PageEvidence


def _checkbox_key(checkbox: CheckboxState) -> str:
    return f"{checkbox.name} {checkbox.id}".lower().replace("_", "").replace("-", "")


def is_marketing_checkbox(checkbox: CheckboxState) -> bool:
    key = _checkbox_key(checkbox)
    return any(hint in key for hint in _MARKETING_HINTS)


def is_general_terms_checkbox(checkbox: CheckboxState) -> bool:
    """Recognize the mandatory terms checkbox by its name/id."""
    if is_marketing_checkbox(checkbox):
        return False
    key = _checkbox_key(checkbox)
    return any(hint in key for hint in _TERMS_HINTS)


def first_unchecked_general_terms(checkboxes: Iterable[CheckboxState]) -> CheckboxState | None:
    for checkbox in checkboxes:
        if is_general_terms_checkbox(checkbox) and not checkbox.checked:
            return checkbox
    return None


def decide_variant(evidence: PageEvidence) -> PageVariant:
    """Map DOM evidence to a page variant; first matching rule wins.

    Checkboxes appear on both new-form generations, so the two-step form
    (email + terms, password not shown yet) is tested before the single-step
    form (password + terms).

    The single-step rule also requires that no legacy field is present. Old
    forms can carry a visible password and a privacy checkbox too, and
    without that guard they would be taken for the single-step form even
    though the legacy rule comes later in the order.
    """
    if evidence.has_email_field and evidence.has_general_terms_checkbox and not evidence.password_visible:
        return PageVariant.TWO_STEP_NEW
    if evidence.password_visible and evidence.checkbox_count >= 1 and not evidence.has_legacy_fields:
        return PageVariant.SINGLE_STEP_NEW
    if evidence.has_legacy_fields:
        return PageVariant.OLD_FORM
    if evidence.has_sign_in_affordance and not evidence.has_password_field:
        return PageVariant.ALREADY_REGISTERED
    return PageVariant.UNKNOWN


async def collect_evidence(browser: Browser, visibility_timeout: float = 3.0) -> PageEvidence:
    checkboxes = await browser.checkbox_states()
    password_count = await browser.count(PASSWORD_FIELD)
    password_visible = password_count > 0 and await browser.is_visible(PASSWORD_FIELD, visibility_timeout)
    return PageEvidence(
        has_email_field=await browser.count(EMAIL_FIELD) > 0,
        has_general_terms_checkbox=any(is_general_terms_checkbox(c) for c in checkboxes),
        has_marketing_checkbox=any(is_marketing_checkbox(c) for c in checkboxes),
        has_password_field=password_count > 0,
        password_visible=password_visible,
        checkbox_count=len(checkboxes),
        has_legacy_fields=await browser.count(LEGACY_FIELDS) > 0,
        has_sign_in_affordance=await browser.count(SIGN_IN_AFFORDANCES) > 0,
    )


async def classify_page(browser: Browser, visibility_timeout: float = 3.0) -> Classification:
    """Inspect the current page and decide which registration variant it is."""
    evidence = await collect_evidence(browser, visibility_timeout)
    variant = decide_variant(evidence)
    logger.info("Page classified as %s (%s)", variant.value, evidence.describe())
    return Classification(variant=variant, evidence=evidence)
