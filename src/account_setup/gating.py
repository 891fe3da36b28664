"""
Step Gating
===========

Pure predicates derived from SetupState.

The guard functions here are the single predicate set behind both
can_advance_to() and the transition engine's rejection_reason(), so UI
affordances and accepted events cannot disagree (INV-GATING-02).

INV-GATING-01: No function in this module modifies or replaces state.
"""

from __future__ import annotations

from contracts import (
    AccountDetails,
    AccountSetupError,
    ConnectionTestError,
    Credentials,
    DiscoveryError,
    DiscoveryMethod,
    PersistenceError,
    SetupProgress,
    SetupState,
    SetupStep,
)


# =============================================================================
# INPUT CHECKS
# =============================================================================

MAX_LABEL_LENGTH = 63
MAX_DOMAIN_LENGTH = 253


def domain_problem(domain: str) -> str | None:
    """Return why domain is not a usable DNS name, or None."""
    if len(domain) > MAX_DOMAIN_LENGTH:
        return f"Domain must be at most {MAX_DOMAIN_LENGTH} characters"
    for label in domain.split("."):
        if not label:
            return "Domain must not contain empty labels"
        if len(label) > MAX_LABEL_LENGTH:
            return f"Domain labels must be at most {MAX_LABEL_LENGTH} characters"
    return None


def email_address_problem(address: str) -> str | None:
    """Return why address is not a usable email address, or None."""
    candidate = address.strip()
    if not candidate:
        return "Email address is required"
    if any(ch.isspace() for ch in candidate):
        return "Email address must not contain whitespace"
    if candidate.count("@") != 1:
        return "Email address must contain exactly one '@'"
    local, _, domain = candidate.partition("@")
    if not local or not domain:
        return "Email address needs a name before and a domain after '@'"
    return domain_problem(domain)


def credential_problems(
    credentials: Credentials | None, details: AccountDetails | None
) -> list[str]:
    """List every missing required credential or account field."""
    problems = []
    if credentials is None or not credentials.username.strip():
        problems.append("Username is required")
    if credentials is None or not credentials.password:
        problems.append("Password is required")
    if details is None or not details.account_name.strip():
        problems.append("Account name is required")
    return problems


# =============================================================================
# GUARDS (shared with the transition engine)
# =============================================================================

def can_submit_email(state: SetupState) -> bool:
    return state.step is SetupStep.EMAIL and not state.is_loading


def can_retry_discovery(state: SetupState) -> bool:
    return (
        state.step in (SetupStep.DISCOVERY, SetupStep.MANUAL)
        and bool(state.email_address)
        and not state.is_loading
    )


def can_submit_manual_config(state: SetupState) -> bool:
    return state.step is SetupStep.MANUAL and not state.is_loading


def can_submit_credentials(state: SetupState) -> bool:
    return (
        state.step is SetupStep.AUTH
        and state.server_config is not None
        and not state.is_loading
    )


def can_edit_settings(state: SetupState) -> bool:
    return state.step is SetupStep.TESTING and not state.is_loading


def can_retry_test(state: SetupState) -> bool:
    return (
        state.step is SetupStep.TESTING
        and state.server_config is not None
        and state.credentials is not None
        and not state.is_loading
    )


def can_finish(state: SetupState) -> bool:
    return (
        state.step is SetupStep.SUCCESS
        and state.test_result is not None
        and state.test_result.success
        and not state.is_loading
    )


# =============================================================================
# DERIVED PREDICATES
# =============================================================================

def is_manual_step_visible(state: SetupState) -> bool:
    """
    True when the user needs manual server entry.

    Either discovery produced a failed result, or there is no result while the
    workflow sits on the manual step (adapter failure or user skip).
    """
    if state.discovery_result is not None:
        return not state.discovery_result.success
    return state.step is SetupStep.MANUAL


def is_step_complete(state: SetupState, step: SetupStep) -> bool:
    if step is SetupStep.EMAIL:
        return bool(state.email_address) and state.step > SetupStep.EMAIL
    if step is SetupStep.DISCOVERY:
        return state.discovery_result is not None and state.step > SetupStep.DISCOVERY
    if step is SetupStep.MANUAL:
        return (
            state.server_config is not None
            and state.server_config.discovery_method is DiscoveryMethod.MANUAL
            and state.step > SetupStep.MANUAL
        )
    if step is SetupStep.AUTH:
        return state.credentials is not None and state.step > SetupStep.AUTH
    if step is SetupStep.TESTING:
        return state.test_result is not None and state.test_result.success
    return state.step is SetupStep.SUCCESS


def can_advance_to(state: SetupState, step: SetupStep) -> bool:
    """Whether some event accepted from this state leads into step."""
    if step is SetupStep.EMAIL:
        return True
    if step is SetupStep.DISCOVERY:
        return can_submit_email(state) or can_retry_discovery(state)
    if step is SetupStep.MANUAL:
        return can_submit_email(state) or (
            not state.is_loading and is_manual_step_visible(state)
        )
    if step is SetupStep.AUTH:
        return (
            state.server_config is not None
            and not state.is_loading
            and state.step <= SetupStep.TESTING
        )
    if step is SetupStep.TESTING:
        return can_submit_credentials(state) or can_retry_test(state)
    return (
        state.test_result is not None
        and state.test_result.success
        and not state.is_loading
    )


def is_ready_for_creation(state: SetupState) -> bool:
    return (
        bool(state.email_address)
        and state.server_config is not None
        and state.credentials is not None
        and state.account_details is not None
        and can_finish(state)
    )


def setup_progress(state: SetupState) -> SetupProgress:
    completed = tuple(step for step in SetupStep if is_step_complete(state, step))
    return SetupProgress(
        current_step=state.step,
        completed_steps=completed,
        percent=round(len(completed) / len(SetupStep) * 100),
    )


def error_type_for(state: SetupState) -> type[AccountSetupError] | None:
    """Classify the current error by the step it left the workflow on."""
    if state.error is None:
        return None
    if state.step in (SetupStep.DISCOVERY, SetupStep.MANUAL):
        return DiscoveryError
    if state.step is SetupStep.TESTING:
        return ConnectionTestError
    if state.step is SetupStep.SUCCESS:
        return PersistenceError
    return AccountSetupError
