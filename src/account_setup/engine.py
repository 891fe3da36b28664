"""
Transition Engine
=================

Pure (SetupState, SetupEvent) -> SetupState function for the account setup
workflow. Implements TransitionEngineContract.

CONSTITUTIONAL INVARIANTS ENFORCED:
- INV-ENGINE-01: Deterministic; no I/O, no clock, no randomness
- INV-ENGINE-05: Pending operation blocks every event except reset and the
  matching completion
- INV-ENGINE-06: success=True without config is treated as failure
- INV-ENGINE-07: error cleared whenever a new step begins

The engine never raises. An event whose precondition fails returns the input
state unchanged; rejection_reason() says why.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from contracts import (
    AccountCreated,
    AccountCreationFailed,
    ClearSetup,
    DiscoveryFailed,
    DiscoveryResult,
    DiscoverySucceeded,
    EditSettings,
    FinishSetup,
    InitializeSetup,
    PendingOperation,
    RetryDiscovery,
    RetryTest,
    SetupEvent,
    SetupState,
    SetupStep,
    SkipDiscovery,
    SubmitCredentials,
    SubmitEmail,
    SubmitManualConfig,
    TestFailed,
    TestSucceeded,
)
from src.account_setup import gating

logger = logging.getLogger("account-setup.engine")

EMPTY_CONFIG_MESSAGE = "Discovery reported success without a usable server configuration"

_DISCOVERY_OPERATIONS = (PendingOperation.DISCOVERY, PendingOperation.MANUAL_DISCOVERY)


def rejection_reason(state: SetupState, event: SetupEvent) -> str | None:
    """
    Return why event does not apply to state, or None if it does.

    Shares its guards with gating.can_advance_to (INV-GATING-02).
    """
    if isinstance(event, (InitializeSetup, ClearSetup)):
        return None

    if isinstance(event, (DiscoverySucceeded, DiscoveryFailed)):
        if state.pending not in _DISCOVERY_OPERATIONS:
            return "No discovery is in progress"
        return None
    if isinstance(event, (TestSucceeded, TestFailed)):
        if state.pending is not PendingOperation.TEST:
            return "No connection test is in progress"
        return None
    if isinstance(event, (AccountCreated, AccountCreationFailed)):
        if state.pending is not PendingOperation.CREATE:
            return "No account creation is in progress"
        return None

    if state.is_loading:
        return "Another operation is still in progress"

    if isinstance(event, (SubmitEmail, SkipDiscovery)):
        if not gating.can_submit_email(state):
            return "Email can only be submitted on the email step"
        return gating.email_address_problem(event.address)
    if isinstance(event, RetryDiscovery):
        if not gating.can_retry_discovery(state):
            return "Discovery can only be retried after an email address was submitted"
        return None
    if isinstance(event, SubmitManualConfig):
        if not gating.can_submit_manual_config(state):
            return "Manual configuration is only available on the manual step"
        if not event.server_hint.strip():
            return "Server name is required"
        return None
    if isinstance(event, SubmitCredentials):
        if not gating.can_submit_credentials(state):
            return "Credentials can only be submitted once a server is configured"
        problems = gating.credential_problems(event.credentials, event.details)
        return "; ".join(problems) if problems else None
    if isinstance(event, EditSettings):
        if not gating.can_edit_settings(state):
            return "Settings can only be edited from the testing step"
        return None
    if isinstance(event, RetryTest):
        if not gating.can_retry_test(state):
            return "Connection test can only be retried from the testing step"
        return None
    if isinstance(event, FinishSetup):
        if not gating.can_finish(state):
            return "Setup can only be finished after a successful connection test"
        return None

    return f"Unknown event: {type(event).__name__}"


def transition(state: SetupState, event: SetupEvent) -> SetupState:
    """Apply event to state. Rejected events return state unchanged."""
    if rejection_reason(state, event) is not None:
        return state

    if isinstance(event, (InitializeSetup, ClearSetup, AccountCreated)):
        return SetupState()

    if isinstance(event, SubmitEmail):
        return replace(
            state,
            email_address=event.address.strip(),
            step=SetupStep.DISCOVERY,
            pending=PendingOperation.DISCOVERY,
            discovery_result=None,
            error=None,
        )
    if isinstance(event, SkipDiscovery):
        return replace(
            state,
            email_address=event.address.strip(),
            step=SetupStep.MANUAL,
            discovery_skipped=True,
            error=None,
        )
    if isinstance(event, DiscoverySucceeded):
        return _apply_discovery_result(state, event.result)
    if isinstance(event, DiscoveryFailed):
        return replace(
            state,
            pending=None,
            discovery_result=None,
            step=SetupStep.MANUAL,
            error=event.message,
        )
    if isinstance(event, RetryDiscovery):
        return replace(
            state,
            step=SetupStep.DISCOVERY,
            pending=PendingOperation.DISCOVERY,
            discovery_result=None,
            server_config=None,
            discovery_skipped=False,
            error=None,
        )
    if isinstance(event, SubmitManualConfig):
        return replace(
            state,
            server_hint=event.server_hint.strip(),
            pending=PendingOperation.MANUAL_DISCOVERY,
            error=None,
        )
    if isinstance(event, SubmitCredentials):
        return replace(
            state,
            credentials=event.credentials,
            account_details=event.details,
            step=SetupStep.TESTING,
            pending=PendingOperation.TEST,
            test_result=None,
            error=None,
        )
    if isinstance(event, EditSettings):
        return replace(state, step=SetupStep.AUTH, test_result=None, error=None)
    if isinstance(event, TestSucceeded):
        return replace(
            state,
            pending=None,
            test_result=event.result,
            step=SetupStep.SUCCESS if event.result.success else SetupStep.TESTING,
            error=None,
        )
    if isinstance(event, TestFailed):
        return replace(state, pending=None, step=SetupStep.TESTING, error=event.message)
    if isinstance(event, RetryTest):
        return replace(state, pending=PendingOperation.TEST, test_result=None, error=None)
    if isinstance(event, FinishSetup):
        return replace(state, pending=PendingOperation.CREATE, error=None)
    if isinstance(event, AccountCreationFailed):
        return replace(state, pending=None, step=SetupStep.SUCCESS, error=event.message)

    return state


def _apply_discovery_result(state: SetupState, result: DiscoveryResult) -> SetupState:
    error = None
    if result.success and result.config is None:
        # INV-ENGINE-06: never trust the success flag without a config
        logger.warning("Discovery for %s reported success without a config", state.email_address)
        result = replace(result, success=False, error_message=result.error_message or EMPTY_CONFIG_MESSAGE)
        error = result.error_message

    return replace(
        state,
        pending=None,
        discovery_result=result,
        server_config=result.config if result.success else None,
        step=SetupStep.AUTH if result.success else SetupStep.MANUAL,
        error=error,
    )


class TransitionEngine:
    """Object form of the engine for callers that inject it."""

    def transition(self, state: SetupState, event: SetupEvent) -> SetupState:
        return transition(state, event)

    def rejection_reason(self, state: SetupState, event: SetupEvent) -> str | None:
        return rejection_reason(state, event)
