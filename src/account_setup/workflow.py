"""
Account Setup Workflow
======================

Owns the current SetupState, feeds events through the transition engine and
runs the external operation a transition starts.

POST-WORKFLOW-01: A transition that sets `pending` runs exactly one adapter call,
  whose result event goes back through the engine
POST-WORKFLOW-02: Results from a setup that was cleared or restarted are discarded
POST-WORKFLOW-03: AccountCreated leaves the new Account in last_account
"""

from __future__ import annotations

import logging

from contracts import (
    Account,
    AccountCreated,
    ClearSetup,
    InitializeSetup,
    PendingOperation,
    SetupEvent,
    SetupState,
)
from src.account_setup.adapters import SetupAdapters
from src.account_setup.engine import TransitionEngine

logger = logging.getLogger("account-setup.workflow")


class AccountSetupWorkflow:
    """
    Single-user setup session.

    Each InitializeSetup or ClearSetup starts a new generation. An operation
    result is applied only if its generation is still current.
    """

    def __init__(self, adapters: SetupAdapters, engine: TransitionEngine | None = None) -> None:
        self._adapters = adapters
        self._engine = engine or TransitionEngine()
        self._state = SetupState()
        self._generation = 0
        self.last_account: Account | None = None

    @property
    def state(self) -> SetupState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def rejection_reason(self, event: SetupEvent) -> str | None:
        return self._engine.rejection_reason(self._state, event)

    async def dispatch(self, event: SetupEvent) -> SetupState:
        """Apply event, then run and apply any operation it started."""
        if isinstance(event, (InitializeSetup, ClearSetup)):
            self._generation += 1
            logger.info("Starting setup generation %d", self._generation)

        before = self._state
        self._apply(event)
        if before.pending is None and self._state.pending is not None:
            await self._run_pending()
        return self._state

    def _apply(self, event: SetupEvent) -> None:
        reason = self._engine.rejection_reason(self._state, event)
        if reason is not None:
            logger.debug("Ignoring %s: %s", type(event).__name__, reason)
            return
        previous_step = self._state.step
        self._state = self._engine.transition(self._state, event)
        if self._state.step is not previous_step:
            logger.info("Setup step %s -> %s", previous_step.name, self._state.step.name)

    async def _run_pending(self) -> None:
        state = self._state
        generation = self._generation
        pending = state.pending

        if pending is PendingOperation.DISCOVERY:
            result = await self._adapters.discover(state.email_address)
        elif pending is PendingOperation.MANUAL_DISCOVERY:
            result = await self._adapters.discover(state.server_hint, manual=True)
        elif pending is PendingOperation.TEST:
            result = await self._adapters.test_connection(state.server_config, state.credentials)
        else:
            self.last_account = None
            result = await self._adapters.create_account(state)

        if generation != self._generation:
            logger.debug(
                "Discarding %s from generation %d (current %d)",
                type(result).__name__, generation, self._generation,
            )
            return

        if isinstance(result, AccountCreated):
            self.last_account = result.account
        self._apply(result)
