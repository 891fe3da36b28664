"""
External Operation Adapters
===========================

Wrap discover / test_connection / create_account and turn every outcome into
exactly one workflow event. The transition engine never sees an exception.

POST-ADAPTER-01: Each call returns one event and never raises
POST-ADAPTER-02: Timeout surfaces as a *Failed event
POST-ADAPTER-03: Adapter error kinds become *Failed events naming the operation
POST-ADAPTER-04: A payload of the wrong type is a malformed response
INV-ADAPTER-01: No automatic retries
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from contracts import (
    Account,
    AccountCreated,
    AccountCreationFailed,
    AccountSetupError,
    AccountStoreContract,
    ConnectionTesterContract,
    Credentials,
    DiscovererContract,
    DiscoveryFailed,
    DiscoveryResult,
    DiscoverySucceeded,
    MalformedResponseError,
    NetworkError,
    OperationTimeoutError,
    PersistenceError,
    ServerConfig,
    ServerRejectedError,
    SetupState,
    TestFailed,
    TestResult,
    TestSucceeded,
)
from src.account_setup.settings import SetupSettings

logger = logging.getLogger("account-setup.adapters")

T = TypeVar("T")


class SetupAdapters:
    """Adapter layer between the workflow and its three collaborators."""

    def __init__(
        self,
        discoverer: DiscovererContract,
        tester: ConnectionTesterContract,
        store: AccountStoreContract,
        settings: SetupSettings | None = None,
    ) -> None:
        self._discoverer = discoverer
        self._tester = tester
        self._store = store
        self._settings = settings or SetupSettings()

    async def discover(self, hint: str, *, manual: bool = False) -> DiscoverySucceeded | DiscoveryFailed:
        operation = "Manual discovery" if manual else "Discovery"
        try:
            result = await self._call(
                self._discoverer.discover(hint, manual=manual),
                self._settings.discovery_timeout,
                DiscoveryResult,
            )
        except AccountSetupError as e:
            return DiscoveryFailed(message=_failure_message(operation, e))
        return DiscoverySucceeded(result=result)

    async def test_connection(
        self, config: ServerConfig, credentials: Credentials
    ) -> TestSucceeded | TestFailed:
        try:
            result = await self._call(
                self._tester.test_connection(config, credentials),
                self._settings.test_timeout,
                TestResult,
            )
        except AccountSetupError as e:
            return TestFailed(message=_failure_message("Connection test", e))
        return TestSucceeded(result=result)

    async def create_account(self, state: SetupState) -> AccountCreated | AccountCreationFailed:
        try:
            account = await self._call(
                self._store.create_account(state),
                self._settings.create_timeout,
                Account,
            )
        except PersistenceError as e:
            logger.warning("Account creation rejected: %s", e)
            return AccountCreationFailed(message=str(e))
        except AccountSetupError as e:
            return AccountCreationFailed(message=_failure_message("Account creation", e))
        return AccountCreated(account=account)

    async def _call(self, awaitable: Awaitable[object], timeout: float, expected: type[T]) -> T:
        """
        Await a collaborator and classify its failure.

        ERRORS:
        - OperationTimeoutError: exceeded timeout
        - NetworkError: OSError from the collaborator
        - MalformedResponseError: payload is not an instance of expected
        - ServerRejectedError: any other collaborator exception
        """
        try:
            payload = await asyncio.wait_for(awaitable, timeout=timeout)
        except AccountSetupError:
            raise
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError(f"no response within {timeout:g}s") from e
        except OSError as e:
            raise NetworkError(str(e) or type(e).__name__) from e
        except Exception as e:
            logger.exception("Unclassified adapter failure")
            raise ServerRejectedError(str(e) or type(e).__name__) from e

        if not isinstance(payload, expected):
            raise MalformedResponseError(
                f"expected {expected.__name__}, got {type(payload).__name__}"
            )
        return payload


_KIND_LABELS = {
    NetworkError: "network error",
    ServerRejectedError: "server rejected the request",
    OperationTimeoutError: "timed out",
    MalformedResponseError: "malformed response",
}


def _failure_message(operation: str, error: AccountSetupError) -> str:
    label = _KIND_LABELS.get(type(error))
    logger.warning("%s failed [%s]: %s", operation, error.code, error)
    if label is None:
        return f"{operation} failed: {error}"
    return f"{operation} failed: {label}: {error}"
