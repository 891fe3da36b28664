"""
Account Store
=============

Persists the account produced by a finished setup. Implements
AccountStoreContract with an in-process store.

POST-CREATE-02: Stored accounts carry no password. Credentials end with the
workflow that collected them.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from contracts import (
    Account,
    PersistenceError,
    SetupState,
    SetupStep,
)

logger = logging.getLogger("account-setup.accounts")


class InMemoryAccountStore:
    """Account store held in process memory, keyed by account id."""

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}

    async def create_account(self, state: SetupState) -> Account:
        """
        Create an account from a finished setup.

        PRE-CREATE-01: state.step == SUCCESS and state.test_result.success

        ERRORS:
        - PersistenceError: incomplete setup or duplicate email address
        """
        if (
            state.step is not SetupStep.SUCCESS
            or state.test_result is None
            or not state.test_result.success
            or state.server_config is None
            or state.credentials is None
            or state.account_details is None
        ):
            raise PersistenceError("Setup is not complete; cannot create account")

        email_address = state.email_address.lower()
        if any(a.email_address.lower() == email_address for a in self._accounts.values()):
            raise PersistenceError(f"An account for {state.email_address} already exists")

        config = state.server_config
        account = Account(
            id=str(uuid.uuid4()),
            account_name=state.account_details.account_name.strip(),
            email_address=state.email_address,
            server_type=config.server_type,
            server_host=config.host,
            server_port=config.port,
            use_ssl=config.use_ssl,
            username=state.credentials.username,
            display_name=state.account_details.display_name,
            created_at=datetime.now(timezone.utc),
        )
        self._accounts[account.id] = account
        logger.info("Created %s account %s for %s", account.server_type, account.id, account.email_address)
        return account

    def list_accounts(self) -> list[Account]:
        return sorted(self._accounts.values(), key=lambda a: a.created_at)

    def get_account(self, account_id: str) -> Account | None:
        return self._accounts.get(account_id)
