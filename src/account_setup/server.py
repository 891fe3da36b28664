"""
Account Setup MCP Server
========================

MCP server exposing the account setup workflow as tools.

CONSTITUTIONAL INVARIANTS ENFORCED:
- INV-GLOBAL-01: Passwords never logged or returned in tool output
- INV-GLOBAL-03: Nothing retries without an explicit tool call
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from contracts import (
    AccountDetails,
    AccountSetupError,
    AuthValidationError,
    ClearSetup,
    Credentials,
    EditSettings,
    FinishSetup,
    InitializeSetup,
    RetryDiscovery,
    RetryTest,
    SetupEvent,
    SetupState,
    SetupStep,
    SkipDiscovery,
    SubmitCredentials,
    SubmitEmail,
    SubmitManualConfig,
    ValidationError,
)
from src.account_setup import gating
from src.account_setup.accounts import InMemoryAccountStore
from src.account_setup.adapters import SetupAdapters
from src.account_setup.autodiscovery import ProviderDiscoverer
from src.account_setup.imap_client import IMAPConnectionTester
from src.account_setup.settings import SetupSettings
from src.account_setup.workflow import AccountSetupWorkflow

_settings = SetupSettings.from_env()

# Configure logging to NEVER include passwords (INV-GLOBAL-01)
logging.basicConfig(
    level=_settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("account-setup")

_EMPTY_SCHEMA = {"type": "object", "properties": {}}


class AccountSetupMCPServer:
    """
    Account Setup MCP Server - guided mail account creation for AI agents.

    Each setup_* tool dispatches one event and returns the resulting state
    snapshot. Events the current state does not accept are reported as
    ValidationError instead of being silently ignored.
    """

    def __init__(
        self,
        settings: SetupSettings | None = None,
        adapters: SetupAdapters | None = None,
        store: InMemoryAccountStore | None = None,
    ) -> None:
        self._settings = settings or _settings
        self._store = store or InMemoryAccountStore()
        if adapters is None:
            adapters = SetupAdapters(
                discoverer=ProviderDiscoverer(),
                tester=IMAPConnectionTester(timeout=self._settings.imap_timeout),
                store=self._store,
                settings=self._settings,
            )
        self._workflow = AccountSetupWorkflow(adapters)
        self._server = Server("account-setup")
        self._setup_tools()

    @property
    def workflow(self) -> AccountSetupWorkflow:
        return self._workflow

    def _setup_tools(self) -> None:
        """Register MCP tools."""

        @self._server.list_tools()
        async def list_tools() -> list[Tool]:
            return [
                Tool(
                    name="setup_start",
                    description="Start a new account setup, discarding any setup in progress",
                    inputSchema=_EMPTY_SCHEMA,
                ),
                Tool(
                    name="setup_submit_email",
                    description="Submit the email address and run server autodiscovery",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "email_address": {
                                "type": "string",
                                "description": "Address of the account to add",
                            },
                        },
                        "required": ["email_address"],
                    },
                ),
                Tool(
                    name="setup_skip_discovery",
                    description="Submit the email address and go straight to manual server entry",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "email_address": {"type": "string"},
                        },
                        "required": ["email_address"],
                    },
                ),
                Tool(
                    name="setup_retry_discovery",
                    description="Run autodiscovery again for the submitted email address",
                    inputSchema=_EMPTY_SCHEMA,
                ),
                Tool(
                    name="setup_submit_manual",
                    description="Resolve a manually entered server (host, host:port or URL)",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "server": {
                                "type": "string",
                                "description": "e.g. mail.example.com, mail.example.com:993, imaps://mail.example.com",
                            },
                        },
                        "required": ["server"],
                    },
                ),
                Tool(
                    name="setup_submit_credentials",
                    description="Submit credentials and account details, then test the connection",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "username": {"type": "string"},
                            "password": {"type": "string"},
                            "account_name": {
                                "type": "string",
                                "description": "Name shown for the account",
                            },
                            "display_name": {
                                "type": "string",
                                "description": "Sender name (optional)",
                            },
                        },
                        "required": ["username", "password", "account_name"],
                    },
                ),
                Tool(
                    name="setup_edit_settings",
                    description="Return from the testing step to edit credentials",
                    inputSchema=_EMPTY_SCHEMA,
                ),
                Tool(
                    name="setup_retry_test",
                    description="Run the connection test again with the same settings",
                    inputSchema=_EMPTY_SCHEMA,
                ),
                Tool(
                    name="setup_finish",
                    description="Create the account after a successful connection test",
                    inputSchema=_EMPTY_SCHEMA,
                ),
                Tool(
                    name="setup_clear",
                    description="Abandon the current setup",
                    inputSchema=_EMPTY_SCHEMA,
                ),
                Tool(
                    name="setup_status",
                    description="Get the current setup state",
                    inputSchema=_EMPTY_SCHEMA,
                ),
                Tool(
                    name="accounts_list",
                    description="List accounts created in this session",
                    inputSchema=_EMPTY_SCHEMA,
                ),
            ]

        @self._server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            arguments = arguments or {}
            try:
                if name == "setup_start":
                    result = await self.setup_start()
                elif name == "setup_submit_email":
                    result = await self.setup_submit_email(**arguments)
                elif name == "setup_skip_discovery":
                    result = await self.setup_skip_discovery(**arguments)
                elif name == "setup_retry_discovery":
                    result = await self.setup_retry_discovery()
                elif name == "setup_submit_manual":
                    result = await self.setup_submit_manual(**arguments)
                elif name == "setup_submit_credentials":
                    result = await self.setup_submit_credentials(**arguments)
                elif name == "setup_edit_settings":
                    result = await self.setup_edit_settings()
                elif name == "setup_retry_test":
                    result = await self.setup_retry_test()
                elif name == "setup_finish":
                    result = await self.setup_finish()
                elif name == "setup_clear":
                    result = await self.setup_clear()
                elif name == "setup_status":
                    result = self.setup_status()
                elif name == "accounts_list":
                    result = self.accounts_list()
                else:
                    return [TextContent(type="text", text=f"Unknown tool: {name}")]

                return [TextContent(type="text", text=self._serialize_result(result))]

            except AccountSetupError as e:
                return [TextContent(type="text", text=f"Error: {e.__class__.__name__}: {e}")]

    async def _dispatch(self, event: SetupEvent) -> dict:
        """
        Dispatch event or raise why it cannot apply.

        ERRORS:
        - ValidationError: current state does not accept event
        """
        reason = self._workflow.rejection_reason(event)
        if reason is not None:
            raise ValidationError(reason)
        await self._workflow.dispatch(event)
        return self.snapshot(self._workflow.state)

    async def setup_start(self) -> dict:
        logger.info("Starting account setup")
        return await self._dispatch(InitializeSetup())

    async def setup_submit_email(self, *, email_address: str) -> dict:
        logger.info("Submitting email address for discovery")
        return await self._dispatch(SubmitEmail(address=email_address))

    async def setup_skip_discovery(self, *, email_address: str) -> dict:
        return await self._dispatch(SkipDiscovery(address=email_address))

    async def setup_retry_discovery(self) -> dict:
        return await self._dispatch(RetryDiscovery())

    async def setup_submit_manual(self, *, server: str) -> dict:
        logger.info("Resolving manually entered server")
        return await self._dispatch(SubmitManualConfig(server_hint=server))

    async def setup_submit_credentials(
        self,
        *,
        username: str,
        password: str,
        account_name: str,
        display_name: str | None = None,
    ) -> dict:
        """
        Submit credentials and run the connection test.

        ERRORS:
        - AuthValidationError: username, password or account name missing
        - ValidationError: no server configured yet
        """
        credentials = Credentials(username=username.strip(), password=password)
        details = AccountDetails(account_name=account_name, display_name=display_name or None)
        problems = gating.credential_problems(credentials, details)
        if problems:
            raise AuthValidationError("; ".join(problems))
        # Username only (INV-GLOBAL-01)
        logger.info("Testing connection as %s", credentials.username)
        return await self._dispatch(SubmitCredentials(credentials=credentials, details=details))

    async def setup_edit_settings(self) -> dict:
        return await self._dispatch(EditSettings())

    async def setup_retry_test(self) -> dict:
        return await self._dispatch(RetryTest())

    async def setup_finish(self) -> dict:
        """Create the account; on success the setup is reset and the account returned."""
        setup = await self._dispatch(FinishSetup())
        created = self._workflow.last_account if self._workflow.state.step is SetupStep.EMAIL else None
        return {"account": created, "setup": setup}

    async def setup_clear(self) -> dict:
        logger.info("Clearing account setup")
        return await self._dispatch(ClearSetup())

    def setup_status(self) -> dict:
        """Always succeeds."""
        return self.snapshot(self._workflow.state)

    def accounts_list(self) -> dict:
        return {"accounts": self._store.list_accounts()}

    @staticmethod
    def snapshot(state: SetupState) -> dict:
        """
        JSON-ready view of state with derived flags.

        Credentials are reduced to the username (INV-GLOBAL-01).
        """
        error_type = gating.error_type_for(state)
        progress = gating.setup_progress(state)
        return {
            "step": _enum_name(state.step),
            "email_address": state.email_address,
            "is_loading": state.is_loading,
            "pending": _enum_name(state.pending) if state.pending else None,
            "error": state.error,
            "error_code": error_type.code if error_type else None,
            "manual_step_visible": gating.is_manual_step_visible(state),
            "discovery_skipped": state.discovery_skipped,
            "discovery_result": state.discovery_result,
            "server_config": state.server_config,
            "username": state.credentials.username if state.credentials else None,
            "account_details": state.account_details,
            "test_result": state.test_result,
            "progress": {
                "completed_steps": [_enum_name(s) for s in progress.completed_steps],
                "percent": progress.percent,
            },
            "next_steps": [_enum_name(s) for s in SetupStep if gating.can_advance_to(state, s)],
        }

    def _serialize_result(self, result: Any) -> str:
        """Serialize result to JSON string."""

        def default_serializer(obj: Any) -> Any:
            if isinstance(obj, Credentials):
                return {"username": obj.username}
            if hasattr(obj, "__dataclass_fields__"):
                return asdict(obj)
            if isinstance(obj, Enum):
                return _enum_name(obj)
            if isinstance(obj, datetime):
                return obj.isoformat()
            raise TypeError(f"Cannot serialize {type(obj)}")

        return json.dumps(result, default=default_serializer, indent=2)

    async def run(self) -> None:
        """Run the MCP server."""
        async with stdio_server() as (read_stream, write_stream):
            await self._server.run(
                read_stream, write_stream, self._server.create_initialization_options()
            )


def _enum_name(value: Enum) -> str:
    return value.name.lower()


# Singleton for process lifetime
_server_instance: AccountSetupMCPServer | None = None


def get_server() -> AccountSetupMCPServer:
    """Get or create the server singleton."""
    global _server_instance
    if _server_instance is None:
        _server_instance = AccountSetupMCPServer()
    return _server_instance


def create_server(**kwargs: Any) -> AccountSetupMCPServer:
    """Create a new server instance (for testing)."""
    return AccountSetupMCPServer(**kwargs)


def main() -> None:
    """Console entry point."""
    import asyncio

    asyncio.run(get_server().run())
