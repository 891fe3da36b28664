"""
Account Setup Workflow Contract
===============================

Onboarding workflow that walks a user from an email address to a persisted
mail account: email entry, autodiscovery, optional manual server
configuration, credential entry, connection testing, account creation.

This contract defines the required behavior of all public interfaces.
Implementation SHALL perform ONLY declared behaviors.

CONSTITUTIONAL REFERENCE:
- CL12: Design by Contract (PRE/POST/INV/ERRORS mandatory)
- CL10: Mock Derivation (all mocks must derive from this contract)
- CL12-E: Test Traceability (all tests must cite clause IDs)

AUTHORITY: This file is the SINGLE authoritative source for account setup behavior.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum, auto
from typing import Protocol, Union, runtime_checkable


# =============================================================================
# DOMAIN TYPES
# =============================================================================

class SetupStep(IntEnum):
    """Workflow steps. Declaration order is the step order."""
    EMAIL = auto()
    DISCOVERY = auto()
    MANUAL = auto()
    AUTH = auto()
    TESTING = auto()
    SUCCESS = auto()


class DiscoveryMethod(Enum):
    """How a ServerConfig was obtained."""
    KNOWN_PROVIDER = auto()
    DNS_PATTERN = auto()
    MANUAL = auto()


class PendingOperation(Enum):
    """Asynchronous operation a SetupState is waiting on."""
    DISCOVERY = auto()
    MANUAL_DISCOVERY = auto()
    TEST = auto()
    CREATE = auto()


@dataclass(frozen=True)
class ServerConfig:
    """Resolved mail server connection parameters."""
    host: str
    port: int
    use_ssl: bool
    protocol_url: str
    discovery_method: DiscoveryMethod
    display_name: str = ""

    @property
    def server_type(self) -> str:
        """'exchange' for web-service endpoints, 'imap' otherwise."""
        return "exchange" if self.protocol_url.startswith(("https://", "http://")) else "imap"


@dataclass(frozen=True)
class Credentials:
    """Login credentials. Held for the lifetime of the workflow only."""
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class AccountDetails:
    """User-facing naming for the new account."""
    account_name: str
    display_name: str | None = None


@dataclass(frozen=True)
class DiscoveryResult:
    """Outcome of one discovery attempt."""
    success: bool
    config: ServerConfig | None = None
    tried_endpoints: tuple[str, ...] = ()
    error_message: str | None = None
    suggestion: str | None = None


@dataclass(frozen=True)
class TestStep:
    """One stage of a connection test."""
    __test__ = False

    name: str
    status: str  # "success" | "failed"
    details: str = ""


@dataclass(frozen=True)
class TestResult:
    """Outcome of a connection test."""
    __test__ = False

    success: bool
    message: str
    steps: tuple[TestStep, ...] = ()


@dataclass(frozen=True)
class Account:
    """Persisted mail account. Carries no password."""
    id: str
    account_name: str
    email_address: str
    server_type: str  # "imap" | "exchange"
    server_host: str
    server_port: int
    use_ssl: bool
    username: str
    display_name: str | None
    created_at: datetime
    is_active: bool = True


@dataclass(frozen=True)
class SetupState:
    """
    Single workflow state record. Replaced, never mutated.

    is_loading is derived from pending so the two cannot disagree.
    """
    step: SetupStep = SetupStep.EMAIL
    email_address: str = ""
    discovery_result: DiscoveryResult | None = None
    server_config: ServerConfig | None = None
    credentials: Credentials | None = None
    account_details: AccountDetails | None = None
    test_result: TestResult | None = None
    server_hint: str = ""
    discovery_skipped: bool = False
    pending: PendingOperation | None = None
    error: str | None = None

    @property
    def is_loading(self) -> bool:
        return self.pending is not None


@dataclass(frozen=True)
class SetupProgress:
    """Summary of how far the workflow has come."""
    current_step: SetupStep
    completed_steps: tuple[SetupStep, ...]
    percent: int


# =============================================================================
# EVENT TYPES
# =============================================================================

@dataclass(frozen=True)
class InitializeSetup:
    """Start a fresh workflow."""


@dataclass(frozen=True)
class ClearSetup:
    """Abandon the workflow."""


@dataclass(frozen=True)
class SubmitEmail:
    address: str


@dataclass(frozen=True)
class SkipDiscovery:
    """Go straight to manual configuration for this address."""
    address: str


@dataclass(frozen=True)
class DiscoverySucceeded:
    """Discovery completed; result.success may still be False."""
    result: DiscoveryResult


@dataclass(frozen=True)
class DiscoveryFailed:
    message: str


@dataclass(frozen=True)
class RetryDiscovery:
    pass


@dataclass(frozen=True)
class SubmitManualConfig:
    server_hint: str


@dataclass(frozen=True)
class SubmitCredentials:
    credentials: Credentials
    details: AccountDetails


@dataclass(frozen=True)
class EditSettings:
    """Return from testing to credential entry."""


@dataclass(frozen=True)
class TestSucceeded:
    """Test completed; result.success may still be False."""
    __test__ = False

    result: TestResult


@dataclass(frozen=True)
class TestFailed:
    __test__ = False

    message: str


@dataclass(frozen=True)
class RetryTest:
    pass


@dataclass(frozen=True)
class FinishSetup:
    pass


@dataclass(frozen=True)
class AccountCreated:
    account: Account


@dataclass(frozen=True)
class AccountCreationFailed:
    message: str


SetupEvent = Union[
    InitializeSetup,
    ClearSetup,
    SubmitEmail,
    SkipDiscovery,
    DiscoverySucceeded,
    DiscoveryFailed,
    RetryDiscovery,
    SubmitManualConfig,
    SubmitCredentials,
    EditSettings,
    TestSucceeded,
    TestFailed,
    RetryTest,
    FinishSetup,
    AccountCreated,
    AccountCreationFailed,
]


# =============================================================================
# ERROR TYPES
# =============================================================================

class AccountSetupError(Exception):
    """Base error for all account setup operations."""
    code: str = "ACCOUNT_SETUP_ERROR"


class ValidationError(AccountSetupError):
    """
    ERRORS-SETUP-01: Malformed email address or empty required field.

    RECOVERY: Caller corrects the input. Workflow state is unchanged.
    """
    code = "VALIDATION"


class DiscoveryError(AccountSetupError):
    """
    ERRORS-SETUP-02: Discovery could not produce a server configuration.

    RECOVERY: Workflow routes to the manual step; user may retry discovery.
    """
    code = "DISCOVERY_ERROR"


class AuthValidationError(AccountSetupError):
    """
    ERRORS-SETUP-03: Credentials or account details missing.

    RECOVERY: Caller supplies the missing fields. Not an engine event.
    """
    code = "AUTH_VALIDATION"


class ConnectionTestError(AccountSetupError):
    """
    ERRORS-SETUP-04: Connection test failed.

    RECOVERY: Stay on testing step; retry test or edit settings.
    """
    code = "CONNECTION_ERROR"


class PersistenceError(AccountSetupError):
    """
    ERRORS-SETUP-05: Account could not be created.

    RECOVERY: Setup state preserved; caller may retry finish.
    """
    code = "PERSISTENCE_ERROR"


class AdapterError(AccountSetupError):
    """Failure of an external operation, classified at the adapter boundary."""
    code = "ADAPTER_ERROR"


class NetworkError(AdapterError):
    """ERRORS-ADAPTER-01: Host unreachable, DNS or socket failure."""
    code = "NETWORK_ERROR"


class ServerRejectedError(AdapterError):
    """ERRORS-ADAPTER-02: Remote side refused the request."""
    code = "SERVER_REJECTED"


class OperationTimeoutError(AdapterError):
    """ERRORS-ADAPTER-03: Operation exceeded its configured timeout."""
    code = "TIMEOUT"


class MalformedResponseError(AdapterError):
    """ERRORS-ADAPTER-04: Operation returned a payload of the wrong shape."""
    code = "MALFORMED_RESPONSE"


# =============================================================================
# TRANSITION ENGINE CONTRACT
# =============================================================================

@runtime_checkable
class TransitionEngineContract(Protocol):
    """
    Pure state transition: (SetupState, SetupEvent) -> SetupState

    PRE-ENGINE-01: state is a SetupState produced by this engine or the default
    PRE-ENGINE-02: event is one of the SetupEvent types

    POST-ENGINE-01: Returns a SetupState (never raises)
    POST-ENGINE-02: If rejection_reason(state, event) is not None, the returned
                    state is the input state (explicit no-op)
    POST-ENGINE-03: InitializeSetup and ClearSetup return SetupState() from any state
    POST-ENGINE-04: SubmitEmail -> DiscoverySucceeded(success, config C)
                    -> SubmitCredentials -> TestSucceeded(success) leaves
                    step=SUCCESS and server_config == C
    POST-ENGINE-05: DiscoveryFailed(msg) leaves step=MANUAL, error=msg,
                    discovery_result=None
    POST-ENGINE-06: TestSucceeded(success=False) leaves step=TESTING
    POST-ENGINE-07: RetryTest clears error and test_result and sets pending=TEST
    POST-ENGINE-08: AccountCreated returns SetupState() (workflow torn down)
    POST-ENGINE-09: AccountCreationFailed keeps step=SUCCESS with error set

    INV-ENGINE-01 (Deterministic): Same (state, event) = same result
    INV-ENGINE-02 (Auth Gate): step reaches AUTH only with server_config set
    INV-ENGINE-03 (Testing Gate): step reaches TESTING only with credentials
                  and account_details set
    INV-ENGINE-04 (Success Gate): step reaches SUCCESS only with
                  test_result.success
    INV-ENGINE-05 (Re-entrancy): While pending is set, only InitializeSetup,
                  ClearSetup and the matching completion event apply
    INV-ENGINE-06 (Untrusted Success): success=True without config is failure
    INV-ENGINE-07 (Stale Errors): error cleared when a new step begins

    ERRORS: None (rejections are reported by rejection_reason)
    """

    def transition(self, state: SetupState, event: SetupEvent) -> SetupState:
        ...

    def rejection_reason(self, state: SetupState, event: SetupEvent) -> str | None:
        ...


# =============================================================================
# STEP GATING CONTRACT
# =============================================================================

@runtime_checkable
class StepGatingContract(Protocol):
    """
    Pure derivations from SetupState.

    POST-GATING-01: is_step_complete(EMAIL) iff email set and step > EMAIL
    POST-GATING-02: is_manual_step_visible iff discovery failed (result with
                    success=False, or no result while on MANUAL)
    POST-GATING-03: can_advance_to(step) agrees with the engine's preconditions
    POST-GATING-04: setup_progress percent is completed / total steps * 100

    INV-GATING-01 (No Side Effects): Predicates never modify state
    INV-GATING-02 (Shared Guards): Engine and gating use one predicate set
    """

    def is_step_complete(self, state: SetupState, step: SetupStep) -> bool:
        ...

    def is_manual_step_visible(self, state: SetupState) -> bool:
        ...

    def can_advance_to(self, state: SetupState, step: SetupStep) -> bool:
        ...


# =============================================================================
# EXTERNAL OPERATION CONTRACTS
# =============================================================================

@runtime_checkable
class DiscovererContract(Protocol):
    """
    Operation: discover

    PRE-DISCOVER-01: hint is an email address (automatic) or a server name,
                     host:port or URL (manual=True)

    POST-DISCOVER-01: Returns DiscoveryResult
    POST-DISCOVER-02: success=True implies config is not None
    POST-DISCOVER-03: tried_endpoints lists every endpoint attempted, in order

    INV-DISCOVER-01 (No Protocol Internals): Resolution only; no autodiscover
                    XML or EWS traffic

    ERRORS:
    - NETWORK_ERROR: resolver failure other than "name not found"
    """

    async def discover(self, hint: str, *, manual: bool = False) -> DiscoveryResult:
        ...


@runtime_checkable
class ConnectionTesterContract(Protocol):
    """
    Operation: test_connection

    POST-TEST-01: Returns TestResult
    POST-TEST-02: Rejected login returns success=False, does not raise

    INV-TEST-01 (Read-Only): Mailbox opened read-only; nothing modified
    INV-TEST-02 (Credential Isolation): Password never logged
    INV-TEST-03 (TLS): Certificate verification never disabled

    ERRORS:
    - NETWORK_ERROR: server unreachable
    - TIMEOUT: socket timeout
    - SERVER_REJECTED: protocol-level refusal other than login
    """

    async def test_connection(
        self, config: ServerConfig, credentials: Credentials
    ) -> TestResult:
        ...


@runtime_checkable
class AccountStoreContract(Protocol):
    """
    Operation: create_account

    PRE-CREATE-01: state.step == SUCCESS and state.test_result.success

    POST-CREATE-01: Returns Account built from the accumulated setup state
    POST-CREATE-02: Account carries no password

    ERRORS:
    - PERSISTENCE_ERROR: duplicate email address or incomplete state
    """

    async def create_account(self, state: SetupState) -> Account:
        ...


# =============================================================================
# ADAPTER CONTRACT
# =============================================================================

"""
Adapters wrap the three external operations.

POST-ADAPTER-01: Each call returns exactly one event, never raises
POST-ADAPTER-02: Timeout surfaces as a *Failed event
POST-ADAPTER-03: NetworkError / ServerRejectedError / OperationTimeoutError /
                 MalformedResponseError become *Failed events with a message
                 naming the operation
POST-ADAPTER-04: A payload of the wrong type is MalformedResponseError

INV-ADAPTER-01 (No Silent Retry): Adapters never retry on their own
"""


# =============================================================================
# WORKFLOW CONTRACT
# =============================================================================

"""
Workflow controller owns the single SetupState.

POST-WORKFLOW-01: dispatch runs the operation an event starts and feeds the
                  resulting event back through the engine
POST-WORKFLOW-02: A result arriving after ClearSetup/InitializeSetup is discarded
POST-WORKFLOW-03: AccountCreated hands the Account to the caller

INV-WORKFLOW-01 (Sequential): Operations never run in parallel
"""


# =============================================================================
# GLOBAL INVARIANTS (Apply to ALL operations)
# =============================================================================

"""
INV-GLOBAL-01 (Credential Isolation): Passwords never appear in logs, reprs,
             tool output or persisted accounts.

INV-GLOBAL-02 (Reset Hygiene): ClearSetup from any state yields SetupState().

INV-GLOBAL-03 (User-Initiated Retry): Nothing retries without an explicit
             RetryDiscovery, RetryTest or FinishSetup.
"""


# =============================================================================
# TEST CASE INDEX (CL12-E Traceability)
# =============================================================================

TEST_CASES = {
    # Engine tests
    "test_transition_deterministic": {
        "contract": "TransitionEngineContract",
        "enforces": ["INV-ENGINE-01", "POST-ENGINE-01"],
    },
    "test_success_chain": {
        "contract": "TransitionEngineContract",
        "enforces": ["POST-ENGINE-04", "INV-ENGINE-02", "INV-ENGINE-03", "INV-ENGINE-04"],
    },
    "test_discovery_failure_falls_back_to_manual": {
        "contract": "TransitionEngineContract",
        "enforces": ["POST-ENGINE-05"],
    },
    "test_reentrant_submit_ignored": {
        "contract": "TransitionEngineContract",
        "enforces": ["INV-ENGINE-05", "POST-ENGINE-02"],
        "adversarial": True,
        "description": "Second SubmitEmail while loading must be a no-op",
    },
    "test_retry_test_stays_on_testing": {
        "contract": "TransitionEngineContract",
        "enforces": ["POST-ENGINE-06", "POST-ENGINE-07"],
    },
    "test_clear_setup_resets_everything": {
        "contract": "TransitionEngineContract",
        "enforces": ["POST-ENGINE-03", "INV-GLOBAL-02"],
    },
    "test_success_without_config_is_failure": {
        "contract": "TransitionEngineContract",
        "enforces": ["INV-ENGINE-06"],
        "adversarial": True,
        "description": "A success flag alone must not advance to auth",
    },
    "test_new_step_clears_error": {
        "contract": "TransitionEngineContract",
        "enforces": ["INV-ENGINE-07"],
    },
    "test_account_created_tears_down": {
        "contract": "TransitionEngineContract",
        "enforces": ["POST-ENGINE-08"],
    },
    "test_account_creation_failure_keeps_state": {
        "contract": "TransitionEngineContract",
        "enforces": ["POST-ENGINE-09"],
    },
    "test_manual_failure_stays_manual": {
        "contract": "TransitionEngineContract",
        "enforces": ["POST-ENGINE-05", "POST-GATING-02"],
        "description": "A failed manual lookup has no further fallback",
    },

    # Gating tests
    "test_email_step_complete": {
        "contract": "StepGatingContract",
        "enforces": ["POST-GATING-01"],
    },
    "test_manual_visibility": {
        "contract": "StepGatingContract",
        "enforces": ["POST-GATING-02"],
    },
    "test_can_advance_matches_engine": {
        "contract": "StepGatingContract",
        "enforces": ["POST-GATING-03", "INV-GATING-02"],
        "adversarial": True,
        "description": "Gating and engine must agree for every event",
    },
    "test_setup_progress": {
        "contract": "StepGatingContract",
        "enforces": ["POST-GATING-04", "INV-GATING-01"],
    },

    # Adapter and collaborator tests
    "test_known_provider_discovery": {
        "contract": "DiscovererContract",
        "enforces": ["POST-DISCOVER-01", "POST-DISCOVER-02"],
    },
    "test_dns_pattern_tried_endpoints": {
        "contract": "DiscovererContract",
        "enforces": ["POST-DISCOVER-03", "INV-DISCOVER-01"],
    },
    "test_mx_hosted_provider_discovery": {
        "contract": "DiscovererContract",
        "enforces": ["POST-DISCOVER-02", "POST-DISCOVER-03"],
    },
    "test_unencodable_host_names_do_not_resolve": {
        "contract": "DiscovererContract",
        "enforces": ["POST-DISCOVER-01"],
        "adversarial": True,
        "description": "Empty or overlong DNS labels are a lookup miss, not a server rejection",
    },
    "test_login_rejected_returns_failed_result": {
        "contract": "ConnectionTesterContract",
        "enforces": ["POST-TEST-01", "POST-TEST-02", "INV-TEST-01"],
    },
    "test_tester_no_password_logging": {
        "contract": "ConnectionTesterContract",
        "enforces": ["INV-TEST-02", "INV-GLOBAL-01"],
        "adversarial": True,
        "description": "Verify password never appears in log output",
    },
    "test_tester_uses_default_tls": {
        "contract": "ConnectionTesterContract",
        "enforces": ["INV-TEST-03"],
        "adversarial": True,
        "description": "No ssl_context override that could disable verification",
    },
    "test_store_rejects_duplicate": {
        "contract": "AccountStoreContract",
        "enforces": ["POST-CREATE-01", "POST-CREATE-02", "ERRORS: PERSISTENCE_ERROR"],
    },
    "test_adapter_timeout_becomes_failed_event": {
        "contract": "Adapters",
        "enforces": ["POST-ADAPTER-01", "POST-ADAPTER-02"],
    },
    "test_adapter_error_kinds": {
        "contract": "Adapters",
        "enforces": ["POST-ADAPTER-03", "POST-ADAPTER-04"],
    },
    "test_adapter_does_not_retry": {
        "contract": "Adapters",
        "enforces": ["INV-ADAPTER-01"],
    },

    # Workflow tests
    "test_workflow_runs_operations": {
        "contract": "Workflow",
        "enforces": ["POST-WORKFLOW-01", "POST-WORKFLOW-03"],
    },
    "test_stale_result_discarded": {
        "contract": "Workflow",
        "enforces": ["POST-WORKFLOW-02"],
        "adversarial": True,
        "description": "A late discovery result must not revive a cleared workflow",
    },
    "test_workflow_manual_failure_stays_manual": {
        "contract": "Workflow",
        "enforces": ["POST-ENGINE-05", "POST-GATING-02"],
    },
    "test_stale_creation_clears_last_account": {
        "contract": "Workflow",
        "enforces": ["POST-WORKFLOW-02", "POST-WORKFLOW-03"],
        "adversarial": True,
        "description": "An account from an earlier setup must not be reported for a cleared one",
    },
    "test_workflow_operations_sequential": {
        "contract": "Workflow",
        "enforces": ["INV-WORKFLOW-01"],
        "adversarial": True,
    },
    "test_failures_wait_for_explicit_retry": {
        "contract": "Workflow",
        "enforces": ["INV-GLOBAL-03"],
    },
}
