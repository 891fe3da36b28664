"""
Account Setup Contract Index
============================

AUTHORITY: This file is the SINGLE authoritative entrypoint for all
account setup contracts. Import from here, not from individual contract files.

CONSTITUTIONAL REFERENCE: CL12-C (Single Authoritative Source)
"""

from contracts.account_setup_contract import (
    # Test Case Index
    TEST_CASES,
    Account,
    AccountCreated,
    AccountCreationFailed,
    AccountDetails,
    # Error Types
    AccountSetupError,
    AccountStoreContract,
    AdapterError,
    AuthValidationError,
    ClearSetup,
    ConnectionTestError,
    ConnectionTesterContract,
    Credentials,
    DiscovererContract,
    DiscoveryError,
    DiscoveryFailed,
    DiscoveryMethod,
    DiscoveryResult,
    DiscoverySucceeded,
    EditSettings,
    FinishSetup,
    # Events
    InitializeSetup,
    MalformedResponseError,
    NetworkError,
    OperationTimeoutError,
    PendingOperation,
    PersistenceError,
    RetryDiscovery,
    RetryTest,
    ServerConfig,
    ServerRejectedError,
    SetupEvent,
    SetupProgress,
    SetupState,
    # Domain Types
    SetupStep,
    SkipDiscovery,
    StepGatingContract,
    SubmitCredentials,
    SubmitEmail,
    SubmitManualConfig,
    TestFailed,
    TestResult,
    TestStep,
    TestSucceeded,
    # Contracts (Protocols)
    TransitionEngineContract,
    ValidationError,
)

__all__ = [
    # Domain Types
    "SetupStep",
    "DiscoveryMethod",
    "PendingOperation",
    "ServerConfig",
    "Credentials",
    "AccountDetails",
    "DiscoveryResult",
    "TestStep",
    "TestResult",
    "Account",
    "SetupState",
    "SetupProgress",
    # Events
    "SetupEvent",
    "InitializeSetup",
    "ClearSetup",
    "SubmitEmail",
    "SkipDiscovery",
    "DiscoverySucceeded",
    "DiscoveryFailed",
    "RetryDiscovery",
    "SubmitManualConfig",
    "SubmitCredentials",
    "EditSettings",
    "TestSucceeded",
    "TestFailed",
    "RetryTest",
    "FinishSetup",
    "AccountCreated",
    "AccountCreationFailed",
    # Error Types
    "AccountSetupError",
    "ValidationError",
    "DiscoveryError",
    "AuthValidationError",
    "ConnectionTestError",
    "PersistenceError",
    "AdapterError",
    "NetworkError",
    "ServerRejectedError",
    "OperationTimeoutError",
    "MalformedResponseError",
    # Contracts
    "TransitionEngineContract",
    "StepGatingContract",
    "DiscovererContract",
    "ConnectionTesterContract",
    "AccountStoreContract",
    # Test Traceability
    "TEST_CASES",
    # Functions
    "audit_contract_coverage",
]


def audit_contract_coverage() -> dict:
    """
    Audit which contract clauses have test coverage.

    Returns dict with:
    - covered: clauses with at least one test
    - uncovered: clauses with no tests
    - test_count: total tests defined

    Used by constitutional-audit skill.
    """
    covered_clauses = set()
    for test_name, test_info in TEST_CASES.items():
        for clause in test_info.get("enforces", []):
            covered_clauses.add(clause)

    all_clauses = set()

    # Engine clauses
    all_clauses.update([f"POST-ENGINE-0{i}" for i in range(1, 10)])
    all_clauses.update([f"INV-ENGINE-0{i}" for i in range(1, 8)])

    # Gating clauses
    all_clauses.update(
        [
            "POST-GATING-01",
            "POST-GATING-02",
            "POST-GATING-03",
            "POST-GATING-04",
            "INV-GATING-01",
            "INV-GATING-02",
        ]
    )

    # Collaborator clauses
    all_clauses.update(
        [
            "POST-DISCOVER-01",
            "POST-DISCOVER-02",
            "POST-DISCOVER-03",
            "INV-DISCOVER-01",
            "POST-TEST-01",
            "POST-TEST-02",
            "INV-TEST-01",
            "INV-TEST-02",
            "INV-TEST-03",
            "POST-CREATE-01",
            "POST-CREATE-02",
            "ERRORS: PERSISTENCE_ERROR",
        ]
    )

    # Adapter and workflow clauses
    all_clauses.update(
        [
            "POST-ADAPTER-01",
            "POST-ADAPTER-02",
            "POST-ADAPTER-03",
            "POST-ADAPTER-04",
            "INV-ADAPTER-01",
            "POST-WORKFLOW-01",
            "POST-WORKFLOW-02",
            "POST-WORKFLOW-03",
            "INV-WORKFLOW-01",
        ]
    )

    # Global invariants
    all_clauses.update(["INV-GLOBAL-01", "INV-GLOBAL-02", "INV-GLOBAL-03"])

    uncovered = all_clauses - covered_clauses

    return {
        "covered": sorted(covered_clauses),
        "uncovered": sorted(uncovered),
        "test_count": len(TEST_CASES),
        "coverage_pct": round(len(covered_clauses) / len(all_clauses) * 100, 1),
    }
