"""
Account Setup Contract Verification Tests
=========================================

CL12-E TRACEABILITY: Every test MUST cite specific contract clause IDs.
THEATER DETECTION: Tests use exact values, not ranges, for deterministic behavior.

CONTRACT AUTHORITY: contracts/account_setup_contract.py
"""

import dataclasses

import pytest

# Contract imports - ALWAYS from index, never direct
from contracts import (
    TEST_CASES,
    AccountSetupError,
    AdapterError,
    AuthValidationError,
    ConnectionTestError,
    Credentials,
    DiscoveryError,
    DiscoveryMethod,
    MalformedResponseError,
    NetworkError,
    OperationTimeoutError,
    PendingOperation,
    PersistenceError,
    ServerConfig,
    ServerRejectedError,
    SetupState,
    SetupStep,
    ValidationError,
)


# =============================================================================
# DOMAIN TYPES
# =============================================================================

class TestDomainTypes:
    """Shape of the contract data model."""

    def test_step_order_is_declaration_order(self):
        """
        Contract: SetupStep
        Enforces: step ordering by declaration
        """
        assert list(SetupStep) == [
            SetupStep.EMAIL,
            SetupStep.DISCOVERY,
            SetupStep.MANUAL,
            SetupStep.AUTH,
            SetupStep.TESTING,
            SetupStep.SUCCESS,
        ]
        assert SetupStep.EMAIL < SetupStep.AUTH < SetupStep.SUCCESS

    def test_default_state(self):
        """
        Contract: SetupState
        Enforces: INV-GLOBAL-02
        """
        state = SetupState()
        assert state.step is SetupStep.EMAIL
        assert state.email_address == ""
        assert state.server_config is None
        assert state.credentials is None
        assert state.error is None
        assert state.is_loading is False

    def test_is_loading_derived_from_pending(self):
        """
        Contract: SetupState
        Enforces: INV-ENGINE-05
        """
        state = SetupState(pending=PendingOperation.TEST)
        assert state.is_loading is True

    def test_state_is_immutable(self):
        """
        Contract: SetupState
        Enforces: INV-ENGINE-01
        """
        state = SetupState()
        with pytest.raises(dataclasses.FrozenInstanceError):
            state.step = SetupStep.AUTH

    def test_server_type_from_protocol_url(self):
        """
        Contract: ServerConfig
        Enforces: server_type derivation
        """
        imap = ServerConfig(
            host="imap.example.com",
            port=993,
            use_ssl=True,
            protocol_url="imaps://imap.example.com:993",
            discovery_method=DiscoveryMethod.DNS_PATTERN,
        )
        exchange = ServerConfig(
            host="mail.example.com",
            port=443,
            use_ssl=True,
            protocol_url="https://mail.example.com/EWS/Exchange.asmx",
            discovery_method=DiscoveryMethod.MANUAL,
        )
        assert imap.server_type == "imap"
        assert exchange.server_type == "exchange"

    def test_credentials_repr_hides_password(self):
        """
        Contract: Credentials
        Enforces: INV-GLOBAL-01
        Adversarial: True
        """
        credentials = Credentials(username="user@example.com", password="hunter2-secret")
        assert "hunter2-secret" not in repr(credentials)
        assert "user@example.com" in repr(credentials)

    def test_state_repr_hides_password(self):
        """
        Contract: SetupState
        Enforces: INV-GLOBAL-01
        Adversarial: True
        """
        state = SetupState(credentials=Credentials(username="u", password="hunter2-secret"))
        assert "hunter2-secret" not in repr(state)


# =============================================================================
# ERROR TAXONOMY
# =============================================================================

class TestErrorTaxonomy:
    """Every error carries a stable code and derives from AccountSetupError."""

    @pytest.mark.parametrize(
        "error_cls,code",
        [
            (AccountSetupError, "ACCOUNT_SETUP_ERROR"),
            (ValidationError, "VALIDATION"),
            (DiscoveryError, "DISCOVERY_ERROR"),
            (AuthValidationError, "AUTH_VALIDATION"),
            (ConnectionTestError, "CONNECTION_ERROR"),
            (PersistenceError, "PERSISTENCE_ERROR"),
            (AdapterError, "ADAPTER_ERROR"),
            (NetworkError, "NETWORK_ERROR"),
            (ServerRejectedError, "SERVER_REJECTED"),
            (OperationTimeoutError, "TIMEOUT"),
            (MalformedResponseError, "MALFORMED_RESPONSE"),
        ],
    )
    def test_error_codes(self, error_cls, code):
        """
        Contract: Error types
        Enforces: ERRORS codes
        """
        assert error_cls.code == code
        assert issubclass(error_cls, AccountSetupError)

    def test_adapter_kinds_share_base(self):
        """
        Contract: Error types
        Enforces: POST-ADAPTER-03
        """
        for error_cls in (NetworkError, ServerRejectedError, OperationTimeoutError, MalformedResponseError):
            assert issubclass(error_cls, AdapterError)


# =============================================================================
# CONTRACT COVERAGE AUDIT
# =============================================================================

def test_test_cases_are_traceable():
    """
    Meta-test: every TEST_CASES entry names a contract and at least one clause.
    """
    for name, info in TEST_CASES.items():
        assert name.startswith("test_")
        assert info["contract"]
        assert info["enforces"]


def test_contract_coverage():
    """
    Meta-test: Verify all contract clauses have test coverage.

    This test enforces CL12-E traceability by failing if any
    contract clause lacks a corresponding test.
    """
    from contracts import audit_contract_coverage

    coverage = audit_contract_coverage()

    # Report coverage
    print(f"\nContract Coverage: {coverage['coverage_pct']}%")
    print(f"Tests defined: {coverage['test_count']}")

    assert coverage["uncovered"] == [], f"Uncovered clauses: {coverage['uncovered']}"
