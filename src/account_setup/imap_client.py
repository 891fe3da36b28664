"""
IMAP Connection Tester
======================

Verifies a ServerConfig and Credentials against a live IMAP server.
Implements ConnectionTesterContract.

CONSTITUTIONAL INVARIANTS:
- INV-TEST-01: INBOX opened read-only; no flags or messages modified
- INV-TEST-02: Password never logged
- INV-TEST-03: Default TLS context; certificate verification never disabled
"""

from __future__ import annotations

import asyncio
import logging

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError, LoginError

from contracts import (
    Credentials,
    NetworkError,
    OperationTimeoutError,
    ServerConfig,
    ServerRejectedError,
    TestResult,
    TestStep,
)

logger = logging.getLogger("account-setup.imap")

AUTH_FAILED_MESSAGE = "Authentication failed. Please check your email address and password."


class IMAPConnectionTester:
    """
    Connection tester for IMAP servers.

    Each test opens its own connection and always logs out; nothing is kept
    between calls.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout

    async def test_connection(self, config: ServerConfig, credentials: Credentials) -> TestResult:
        """
        Connect, log in, open INBOX read-only, log out.

        POST-TEST-01: Returns TestResult
        POST-TEST-02: Rejected login returns success=False

        ERRORS:
        - NetworkError: server unreachable or TLS handshake failed
        - OperationTimeoutError: socket timeout
        - ServerRejectedError: IMAP protocol error other than login
        """
        if config.server_type != "imap":
            return TestResult(
                success=False,
                message=f"Testing {config.server_type} endpoints is not supported; use an IMAP server",
            )
        return await asyncio.to_thread(self._run, config, credentials)

    def _run(self, config: ServerConfig, credentials: Credentials) -> TestResult:
        steps: list[TestStep] = []
        endpoint = f"{config.host}:{config.port}"
        # Log endpoint and username only (INV-TEST-02)
        logger.info("Testing IMAP connection to %s as %s", endpoint, credentials.username)

        try:
            client = IMAPClient(
                config.host,
                port=config.port,
                ssl=config.use_ssl,
                timeout=self._timeout,
            )
        except TimeoutError as e:
            raise OperationTimeoutError(f"Timed out connecting to {endpoint}") from e
        except OSError as e:
            raise NetworkError(f"Failed to connect to {endpoint}: {e}") from e
        steps.append(
            TestStep(
                name="Server connection established",
                status="success",
                details=f"Connected to {endpoint} (SSL: {config.use_ssl})",
            )
        )

        try:
            try:
                client.login(credentials.username, credentials.password)
            except LoginError:
                logger.warning("IMAP login rejected for %s at %s", credentials.username, endpoint)
                steps.append(TestStep(name="IMAP authentication", status="failed"))
                return TestResult(success=False, message=AUTH_FAILED_MESSAGE, steps=tuple(steps))
            steps.append(TestStep(name="Authentication successful", status="success"))

            # readonly=True ensures INV-TEST-01
            inbox = client.select_folder("INBOX", readonly=True)
            message_count = inbox.get(b"EXISTS", 0)
            steps.append(
                TestStep(
                    name="Inbox access verified",
                    status="success",
                    details=f"Inbox contains {message_count} messages",
                )
            )
        except TimeoutError as e:
            raise OperationTimeoutError(f"Timed out talking to {endpoint}") from e
        except IMAPClientError as e:
            raise ServerRejectedError(f"IMAP protocol error: {e}") from e
        except OSError as e:
            raise NetworkError(f"Connection to {endpoint} dropped: {e}") from e
        finally:
            self._logout(client)

        logger.info("IMAP connection test to %s succeeded", endpoint)
        return TestResult(
            success=True,
            message=f"Connected to {config.display_name or config.host}",
            steps=tuple(steps),
        )

    def _logout(self, client: IMAPClient) -> None:
        try:
            client.logout()
        except (IMAPClientError, OSError) as e:
            logger.debug("Ignoring logout failure: %s", e)
