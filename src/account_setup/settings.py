"""
Setup Settings
==============

Timeouts and logging level for the account setup workflow.

Values come from constructor arguments or, via from_env(), from
ACCOUNT_SETUP_* environment variables. No credentials are ever read here.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

ENV_PREFIX = "ACCOUNT_SETUP_"


@dataclass(frozen=True)
class SetupSettings:
    """Adapter timeouts (seconds) and log level."""

    discovery_timeout: float = 15.0
    test_timeout: float = 30.0
    create_timeout: float = 10.0
    imap_timeout: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SetupSettings:
        """
        Build settings from ACCOUNT_SETUP_* variables, falling back to defaults.

        ERRORS:
        - ValueError: a timeout variable is not a positive number
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            discovery_timeout=_timeout(env, "DISCOVERY_TIMEOUT", defaults.discovery_timeout),
            test_timeout=_timeout(env, "TEST_TIMEOUT", defaults.test_timeout),
            create_timeout=_timeout(env, "CREATE_TIMEOUT", defaults.create_timeout),
            imap_timeout=_timeout(env, "IMAP_TIMEOUT", defaults.imap_timeout),
            log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL", defaults.log_level).upper(),
        )


def _timeout(env: Mapping[str, str], name: str, default: float) -> float:
    key = f"{ENV_PREFIX}{name}"
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value
