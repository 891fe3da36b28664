"""
Account Setup MCP Server
========================

Guided mail account setup (email, discovery, manual server, credentials,
connection test, creation) driven by a pure transition engine.
"""

__version__ = "0.1.0"

from src.account_setup.accounts import InMemoryAccountStore
from src.account_setup.adapters import SetupAdapters
from src.account_setup.autodiscovery import ProviderDiscoverer
from src.account_setup.engine import TransitionEngine, rejection_reason, transition
from src.account_setup.imap_client import IMAPConnectionTester
from src.account_setup.server import AccountSetupMCPServer, create_server, get_server
from src.account_setup.settings import SetupSettings
from src.account_setup.workflow import AccountSetupWorkflow

__all__ = [
    "AccountSetupMCPServer",
    "get_server",
    "create_server",
    "AccountSetupWorkflow",
    "TransitionEngine",
    "transition",
    "rejection_reason",
    "SetupAdapters",
    "ProviderDiscoverer",
    "IMAPConnectionTester",
    "InMemoryAccountStore",
    "SetupSettings",
]
