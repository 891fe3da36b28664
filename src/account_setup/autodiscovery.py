"""
Server Autodiscovery
====================

Resolve mail server settings from an email address or a user-supplied server
hint. Implements DiscovererContract.

Resolution order for an email address:
1. Known provider table (exact domain match)
2. MX records pointing at a known hosted provider (custom domains on
   Google Workspace, Microsoft 365, ...)
3. DNS patterns: imap.<domain>, mail.<domain>, <domain>

INV-DISCOVER-01: Resolution only. No autodiscover XML, autoconfig or EWS traffic.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable
from urllib.parse import urlsplit

import dns.asyncresolver
import dns.exception
import dns.resolver

from contracts import (
    DiscoveryMethod,
    DiscoveryResult,
    NetworkError,
    ServerConfig,
)
from src.account_setup.gating import domain_problem

logger = logging.getLogger("account-setup.discovery")

IMAPS_PORT = 993
IMAP_PORT = 143
HTTPS_PORT = 443

AUTO_FAILURE_MESSAGE = "Could not automatically discover email settings"
AUTO_SUGGESTION = "Try manual configuration with your server name or contact your IT administrator"
MANUAL_SUGGESTION = "Verify the server name is correct or try the full server URL"

Resolver = Callable[[str, int], Awaitable[bool]]
MXLookup = Callable[[str], Awaitable[list[str]]]


def _imaps(host: str, display_name: str) -> ServerConfig:
    return ServerConfig(
        host=host,
        port=IMAPS_PORT,
        use_ssl=True,
        protocol_url=f"imaps://{host}:{IMAPS_PORT}",
        discovery_method=DiscoveryMethod.KNOWN_PROVIDER,
        display_name=display_name,
    )


_GMAIL = _imaps("imap.gmail.com", "Gmail")
_OUTLOOK = _imaps("outlook.office365.com", "Microsoft Outlook")
_YAHOO = _imaps("imap.mail.yahoo.com", "Yahoo Mail")
_ICLOUD = _imaps("imap.mail.me.com", "iCloud Mail")

# Known email provider configurations
KNOWN_PROVIDERS: dict[str, ServerConfig] = {
    "gmail.com": _GMAIL,
    "googlemail.com": _GMAIL,
    "outlook.com": _OUTLOOK,
    "hotmail.com": _OUTLOOK,
    "live.com": _OUTLOOK,
    "office365.com": _OUTLOOK,
    "yahoo.com": _YAHOO,
    "aol.com": _imaps("imap.aol.com", "AOL Mail"),
    "icloud.com": _ICLOUD,
    "me.com": _ICLOUD,
    "fastmail.com": _imaps("imap.fastmail.com", "Fastmail"),
    "zoho.com": _imaps("imap.zoho.com", "Zoho Mail"),
}

# MX host suffix -> hosted provider, for custom domains
MX_PROVIDERS: tuple[tuple[str, ServerConfig], ...] = (
    ("google.com", _GMAIL),
    ("googlemail.com", _GMAIL),
    ("outlook.com", _OUTLOOK),
    ("microsoft.com", _OUTLOOK),
    ("yahoodns.net", _YAHOO),
    ("icloud.com", _ICLOUD),
    ("messagingengine.com", KNOWN_PROVIDERS["fastmail.com"]),
    ("zoho.com", KNOWN_PROVIDERS["zoho.com"]),
)


async def lookup_mx(domain: str) -> list[str]:
    """
    Return the MX hosts of domain, most preferred first.

    A missing domain, missing records or a failed lookup all give an empty
    list; discovery then falls through to the host name patterns.
    """
    try:
        answer = await dns.asyncresolver.resolve(domain, "MX")
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
        return []
    except dns.exception.DNSException as e:
        logger.warning("MX lookup for %s failed: %s", domain, e)
        return []
    records = sorted(answer, key=lambda r: r.preference)
    return [r.exchange.to_text().rstrip(".").lower() for r in records]


def provider_for_mx(mx_hosts: list[str]) -> ServerConfig | None:
    for mx in mx_hosts:
        for suffix, config in MX_PROVIDERS:
            if mx == suffix or mx.endswith(f".{suffix}"):
                return config
    return None


async def resolve_host(host: str, port: int) -> bool:
    """
    Return True if host resolves, False if the name does not exist.

    ERRORS:
    - NetworkError: any other resolver or socket failure
    """
    loop = asyncio.get_running_loop()
    try:
        await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except UnicodeError:
        # IDNA encoding rejects empty or overlong labels
        logger.debug("Host name %r is not encodable", host)
        return False
    except socket.gaierror as e:
        if e.errno in (socket.EAI_NONAME, getattr(socket, "EAI_NODATA", socket.EAI_NONAME)):
            return False
        raise NetworkError(f"Could not resolve {host}: {e}") from e
    except OSError as e:
        raise NetworkError(f"Could not resolve {host}: {e}") from e
    return True


def parse_server_hint(hint: str) -> ServerConfig | None:
    """
    Build a ServerConfig from manual input.

    Accepts host, host:port, or a URL with scheme imaps, imap, https or http.
    Returns None when no host can be extracted.
    """
    text = hint.strip()
    if not text:
        return None

    if "://" in text:
        parts = urlsplit(text)
        scheme = parts.scheme.lower()
        try:
            explicit_port = parts.port
        except ValueError:
            return None
        host = parts.hostname or ""
        if scheme == "imaps":
            port, use_ssl = explicit_port or IMAPS_PORT, True
            url = f"imaps://{host}:{port}"
        elif scheme == "imap":
            port, use_ssl = explicit_port or IMAP_PORT, False
            url = f"imap://{host}:{port}"
        elif scheme in ("https", "http"):
            port = explicit_port or (HTTPS_PORT if scheme == "https" else 80)
            use_ssl = scheme == "https"
            url = text
        else:
            return None
    else:
        host, _, port_text = text.partition(":")
        if port_text:
            if not port_text.isdigit():
                return None
            port = int(port_text)
        else:
            port = IMAPS_PORT
        use_ssl = port != IMAP_PORT
        url = f"{'imaps' if use_ssl else 'imap'}://{host}:{port}"

    if not host or "/" in host or " " in host or domain_problem(host):
        return None
    if not 0 < port < 65536:
        return None

    return ServerConfig(
        host=host.lower(),
        port=port,
        use_ssl=use_ssl,
        protocol_url=url,
        discovery_method=DiscoveryMethod.MANUAL,
        display_name=f"{host.lower()} Mail Server",
    )


class ProviderDiscoverer:
    """
    Discoverer backed by a provider table, MX records and DNS resolution.

    The resolver and MX lookup are injectable so tests never touch the network.
    """

    def __init__(self, resolver: Resolver | None = None, mx_lookup: MXLookup | None = None) -> None:
        self._resolve = resolver or resolve_host
        self._lookup_mx = mx_lookup or lookup_mx

    async def discover(self, hint: str, *, manual: bool = False) -> DiscoveryResult:
        if manual:
            return await self._discover_manual(hint)
        return await self._discover_email(hint)

    async def _discover_email(self, email_address: str) -> DiscoveryResult:
        domain = email_address.rpartition("@")[2].strip().lower()
        if not domain or domain_problem(domain):
            return DiscoveryResult(success=False, error_message="Invalid email address format")

        tried = [f"provider:{domain}"]
        known = KNOWN_PROVIDERS.get(domain)
        if known is not None:
            logger.info("Matched known provider for %s", domain)
            return DiscoveryResult(success=True, config=known, tried_endpoints=tuple(tried))

        tried.append(f"mx:{domain}")
        hosted = provider_for_mx(await self._lookup_mx(domain))
        if hosted is not None:
            logger.info("MX records for %s point at %s", domain, hosted.display_name)
            return DiscoveryResult(success=True, config=hosted, tried_endpoints=tuple(tried))

        for host in (f"imap.{domain}", f"mail.{domain}", domain):
            tried.append(f"{host}:{IMAPS_PORT}")
            logger.info("Trying %s", host)
            if await self._resolve(host, IMAPS_PORT):
                config = ServerConfig(
                    host=host,
                    port=IMAPS_PORT,
                    use_ssl=True,
                    protocol_url=f"imaps://{host}:{IMAPS_PORT}",
                    discovery_method=DiscoveryMethod.DNS_PATTERN,
                    display_name=f"{domain} Mail Server",
                )
                return DiscoveryResult(success=True, config=config, tried_endpoints=tuple(tried))

        logger.warning("Autodiscovery failed for %s. Tried %d endpoints.", domain, len(tried))
        return DiscoveryResult(
            success=False,
            tried_endpoints=tuple(tried),
            error_message=AUTO_FAILURE_MESSAGE,
            suggestion=AUTO_SUGGESTION,
        )

    async def _discover_manual(self, server_hint: str) -> DiscoveryResult:
        config = parse_server_hint(server_hint)
        if config is None:
            return DiscoveryResult(
                success=False,
                error_message=f"Invalid server address: {server_hint.strip()!r}",
                suggestion=MANUAL_SUGGESTION,
            )

        endpoint = f"{config.host}:{config.port}"
        if await self._resolve(config.host, config.port):
            logger.info("Manual server %s resolved", endpoint)
            return DiscoveryResult(success=True, config=config, tried_endpoints=(endpoint,))

        logger.warning("Manual server %s did not resolve", endpoint)
        return DiscoveryResult(
            success=False,
            tried_endpoints=(endpoint,),
            error_message=f"Could not resolve {config.host}",
            suggestion=MANUAL_SUGGESTION,
        )
