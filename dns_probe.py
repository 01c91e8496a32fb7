#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Single-domain availability probe.

A probe is one name-resolution lookup bounded by a timeout:
- lookup succeeds            -> UNAVAILABLE (name is registered/reachable)
- "no such name" / "no data" -> AVAILABLE   (heuristic only, not a WHOIS check)
- anything else or timeout   -> ERROR       (never reported as available)

Two resolver backends:
- "dns":    dnspython async resolver (direct queries, optional custom nameservers)
- "system": aiohttp ThreadedResolver (getaddrinfo, honours /etc/hosts and the OS stub)

probe() never raises for resolution problems and touches no shared state; the
caller decides what to do with the ProbeResult.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import socket
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import aiohttp
import dns.asyncresolver
import dns.resolver

log = logging.getLogger("dns_probe")

# getaddrinfo "not found" codes. EAI_NODATA is missing on some platforms.
_GAI_NOT_FOUND = {
    code for code in (getattr(socket, "EAI_NONAME", None), getattr(socket, "EAI_NODATA", None))
    if code is not None
}


class Outcome(str, enum.Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


@dataclass(frozen=True)
class ProbeResult:
    domain: str
    outcome: Outcome
    error: Optional[str] = None
    elapsed_s: float = 0.0


# ---------------------------
# Resolver backends
# ---------------------------

class DnsPythonResolver:
    def __init__(self,
                 nameservers: Optional[Sequence[str]] = None,
                 rdtype: str = "A",
                 lifetime_s: Optional[float] = None):
        self.resolver = dns.asyncresolver.Resolver(configure=not nameservers)
        if nameservers:
            self.resolver.nameservers = list(nameservers)
        if lifetime_s:
            self.resolver.timeout = lifetime_s
            self.resolver.lifetime = lifetime_s
        self.rdtype = rdtype

    async def resolve(self, domain: str) -> Any:
        return await self.resolver.resolve(domain, self.rdtype)

    def is_not_found(self, exc: BaseException) -> bool:
        return isinstance(exc, (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer))

    async def close(self) -> None:
        return None


class SystemResolver:
    def __init__(self, family: int = socket.AF_INET):
        self.family = family
        self._resolver: Optional[aiohttp.ThreadedResolver] = None

    async def resolve(self, domain: str) -> Any:
        # ThreadedResolver grabs the running loop on construction
        if self._resolver is None:
            self._resolver = aiohttp.ThreadedResolver()
        return await self._resolver.resolve(domain, 0, family=self.family)

    def is_not_found(self, exc: BaseException) -> bool:
        return isinstance(exc, OSError) and exc.errno in _GAI_NOT_FOUND

    async def close(self) -> None:
        if self._resolver is not None:
            await self._resolver.close()
            self._resolver = None


def build_resolver(kind: str,
                   nameservers: Optional[Sequence[str]] = None,
                   rdtype: str = "A",
                   timeout_s: Optional[float] = None):
    if kind == "dns":
        return DnsPythonResolver(nameservers=nameservers, rdtype=rdtype, lifetime_s=timeout_s)
    if kind == "system":
        if nameservers:
            log.warning("--nameserver is ignored by the system resolver")
        family = socket.AF_INET6 if rdtype.upper() == "AAAA" else socket.AF_INET
        return SystemResolver(family=family)
    raise ValueError(f"unknown resolver backend: {kind!r} (expected dns|system)")


# ---------------------------
# Probe
# ---------------------------

async def probe(domain: str, timeout_s: float, resolver) -> ProbeResult:
    started = time.monotonic()
    try:
        await asyncio.wait_for(resolver.resolve(domain), timeout=timeout_s)
    except asyncio.TimeoutError:
        elapsed = time.monotonic() - started
        log.debug("probe %s timed out after %.2fs", domain, elapsed)
        return ProbeResult(domain, Outcome.ERROR, error="timeout", elapsed_s=elapsed)
    except Exception as e:
        elapsed = time.monotonic() - started
        if resolver.is_not_found(e):
            log.debug("probe %s not found (%s)", domain, type(e).__name__)
            return ProbeResult(domain, Outcome.AVAILABLE, elapsed_s=elapsed)
        err = f"{type(e).__name__}: {e}"
        log.debug("probe %s failed: %s", domain, err)
        return ProbeResult(domain, Outcome.ERROR, error=err, elapsed_s=elapsed)

    elapsed = time.monotonic() - started
    log.debug("probe %s resolved in %.2fs", domain, elapsed)
    return ProbeResult(domain, Outcome.UNAVAILABLE, elapsed_s=elapsed)
