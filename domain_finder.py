#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Find likely-unregistered domains from a wildcard pattern.

Each "*" in the pattern is one character from a-z0-9. Every expansion is looked
up in DNS; names that do not resolve ("no such name") are written to the output
file, one per line, as soon as they are found.

DNS failure is only a heuristic for "available" - always confirm with a
registrar before buying.

Features:
- Shuffled (or seeded / ordered) candidate enumeration
- Bounded concurrency: probes run in batches of --concurrent, batch by batch
- Per-probe timeout, errors counted and never reported as available
- Live progress (percent, rate, ETA, last hits), end-of-run summary
- Ctrl+C: finish the current batch and stop (twice: abort in-flight probes)
- Optional run summary JSON (atomic write), used by web_viewer.py

Config: CLI flags > env vars (DOMAIN_FINDER_*) > .env file > defaults.

Examples:
  python domain_finder.py "test*.com"
  python domain_finder.py --domain "my*site.org" --concurrent 20
  python domain_finder.py -d "*domain.net" -c 5 -t 3000 -o results.txt
"""

from __future__ import annotations

import argparse
import asyncio
import functools
import json
import logging
import os
import signal
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from dotenv import load_dotenv

from batch_scan import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_PROGRESS_EVERY,
    BatchScanner,
    ResultSink,
    StatsSnapshot,
)
from dns_probe import build_resolver
from live_progress import ProgressReporter, print_summary
from wildcards import ALPHABET, InvalidPatternError, count_candidates, generate_domains, validate_pattern

DEFAULT_TIMEOUT_MS = 5000
DEFAULT_OUTPUT_FILE = "available_domains.txt"
DEFAULT_RESOLVER = "dns"

ENV_PREFIX = "DOMAIN_FINDER_"


@dataclass
class FinderSettings:
    pattern: str
    concurrency: int = DEFAULT_BATCH_SIZE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    output: str = DEFAULT_OUTPUT_FILE
    progress_every: int = DEFAULT_PROGRESS_EVERY
    shuffle: bool = True
    seed: Optional[int] = None
    resolver: str = DEFAULT_RESOLVER
    nameservers: List[str] = field(default_factory=list)
    rdtype: str = "A"
    max_candidates: int = 0
    summary_json: Optional[str] = None
    clear: bool = True


# ---------------------------
# Pattern input
# ---------------------------

def check_pattern(pattern: Optional[str]) -> str:
    if pattern is None or not pattern.strip():
        raise InvalidPatternError("No domain pattern provided. Use --help for usage information.")
    pattern = pattern.strip().lower()
    validate_pattern(pattern)
    if "." not in pattern:
        raise InvalidPatternError("Invalid domain pattern. Domain must include a TLD (e.g., .com, .org)")
    return pattern


def prompt_for_pattern() -> Optional[str]:
    if not sys.stdin.isatty():
        return None
    print("No domain pattern provided. Starting interactive mode...\n")
    try:
        return input("Enter domain pattern (use * for wildcards): ")
    except EOFError:
        return None


# ---------------------------
# Config
# ---------------------------

def configure_logging(verbosity: int) -> logging.Logger:
    level = logging.INFO
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity <= 0:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("domain_finder")


def _env_int(env: Mapping[str, str], name: str) -> Optional[int]:
    raw = env.get(ENV_PREFIX + name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise SystemExit(f"Invalid {ENV_PREFIX + name}={raw!r}: expected an integer")


def positive_int(s: str) -> int:
    try:
        v = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {s!r}")
    if v < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {v}")
    return v


def resolve_settings(args: argparse.Namespace,
                     pattern: str,
                     env: Optional[Mapping[str, str]] = None) -> FinderSettings:
    env = os.environ if env is None else env

    def pick(value, name: str, default):
        if value is not None:
            return value
        from_env = _env_int(env, name)
        if from_env is not None:
            if from_env < 1:
                raise SystemExit(f"Invalid {ENV_PREFIX + name}={from_env}: must be >= 1")
            return from_env
        return default

    output = args.output or env.get(ENV_PREFIX + "OUTPUT", "").strip() or DEFAULT_OUTPUT_FILE
    resolver = args.resolver or env.get(ENV_PREFIX + "RESOLVER", "").strip() or DEFAULT_RESOLVER
    if resolver not in ("dns", "system"):
        raise SystemExit(f"Invalid resolver {resolver!r}: expected dns|system")

    return FinderSettings(
        pattern=pattern,
        concurrency=pick(args.concurrent, "CONCURRENCY", DEFAULT_BATCH_SIZE),
        timeout_ms=pick(args.timeout, "TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
        output=output,
        progress_every=pick(args.progress_every, "PROGRESS_EVERY", DEFAULT_PROGRESS_EVERY),
        shuffle=not args.no_shuffle,
        seed=args.seed,
        resolver=resolver,
        nameservers=list(args.nameserver or []),
        rdtype=args.rdtype.upper(),
        max_candidates=args.max_candidates,
        summary_json=args.summary_json,
        clear=not args.no_clear,
    )


def atomic_write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    tmp.replace(path)


def build_run_summary(settings: FinderSettings,
                      stats: StatsSnapshot,
                      recent_hits: Sequence[str]) -> Dict[str, object]:
    return {
        "pattern": settings.pattern,
        "output": settings.output,
        "concurrency": settings.concurrency,
        "timeout_ms": settings.timeout_ms,
        "resolver": settings.resolver,
        "stats": stats.to_dict(),
        "recent_hits": list(recent_hits),
    }


# ---------------------------
# Run
# ---------------------------

def make_signal_handler(scanner: BatchScanner, log: logging.Logger) -> Callable[[], None]:
    def on_signal() -> None:
        if scanner.cancel_requested:
            log.warning("Interrupted again. Aborting in-flight checks...")
            scanner.abort()
            return
        log.warning("Interrupted by user. Finishing current batch (Ctrl+C again to abort)...")
        scanner.cancel()

    return on_signal


def install_signal_handlers(scanner: BatchScanner, log: logging.Logger) -> List[int]:
    loop = asyncio.get_running_loop()
    on_signal = make_signal_handler(scanner, log)

    installed: List[int] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, on_signal)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # e.g. Windows: fall back to KeyboardInterrupt in __main__
            pass
    return installed


async def main_async(settings: FinderSettings, log: logging.Logger) -> int:
    n = count_candidates(settings.pattern, ALPHABET)
    if settings.max_candidates and n > settings.max_candidates:
        log.error("Pattern %s expands to %s candidates, above --max-candidates=%s",
                  settings.pattern, n, settings.max_candidates)
        return 1

    output_path = Path(settings.output)
    try:
        sink = ResultSink.open(output_path)
    except OSError as e:
        log.error("Cannot open output file %s: %s", output_path, e)
        return 1

    timeout_s = settings.timeout_ms / 1000.0
    try:
        resolver = build_resolver(settings.resolver, settings.nameservers, settings.rdtype, timeout_s)
    except Exception as e:
        sink.close()
        log.error("Cannot set up %s resolver: %s: %s", settings.resolver, type(e).__name__, e)
        return 1

    reporter = ProgressReporter(clear=settings.clear)
    scanner = BatchScanner(
        resolver,
        batch_size=settings.concurrency,
        timeout_s=timeout_s,
        progress_every=settings.progress_every,
        reporter=reporter,
    )

    installed = install_signal_handlers(scanner, log)
    try:
        with sink:
            log.info("Starting domain search for pattern: %s", settings.pattern)
            # expand off the loop thread: signal handlers stay live during long expansions
            candidates = await asyncio.get_running_loop().run_in_executor(
                None, functools.partial(generate_domains, settings.pattern, ALPHABET,
                                        shuffle=settings.shuffle, seed=settings.seed))
            log.info("Generated %s domain combinations; %s concurrent checks, timeout %sms",
                     len(candidates), settings.concurrency, settings.timeout_ms)
            stats = await scanner.run(candidates, sink)
    finally:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)
        await resolver.close()

    assert scanner.aggregator is not None
    recent = scanner.aggregator.recent_hits.items()
    print_summary(stats, recent, output_path)

    if settings.summary_json:
        atomic_write_json(Path(settings.summary_json), build_run_summary(settings, stats, recent))
        log.info("Run summary written to %s", settings.summary_json)
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        "domain_finder.py",
        description="Find available domain names by expanding * wildcards (a-z0-9) and checking DNS.",
    )
    p.add_argument("pattern", nargs="?", default=None,
                   help="Domain pattern with wildcards, e.g. test*.com, *domain.org")
    p.add_argument("-d", "--domain", default=None, help="Domain pattern (alternative to positional arg)")
    p.add_argument("-c", "--concurrent", type=positive_int, default=None,
                   help=f"Concurrent DNS checks per batch (default: {DEFAULT_BATCH_SIZE})")
    p.add_argument("-t", "--timeout", type=positive_int, default=None,
                   help=f"DNS timeout in milliseconds (default: {DEFAULT_TIMEOUT_MS})")
    p.add_argument("-o", "--output", default=None, help=f"Output file (default: {DEFAULT_OUTPUT_FILE})")
    p.add_argument("--progress-every", type=positive_int, default=None,
                   help=f"Redraw progress every N checks (default: {DEFAULT_PROGRESS_EVERY})")
    p.add_argument("--no-shuffle", action="store_true", help="Probe candidates in alphabet order")
    p.add_argument("--seed", type=int, default=None, help="Seed for the shuffled order (reproducible runs)")
    p.add_argument("--resolver", choices=["dns", "system"], default=None,
                   help=f"Resolver backend: dnspython or OS getaddrinfo (default: {DEFAULT_RESOLVER})")
    p.add_argument("--nameserver", action="append", default=None,
                   help="Nameserver IP for the dns backend (repeatable)")
    p.add_argument("--rdtype", default="A", help="Record type to query (default: A)")
    p.add_argument("--max-candidates", type=int, default=0,
                   help="Refuse patterns that expand beyond N candidates (0 = no limit)")
    p.add_argument("--summary-json", default=None, help="Write run summary JSON to this path")
    p.add_argument("--no-clear", action="store_true", help="Do not clear the screen between progress updates")
    p.add_argument("--dotenv", default=None, help="Path to .env file (default: nearest .env, if any)")
    p.add_argument("-v", "--verbose", action="count", default=1, help="Increase verbosity (-v for debug)")
    p.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    log = configure_logging(0 if args.quiet else args.verbose)
    load_dotenv(dotenv_path=args.dotenv, override=False)

    pattern = args.domain or args.pattern
    if not pattern:
        pattern = prompt_for_pattern()
    try:
        pattern = check_pattern(pattern)
    except InvalidPatternError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    settings = resolve_settings(args, pattern)
    return asyncio.run(main_async(settings, log))


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        raise SystemExit(130)
