#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Console progress display and end-of-run summary.

The reporter only reads snapshots. Redraws are throttled (min_interval_s) so a
burst of completed probes costs at most one write; the final call always draws.
"""

from __future__ import annotations

import math
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional, Sequence, TextIO

from batch_scan import StatsSnapshot

BAR_WIDTH = 40
RULE = "=" * 70
CLEAR_SCREEN = "\033[2J\033[H"
SHOW_ALL_FOUND_MAX = 10


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h{minutes:02d}m{secs:02d}s"
    return f"{minutes}m{secs:02d}s"


def progress_bar(percent: float, width: int = BAR_WIDTH) -> str:
    filled = int(round(min(max(percent, 0.0), 100.0) / 100.0 * width))
    return "#" * filled + "-" * (width - filled)


def format_progress(stats: StatsSnapshot,
                    recent_hits: Sequence[str],
                    currently_probing: str) -> List[str]:
    lines = [
        "Domain Finder - Live Progress",
        RULE,
        f"Progress: [{progress_bar(stats.percent)}] {stats.percent:.1f}%",
        f"Status:   {stats.checked}/{stats.total} domains checked",
        "",
        f"  Available: {stats.available}",
        f"  Errors:    {stats.errors}",
        f"  Elapsed:   {format_duration(stats.elapsed_s)}",
        f"  Rate:      {stats.rate:.1f} domains/sec",
    ]
    eta = stats.eta_s
    if eta is not None and math.isfinite(eta) and eta > 0:
        lines.append(f"  ETA:       {format_duration(eta)}")
    if stats.sink_failures:
        lines.append(f"  Write failures: {stats.sink_failures}")
    lines.append("")

    if recent_hits:
        lines.append("Recently found available domains:")
        lines.extend(f"  {i + 1}. {d}" for i, d in enumerate(recent_hits))
    else:
        lines.append("No available domains found yet...")

    lines += [
        "",
        f"Currently checking: {currently_probing or 'Initializing...'}",
        RULE,
        "Press Ctrl+C to stop the search",
    ]
    return lines


class ProgressReporter:
    def __init__(self,
                 stream: Optional[TextIO] = None,
                 clear: bool = True,
                 min_interval_s: float = 0.1,
                 clock: Callable[[], float] = time.monotonic):
        self.stream = stream if stream is not None else sys.stdout
        self.clear = clear and self.stream.isatty()
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._last_draw: Optional[float] = None
        self.draws = 0

    def render(self,
               stats: StatsSnapshot,
               recent_hits: Sequence[str],
               currently_probing: str,
               final: bool = False) -> bool:
        now = self._clock()
        if (not final and self._last_draw is not None
                and now - self._last_draw < self.min_interval_s):
            return False
        self._last_draw = now

        text = "\n".join(format_progress(stats, recent_hits, currently_probing)) + "\n"
        if self.clear:
            text = CLEAR_SCREEN + text
        elif self.draws:
            text = "\n" + text
        self.stream.write(text)
        self.stream.flush()
        self.draws += 1
        return True


# ---------------------------
# Summary
# ---------------------------

def read_found_domains(path: Optional[Path]) -> Optional[List[str]]:
    if path is None:
        return None
    try:
        return [s for s in (line.strip() for line in path.read_text(encoding="utf-8").splitlines()) if s]
    except OSError:
        return None


def format_summary(stats: StatsSnapshot,
                   recent_hits: Sequence[str],
                   output_path: Optional[Path] = None) -> List[str]:
    title = "Domain search interrupted" if stats.cancelled else "Domain search completed"
    avg_rate = stats.checked / stats.elapsed_s if stats.elapsed_s > 0 else 0.0
    lines = [
        title,
        "=" * 60,
        f"Domains checked:         {stats.checked}/{stats.total}",
        f"Available domains found: {stats.available}",
        f"Errors encountered:      {stats.errors}",
    ]
    if stats.sink_failures:
        lines.append(f"Failed result writes:    {stats.sink_failures}")
    lines += [
        f"Total time:              {format_duration(stats.elapsed_s)}",
        f"Average rate:            {avg_rate:.1f} domains/sec",
    ]
    if output_path is not None:
        lines.append(f"Results saved to:        {output_path}")

    lines.append("")
    if stats.available:
        lines.append("Available domains found:")
        found = read_found_domains(output_path) if stats.available <= SHOW_ALL_FOUND_MAX else None
        if found:
            lines.extend(f"  {i + 1}. {d}" for i, d in enumerate(found))
        else:
            if stats.available > SHOW_ALL_FOUND_MAX:
                lines.append(f"  {stats.available} domains found - see {output_path} for the full list")
                lines.append("  Last 3 found:")
            lines.extend(f"  {i + 1}. {d}" for i, d in enumerate(recent_hits))
    else:
        lines.append("No available domains found with this pattern.")
        lines.append("Try a different pattern or another TLD (.org, .net, ...).")
    lines.append("=" * 60)
    return lines


def print_summary(stats: StatsSnapshot,
                  recent_hits: Sequence[str],
                  output_path: Optional[Path] = None,
                  stream: Optional[TextIO] = None) -> None:
    out = stream if stream is not None else sys.stdout
    out.write("\n".join(format_summary(stats, recent_hits, output_path)) + "\n")
    out.flush()
