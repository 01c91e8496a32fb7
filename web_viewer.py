#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Mini web viewer for domain_finder.py results (Flask) + start-scan endpoint

- Reads available domains from the output file (one per line), reloads on change
- Reads the run summary JSON written by domain_finder.py --summary-json
- UI: search + pagination + last run stats
- POST /scan starts domain_finder.py in the background for a pattern
- /api/scan_status returns running status

Install:
  pip install flask

Run:
  python web_viewer.py --output available_domains.txt --summary run_summary.json --port 8080
Open:
  http://127.0.0.1:8080
"""

from __future__ import annotations

import argparse
import json
import subprocess
import sys
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, render_template_string, request

from domain_finder import DEFAULT_OUTPUT_FILE, check_pattern
from wildcards import InvalidPatternError

app = Flask(__name__)

PAGE = """
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>Domain Finder Results</title>
    <style>
      body{font-family: system-ui, sans-serif; padding:24px}
      .muted{color:#666}
      .grid{display:grid; grid-template-columns: repeat(4, 1fr); gap: 12px}
      .card{border:1px solid #ddd; padding:12px; border-radius:10px}
      li{font-family: monospace}
    </style>
  </head>
  <body>
    <h1>Domain Finder Results</h1>
    {% if summary %}
    <p class="muted">Last run: <strong>{{ summary.pattern }}</strong>
      {% if summary.stats.cancelled %}(interrupted){% endif %}</p>
    <div class="grid">
      <div class="card"><div class="muted">Checked</div><strong>{{ summary.stats.checked }}/{{ summary.stats.total }}</strong></div>
      <div class="card"><div class="muted">Available</div><strong>{{ summary.stats.available }}</strong></div>
      <div class="card"><div class="muted">Errors</div><strong>{{ summary.stats.errors }}</strong></div>
      <div class="card"><div class="muted">Elapsed</div><strong>{{ "%.1f"|format(summary.stats.elapsed_s) }}s</strong></div>
    </div>
    {% else %}
    <p class="muted">No run summary yet.</p>
    {% endif %}
    <form method="get">
      <input type="search" name="q" placeholder="Search domain..." value="{{ q }}" />
      <button type="submit">Filter</button>
    </form>
    <p class="muted">{{ total }} available domains{% if source_file %} in {{ source_file }}{% endif %}</p>
    <ol>
      {% for d in items %}<li>{{ d }}</li>{% endfor %}
    </ol>
  </body>
</html>
"""


# ----------------------------
# Data cache (reload on change)
# ----------------------------


@dataclass
class Cache:
    file_path: Path
    summary_path: Optional[Path] = None
    mtime: float = 0.0
    available_domains: List[str] = field(default_factory=list)

    def refresh_if_needed(self) -> None:
        if not self.file_path.exists():
            self.available_domains = []
            self.mtime = 0.0
            return

        new_mtime = self.file_path.stat().st_mtime
        if new_mtime <= self.mtime and self.available_domains:
            return

        with self.file_path.open("r", encoding="utf-8") as f:
            data = [line.strip() for line in f]
        # keep discovery order, drop blanks/dupes
        self.available_domains = list(dict.fromkeys(d for d in data if d))
        self.mtime = new_mtime

    def load_summary(self) -> Optional[Dict[str, Any]]:
        if self.summary_path is None or not self.summary_path.exists():
            return None
        try:
            return json.loads(self.summary_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None

    def search(self, q: str) -> List[str]:
        self.refresh_if_needed()
        q = q.strip().lower()
        if not q:
            return list(self.available_domains)
        return [d for d in self.available_domains if q in d.lower()]


CACHE: Optional[Cache] = None

# ----------------------------
# Scan trigger (background)
# ----------------------------

SCAN_STATE: Dict[str, Any] = {
    "running": False,
    "pattern": None,
    "started_at": None,
    "ended_at": None,
    "last_exit_code": None,
    "last_error": None,
}

SCAN_BASE_CMD: List[str] = []  # populated in configure()
_scan_lock = threading.Lock()


def build_scan_cmd(pattern: str) -> List[str]:
    return [*SCAN_BASE_CMD, "--domain", pattern]


def _run_scan_bg(cmd: List[str]) -> None:
    try:
        p = subprocess.run(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.STDOUT,
            check=False,
        )
        SCAN_STATE["last_exit_code"] = int(p.returncode)
    except Exception as e:
        SCAN_STATE["last_error"] = f"{type(e).__name__}: {e}"
    finally:
        SCAN_STATE["running"] = False
        SCAN_STATE["ended_at"] = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime())


# ----------------------------
# Routes
# ----------------------------


@app.get("/")
def index():
    assert CACHE is not None
    q = request.args.get("q") or ""
    items = CACHE.search(q)
    return render_template_string(
        PAGE,
        q=q,
        items=items[:500],
        total=len(items),
        source_file=str(CACHE.file_path) if CACHE.file_path.exists() else None,
        summary=CACHE.load_summary(),
    )


@app.get("/api/domains")
def api_domains():
    assert CACHE is not None

    q = request.args.get("q") or ""
    try:
        page = int(request.args.get("page") or "1")
        per_page = int(request.args.get("per_page") or "200")
    except ValueError:
        return jsonify({"error": "page and per_page must be integers"}), 400
    page = max(page, 1)
    per_page = min(max(per_page, 1), 5000)

    items = CACHE.search(q)
    total = len(items)
    start = (page - 1) * per_page
    page_items = items[start:start + per_page]

    source_file = str(CACHE.file_path) if CACHE.file_path.exists() else None
    updated_at = (
        time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(CACHE.mtime))
        if CACHE.mtime
        else None
    )

    note = None
    if not source_file:
        note = "No results file yet. POST /scan with a pattern to generate data."

    return jsonify(
        {
            "total": total,
            "page": page,
            "per_page": per_page,
            "items": page_items,
            "source_file": source_file,
            "updated_at": updated_at,
            "note": note,
        }
    )


@app.get("/api/summary")
def api_summary():
    assert CACHE is not None
    summary = CACHE.load_summary()
    if summary is None:
        return jsonify({"error": "no run summary yet"}), 404
    return jsonify(summary)


@app.get("/api/scan_status")
def api_scan_status():
    return jsonify(
        {
            "running": bool(SCAN_STATE["running"]),
            "pattern": SCAN_STATE["pattern"],
            "started_at": SCAN_STATE["started_at"],
            "ended_at": SCAN_STATE["ended_at"],
            "last_exit_code": SCAN_STATE["last_exit_code"],
            "last_error": SCAN_STATE["last_error"],
        }
    )


@app.post("/scan")
def trigger_scan():
    payload = request.get_json(silent=True) or {}
    raw = payload.get("pattern") or request.form.get("pattern")
    try:
        pattern = check_pattern(raw)
    except InvalidPatternError as e:
        return jsonify({"ok": False, "error": str(e)}), 400

    with _scan_lock:
        if SCAN_STATE["running"]:
            return jsonify({"ok": False, "error": "scan already running"}), 409
        SCAN_STATE.update(
            running=True,
            pattern=pattern,
            started_at=time.strftime("%Y-%m-%d %H:%M:%S", time.localtime()),
            ended_at=None,
            last_exit_code=None,
            last_error=None,
        )

    cmd = build_scan_cmd(pattern)
    t = threading.Thread(target=_run_scan_bg, args=(cmd,), daemon=True)
    t.start()
    return jsonify({"ok": True, "status": "scan started", "cmd": cmd})


# ----------------------------
# Main
# ----------------------------


def configure(output: Path,
              summary: Optional[Path],
              scan_script: str = "domain_finder.py",
              scan_args: str = "") -> None:
    global CACHE, SCAN_BASE_CMD
    CACHE = Cache(file_path=output, summary_path=summary)
    CACHE.refresh_if_needed()

    SCAN_BASE_CMD = [sys.executable, scan_script, "--output", str(output), "--no-clear", "-q"]
    if summary is not None:
        SCAN_BASE_CMD += ["--summary-json", str(summary)]
    if scan_args.strip():
        SCAN_BASE_CMD += scan_args.strip().split()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        "web_viewer.py",
        description="Mini web UI for viewing available domains + starting a scan.",
    )
    p.add_argument("--output", default=DEFAULT_OUTPUT_FILE, help="domain_finder.py output file")
    p.add_argument("--summary", default="run_summary.json", help="Run summary JSON path")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8080)
    p.add_argument("--scan-script", default="domain_finder.py", help="Scanner script to run on POST /scan")
    p.add_argument("--scan-args", default="", help="Extra args appended to scan command, e.g. \"-c 20 -t 3000\"")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure(Path(args.output), Path(args.summary), args.scan_script, args.scan_args)

    print(f"Serving on http://{args.host}:{args.port}")
    print(f"Reading from: {args.output} (summary: {args.summary})")
    print(f"Scan command: {' '.join(SCAN_BASE_CMD)} <pattern>")

    app.run(host=args.host, port=args.port, debug=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
