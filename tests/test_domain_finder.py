import asyncio
import io
import json
import logging
import os
import signal
import sys
import time

import pytest

import domain_finder
from batch_scan import BatchScanner, ResultSink
from domain_finder import (
    build_arg_parser,
    check_pattern,
    install_signal_handlers,
    main,
    make_signal_handler,
    resolve_settings,
)
from fakes import FakeResolver
from wildcards import InvalidPatternError


@pytest.fixture
def fake_resolver(monkeypatch):
    resolver = FakeResolver({"teat.com": "nx", "te9t.com": "nx", "tebt.com": "err"})

    def build(kind, nameservers=None, rdtype="A", timeout_s=None):
        return resolver

    monkeypatch.setattr(domain_finder, "build_resolver", build)
    return resolver


def test_check_pattern():
    assert check_pattern("  Te*T.com ") == "te*t.com"
    with pytest.raises(InvalidPatternError):
        check_pattern(None)
    with pytest.raises(InvalidPatternError):
        check_pattern("")
    with pytest.raises(InvalidPatternError, match="TLD"):
        check_pattern("test*")


def test_settings_defaults():
    args = build_arg_parser().parse_args(["a*.com"])
    s = resolve_settings(args, "a*.com", env={})
    assert s.concurrency == 10
    assert s.timeout_ms == 5000
    assert s.output == "available_domains.txt"
    assert s.progress_every == 5
    assert s.resolver == "dns"
    assert s.shuffle


def test_settings_env_then_flags():
    env = {
        "DOMAIN_FINDER_CONCURRENCY": "25",
        "DOMAIN_FINDER_TIMEOUT_MS": "1500",
        "DOMAIN_FINDER_OUTPUT": "found.txt",
        "DOMAIN_FINDER_RESOLVER": "system",
    }
    args = build_arg_parser().parse_args(["a*.com"])
    s = resolve_settings(args, "a*.com", env=env)
    assert (s.concurrency, s.timeout_ms, s.output, s.resolver) == (25, 1500, "found.txt", "system")

    args = build_arg_parser().parse_args(["a*.com", "-c", "3", "-t", "200", "-o", "x.txt", "--resolver", "dns"])
    s = resolve_settings(args, "a*.com", env=env)
    assert (s.concurrency, s.timeout_ms, s.output, s.resolver) == (3, 200, "x.txt", "dns")


def test_bad_env_value_is_fatal():
    args = build_arg_parser().parse_args(["a*.com"])
    with pytest.raises(SystemExit):
        resolve_settings(args, "a*.com", env={"DOMAIN_FINDER_CONCURRENCY": "many"})
    with pytest.raises(SystemExit):
        resolve_settings(args, "a*.com", env={"DOMAIN_FINDER_TIMEOUT_MS": "0"})


def test_single_v_means_debug():
    parser = build_arg_parser()
    assert parser.parse_args(["a*.com", "-v"]).verbose == 2
    help_text = parser.format_help()
    assert "-v for debug" in help_text
    assert "-vv" not in help_text


def test_bad_flag_value_is_usage_error():
    with pytest.raises(SystemExit) as exc:
        build_arg_parser().parse_args(["a*.com", "-c", "0"])
    assert exc.value.code == 2


def test_main_end_to_end(tmp_path, fake_resolver, capsys):
    out = tmp_path / "available.txt"
    summary = tmp_path / "summary.json"
    code = main(["te*t.com", "-o", str(out), "--summary-json", str(summary),
                 "--no-shuffle", "--no-clear", "-q", "-c", "6"])
    assert code == 0
    assert out.read_text(encoding="utf-8") == "teat.com\nte9t.com\n"

    data = json.loads(summary.read_text(encoding="utf-8"))
    assert data["pattern"] == "te*t.com"
    assert data["stats"]["total"] == 36
    assert data["stats"]["checked"] == 36
    assert data["stats"]["available"] == 2
    assert data["stats"]["errors"] == 1
    assert data["recent_hits"] == ["te9t.com", "teat.com"]
    assert fake_resolver.max_in_flight <= 6

    printed = capsys.readouterr().out
    assert "Domain search completed" in printed
    assert "te9t.com" in printed


def test_main_domain_flag_and_overwrite(tmp_path, fake_resolver):
    out = tmp_path / "available.txt"
    out.write_text("old.com\n", encoding="utf-8")
    assert main(["--domain", "teat.com", "-o", str(out), "--no-clear", "-q"]) == 0
    assert out.read_text(encoding="utf-8") == "teat.com\n"


def test_main_refuses_oversized_pattern(tmp_path, fake_resolver):
    out = tmp_path / "available.txt"
    assert main(["te*t.com", "-o", str(out), "--max-candidates", "10", "-q"]) == 1
    assert fake_resolver.calls == []
    assert not out.exists()


def test_main_without_pattern_fails(monkeypatch, capsys):
    # piped stdin: no interactive prompt
    monkeypatch.setattr("sys.stdin", io.StringIO())
    assert main(["-q"]) == 1
    assert "No domain pattern provided" in capsys.readouterr().err


class TtyInput(io.StringIO):
    def isatty(self):
        return True


def test_main_prompts_for_pattern_on_tty(tmp_path, monkeypatch, fake_resolver):
    monkeypatch.setattr("sys.stdin", TtyInput())
    monkeypatch.setattr("builtins.input", lambda prompt: "teat.com")
    out = tmp_path / "available.txt"
    assert main(["-o", str(out), "--no-clear", "-q"]) == 0
    assert out.read_text(encoding="utf-8") == "teat.com\n"


def test_main_rejects_pattern_without_tld(capsys):
    assert main(["test*", "-q"]) == 1
    assert "TLD" in capsys.readouterr().err


def test_signal_handler_cancels_then_aborts():
    resolver = FakeResolver({f"d{i}.com": "hang" for i in range(6)})
    scanner = BatchScanner(resolver, batch_size=3, timeout_s=30.0)
    on_signal = make_signal_handler(scanner, logging.getLogger("test"))

    async def scenario():
        task = asyncio.create_task(scanner.run([f"d{i}.com" for i in range(6)], ResultSink(io.StringIO())))
        await asyncio.sleep(0.02)
        on_signal()
        assert scanner.cancel_requested
        assert not task.done()
        in_flight = list(scanner._in_flight)
        assert len(in_flight) == 3
        on_signal()
        stats = await asyncio.wait_for(task, 5.0)
        return stats, in_flight

    stats, in_flight = asyncio.run(scenario())
    assert all(t.cancelled() for t in in_flight)
    assert stats.cancelled
    assert stats.checked == 0


@pytest.mark.skipif(sys.platform == "win32", reason="loop signal handlers need POSIX")
def test_sigint_stops_scan_gracefully():
    async def scenario():
        scanner = BatchScanner(FakeResolver({"a.com": "hang"}), batch_size=1, timeout_s=30.0)
        installed = install_signal_handlers(scanner, logging.getLogger("test"))
        try:
            task = asyncio.create_task(scanner.run(["a.com", "b.com"], ResultSink(io.StringIO())))
            await asyncio.sleep(0.02)
            os.kill(os.getpid(), signal.SIGINT)
            await asyncio.sleep(0.05)
            assert scanner.cancel_requested
            os.kill(os.getpid(), signal.SIGINT)
            return await asyncio.wait_for(task, 5.0)
        finally:
            loop = asyncio.get_running_loop()
            for sig in installed:
                loop.remove_signal_handler(sig)

    stats = asyncio.run(scenario())
    assert stats.cancelled
    assert stats.checked == 0


@pytest.mark.skipif(sys.platform == "win32", reason="loop signal handlers need POSIX")
def test_sigint_during_expansion_exits_cleanly(tmp_path, fake_resolver, monkeypatch):
    def slow_generate(pattern, alphabet, shuffle=True, seed=None):
        os.kill(os.getpid(), signal.SIGINT)
        time.sleep(0.05)
        return ["teat.com", "tebt.com"]

    monkeypatch.setattr(domain_finder, "generate_domains", slow_generate)
    out = tmp_path / "available.txt"
    summary = tmp_path / "summary.json"
    assert main(["te*t.com", "-o", str(out), "--summary-json", str(summary), "--no-clear", "-q"]) == 0
    data = json.loads(summary.read_text(encoding="utf-8"))
    assert data["stats"]["cancelled"] is True
    assert data["stats"]["checked"] == 0
    assert fake_resolver.calls == []
    assert out.read_text(encoding="utf-8") == ""
