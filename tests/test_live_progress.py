import io

from batch_scan import StatsSnapshot
from live_progress import (
    ProgressReporter,
    format_duration,
    format_progress,
    format_summary,
    progress_bar,
)


def snap(**kw):
    base = dict(total=10, checked=5, available=2, unavailable=2, errors=1,
                sink_failures=0, started_at=0.0, elapsed_s=2.5)
    base.update(kw)
    return StatsSnapshot(**base)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_progress_bar_and_duration():
    assert progress_bar(50.0, width=10) == "#####-----"
    assert progress_bar(150.0, width=4) == "####"
    assert format_duration(12.34) == "12.3s"
    assert format_duration(125) == "2m05s"
    assert format_duration(3725) == "1h02m05s"


def test_format_progress_contents():
    text = "\n".join(format_progress(snap(), ("c.com", "b.com"), "x.com"))
    assert "50.0%" in text
    assert "5/10 domains checked" in text
    assert "Available: 2" in text
    assert "Errors:    1" in text
    assert "Rate:      2.0 domains/sec" in text
    assert "ETA:       2.5s" in text
    assert "1. c.com" in text and "2. b.com" in text
    assert "Currently checking: x.com" in text


def test_eta_hidden_without_rate():
    text = "\n".join(format_progress(snap(checked=0, available=0, unavailable=0, errors=0), (), ""))
    assert "ETA" not in text
    assert "No available domains found yet" in text
    assert "Initializing..." in text


def test_reporter_throttles_but_always_draws_final():
    clock = FakeClock()
    out = io.StringIO()
    rep = ProgressReporter(stream=out, clear=True, min_interval_s=1.0, clock=clock)
    assert rep.render(snap(), (), "a.com")
    assert not rep.render(snap(), (), "b.com")
    clock.now = 1.5
    assert rep.render(snap(), (), "c.com")
    assert rep.render(snap(), (), "d.com", final=True)
    assert rep.draws == 3
    # not a tty: no escape codes
    assert "\033[2J" not in out.getvalue()


def test_summary_lists_all_found_from_file(tmp_path):
    path = tmp_path / "available_domains.txt"
    path.write_text("a.com\nb.com\n", encoding="utf-8")
    text = "\n".join(format_summary(snap(available=2, checked=10), ("b.com", "a.com"), path))
    assert "Domain search completed" in text
    assert "1. a.com" in text and "2. b.com" in text
    assert str(path) in text


def test_summary_many_found_shows_last_three(tmp_path):
    text = "\n".join(format_summary(snap(available=25, checked=10), ("z.com", "y.com", "x.com"),
                                    tmp_path / "out.txt"))
    assert "25 domains found" in text
    assert "1. z.com" in text


def test_summary_none_found_and_interrupted():
    text = "\n".join(format_summary(snap(available=0, cancelled=True), ()))
    assert "Domain search interrupted" in text
    assert "No available domains found" in text
    assert "Errors encountered:      1" in text
