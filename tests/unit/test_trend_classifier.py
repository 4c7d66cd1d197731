"""Classifier reply parsing, failure handling and rolling history."""

from __future__ import annotations

import json
import threading
import time
from types import SimpleNamespace

from src.hedgebot.analysis.trend_classifier import GeminiTrendClassifier, parse_analysis
from src.hedgebot.core.models.enums import TrendState


class FakeModels:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls: list[dict] = []

    def generate_content(self, *, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        r = self.replies.pop(0)
        if isinstance(r, Exception):
            raise r
        return SimpleNamespace(text=r)


def _classifier(*replies, **kw):
    models = FakeModels(replies)
    return GeminiTrendClassifier(client=SimpleNamespace(models=models), **kw), models


def _reply(trend: str, **extra) -> str:
    return json.dumps({"trend": trend, "reason": f"{trend} reason", "confidence": "high", **extra})


def test_parse_plain_and_fenced_json():
    a = parse_analysis(_reply("uptrend"))
    assert a.trend is TrendState.UPTREND and a.confidence == "high"

    fenced = "```json\n" + _reply("downtrend") + "\n```"
    assert parse_analysis(fenced).trend is TrendState.DOWNTREND


def test_parse_falls_back_to_embedded_object():
    text = "Here is my view:\n" + _reply("unclear") + "\nGood luck."
    assert parse_analysis(text).trend is TrendState.UNCLEAR


def test_parse_rejects_unknown_label_and_garbage():
    assert parse_analysis(_reply("sideways")) is None
    assert parse_analysis("no json here") is None
    assert parse_analysis("") is None


def test_parse_suggestions_skips_malformed_entries():
    a = parse_analysis(_reply("unclear", suggestions=[
        {"action": "Partial_Close_Long", "percentage": "30", "priority": "high"},
        {"reason": "missing action"},
        "junk",
    ]))

    (s,) = a.suggestions
    assert s.action == "partial_close_long"
    assert s.percentage == 30.0
    assert s.capital is None


def test_classify_returns_none_on_api_error_and_keeps_history():
    clf, _ = _classifier(_reply("uptrend"), RuntimeError("quota"))

    assert clf.classify("ctx").trend is TrendState.UPTREND
    assert clf.classify("ctx") is None
    assert len(clf.history) == 1


def test_history_is_newest_first_and_capped():
    labels = ["uptrend", "downtrend", "unclear", "uptrend", "downtrend", "unclear", "uptrend"]
    clf, models = _classifier(*[_reply(x) for x in labels])

    for _ in labels:
        clf.classify("ctx")

    assert len(clf.history) == 5
    assert clf.history[0].trend is TrendState.UPTREND
    assert clf.history[1].trend is TrendState.UNCLEAR
    assert "PREVIOUS ANALYSES" in clf.render_history()
    assert models.calls[0]["model"] == "gemini-2.5-flash"
    assert "ctx" in models.calls[0]["contents"]


class HangingModels:
    """generate_content blocks until released."""

    def __init__(self):
        self.release = threading.Event()

    def generate_content(self, *, model, contents, config):
        self.release.wait(5.0)
        return SimpleNamespace(text=_reply("uptrend"))


def test_timeout_returns_without_waiting_for_a_hung_call():
    models = HangingModels()
    clf = GeminiTrendClassifier(client=SimpleNamespace(models=models), timeout_sec=0.2)

    started = time.monotonic()
    try:
        result = clf.classify("ctx")
        elapsed = time.monotonic() - started
    finally:
        models.release.set()

    assert result is None
    assert elapsed < 1.5
    assert clf.history == []
