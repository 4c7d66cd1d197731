# src/hedgebot/analysis/trend_classifier.py
from __future__ import annotations

import concurrent.futures
import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from google import genai
from google.genai.types import GenerateContentConfig, HttpOptions

from src.hedgebot.core.models.enums import TrendState

log = logging.getLogger("src.hedgebot.analysis.trend_classifier")

DEFAULT_MODEL = "gemini-2.5-flash"
HISTORY_SIZE = 5

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(slots=True)
class Suggestion:
    action: str
    reason: str = ""
    priority: str = "low"
    capital: float | None = None
    percentage: float | None = None
    target_size: float | None = None


@dataclass(slots=True)
class TrendAnalysis:
    trend: TrendState
    reason: str = ""
    confidence: str = "medium"
    risk_assessment: dict[str, Any] | None = None
    suggestions: list[Suggestion] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class TrendClassifier(Protocol):
    def classify(self, context: str) -> TrendAnalysis | None:
        """None means "no opinion": the caller keeps its previous trend."""
        ...


# ---------------------------------------------------------------------------
# parsing
# ---------------------------------------------------------------------------

def _opt_float(v: Any) -> float | None:
    if v in (None, ""):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _load_json(text: str) -> dict | None:
    cleaned = _FENCE_RE.sub("", text or "").replace("```", "").strip()
    for candidate in (cleaned, *(_OBJECT_RE.findall(cleaned)[:1])):
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def parse_analysis(text: str) -> TrendAnalysis | None:
    data = _load_json(text)
    if data is None:
        log.warning("[AI] response is not JSON: %.200s", text)
        return None
    try:
        trend = TrendState(str(data.get("trend", "")).strip().lower())
    except ValueError:
        log.warning("[AI] unknown trend label: %r", data.get("trend"))
        return None

    suggestions: list[Suggestion] = []
    for raw in data.get("suggestions") or []:
        if not isinstance(raw, dict) or not raw.get("action"):
            continue
        suggestions.append(
            Suggestion(
                action=str(raw["action"]).strip().lower(),
                reason=str(raw.get("reason") or ""),
                priority=str(raw.get("priority") or "low"),
                capital=_opt_float(raw.get("capital")),
                percentage=_opt_float(raw.get("percentage")),
                target_size=_opt_float(raw.get("target_size")),
            )
        )

    risk = data.get("risk_assessment")
    return TrendAnalysis(
        trend=trend,
        reason=str(data.get("reason") or ""),
        confidence=str(data.get("confidence") or "medium"),
        risk_assessment=risk if isinstance(risk, dict) else None,
        suggestions=suggestions,
    )


# ---------------------------------------------------------------------------
# prompt
# ---------------------------------------------------------------------------

PROMPT_TEMPLATE = """You are a crypto futures market analyst and risk manager.

MARKET & ACCOUNT DATA:

{context}

TASK:
1. Classify the current market trend.
2. Assess account health and the open hedge positions.
3. Optionally suggest position-management actions.

Trend labels:
- "uptrend": clear higher highs/higher lows, price above EMA50/200, strong upside momentum.
- "downtrend": clear lower highs/lower lows, price below EMA50/200, strong downside momentum.
- "unclear" (default): sideways, mixed signals, no decisive breakout.
Pick uptrend/downtrend only with multi-timeframe confirmation; when in doubt answer "unclear".

Allowed suggestion actions: open_long, open_short, close_long, close_short, partial_close_long,
partial_close_short, add_to_long, add_to_short, rebalance_long, rebalance_short, reduce_margin,
increase_caution, hold. Every position and every added amount must be at least 1 USDT margin.

Reply with JSON only:
{{"trend": "uptrend|downtrend|unclear", "reason": "...", "confidence": "high|medium|low",
 "risk_assessment": {{"margin_health": "healthy|warning|critical", "position_balance": "balanced|unbalanced",
 "overall_risk": "low|medium|high"}},
 "suggestions": [{{"action": "...", "reason": "...", "priority": "low|medium|high|critical",
 "capital": 0, "percentage": 0, "target_size": 0}}]}}
"""


class GeminiTrendClassifier:
    """
    Advisory trend classifier backed by Gemini.

    Never raises: API errors, timeouts and unparseable replies return None.
    Keeps the last HISTORY_SIZE analyses (newest first) and feeds them back into the prompt.
    """

    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        timeout_sec: float = 90.0,
        temperature: float = 0.2,
        client: Any = None,
        history_size: int = HISTORY_SIZE,
    ):
        self.model = model
        self.timeout_sec = float(timeout_sec)
        self.temperature = float(temperature)
        self._client = client
        self.history_size = int(history_size)
        self.history: list[TrendAnalysis] = []

    @property
    def client(self):
        if self._client is None:
            # HttpOptions.timeout is in milliseconds
            self._client = genai.Client(http_options=HttpOptions(timeout=int(self.timeout_sec * 1000)))
        return self._client

    def _generate(self, prompt: str) -> str:
        config = GenerateContentConfig(temperature=self.temperature, response_mime_type="application/json")
        # no `with`: its exit would join a hung worker thread
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="gemini")
        try:
            future = executor.submit(
                self.client.models.generate_content,
                model=self.model,
                contents=prompt,
                config=config,
            )
            try:
                resp = future.result(timeout=self.timeout_sec)
            except concurrent.futures.TimeoutError:
                future.cancel()
                raise TimeoutError(f"Gemini call timed out after {self.timeout_sec:g}s")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return resp.text or ""

    def render_history(self) -> str:
        if not self.history:
            return ""
        lines = ["PREVIOUS ANALYSES (newest first):"]
        for i, a in enumerate(self.history, 1):
            lines.append(
                f"{i}. {a.timestamp.strftime('%Y-%m-%d %H:%M')} trend={a.trend.value} "
                f"confidence={a.confidence} reason={a.reason[:200]}"
            )
        return "\n".join(lines)

    def remember(self, analysis: TrendAnalysis) -> None:
        self.history.insert(0, analysis)
        del self.history[self.history_size:]

    def classify(self, context: str) -> TrendAnalysis | None:
        prompt = PROMPT_TEMPLATE.format(context=context)
        try:
            text = self._generate(prompt)
        except Exception as e:
            log.error("[AI] Gemini call failed: %s", e)
            return None

        analysis = parse_analysis(text)
        if analysis is None:
            return None

        self.remember(analysis)
        log.info(
            "[AI] trend=%s confidence=%s suggestions=%d | %s",
            analysis.trend.value, analysis.confidence, len(analysis.suggestions), analysis.reason,
        )
        return analysis
