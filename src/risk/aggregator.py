"""Fuse detected patterns into one 0-100 risk score and a recommendation.

Risk is the severity-weighted mean of pattern confidences:

    risk = sum(conf_i * w_i * 100) / sum(w_i),  capped at 100

so it depends on nothing but the pattern list.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence

from src.risk.types import PatternType, Recommendation, RugPattern, Severity, TokenAnalysis

SEVERITY_WEIGHTS: dict[Severity, float] = {
    Severity.CRITICAL: 1.0,
    Severity.HIGH: 0.7,
    Severity.MEDIUM: 0.4,
    Severity.LOW: 0.2,
}

HIGH_RISK_THRESHOLD = 80.0
ALERT_RISK_THRESHOLD = 50.0


def calculate_overall_risk(patterns: Sequence[RugPattern]) -> float:
    if not patterns:
        return 0.0
    total_risk = 0.0
    total_weight = 0.0
    for pattern in patterns:
        weight = SEVERITY_WEIGHTS[pattern.severity]
        total_risk += pattern.confidence * weight * 100
        total_weight += weight
    if total_weight <= 0:
        return 0.0
    return min(100.0, total_risk / total_weight)


def generate_recommendation(risk: float, patterns: Sequence[RugPattern]) -> Recommendation:
    if risk >= 90 or any(p.type == PatternType.FLASH_RUG for p in patterns):
        return Recommendation.EXIT_NOW
    if risk >= 70 or any(p.severity == Severity.CRITICAL for p in patterns):
        return Recommendation.EXIT_SOON
    if risk >= 50:
        return Recommendation.MONITOR_CLOSELY
    return Recommendation.LOW_RISK


class AnalysisCache:
    """Latest TokenAnalysis per token with a short TTL."""

    def __init__(self, ttl_sec: float = 300.0, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_sec
        self._clock = clock
        self._entries: dict[str, tuple[float, TokenAnalysis]] = {}

    def get(self, token_id: str) -> TokenAnalysis | None:
        entry = self._entries.get(token_id)
        if entry is None:
            return None
        stored_at, analysis = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[token_id]
            return None
        return analysis

    def set(self, analysis: TokenAnalysis) -> None:
        self._entries[analysis.token_id] = (self._clock(), analysis)

    def delete(self, token_id: str) -> None:
        self._entries.pop(token_id, None)

    def __len__(self) -> int:
        return len(self._entries)


class RiskAggregator:
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock

    def aggregate(self, token_id: str, patterns: list[RugPattern]) -> TokenAnalysis:
        risk = calculate_overall_risk(patterns)
        return TokenAnalysis(
            token_id=token_id,
            patterns=patterns,
            overall_risk=risk,
            recommendation=generate_recommendation(risk, patterns),
            timestamp=self._clock(),
        )
