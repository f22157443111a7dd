"""Risk alert construction and dispatch.

Dispatches alerts to configured channels:
- Console log (always on)
- Telegram bot (if configured)
- Redis pubsub (for external consumers)

Deduplicates alerts per (token, alert type) within a cooldown window.
"""

from __future__ import annotations

import asyncio
import html as html_mod
import json
import math
import time
from dataclasses import asdict, dataclass, field

import httpx
from loguru import logger

from src.risk.types import PatternType, Recommendation, TokenAnalysis, VelocityData


@dataclass
class RiskAlert:
    """Alert payload for a threshold hit or a pattern analysis."""

    token_id: str
    alert_type: str  # "flash_rug", "pre_rug_warning", "honeypot_detected", ...
    severity: str  # "critical", "high", "medium"
    priority: int  # 1-10, higher = more urgent
    message: str
    overall_risk: float | None = None
    recommendation: str | None = None
    indicators: list[str] = field(default_factory=list)
    estimated_time_to_rug_min: int | None = None


_THRESHOLD_ALERTS: dict[str, tuple[str, int, str]] = {
    # event name → (severity, priority, headline)
    "flash-rug": ("critical", 10, "Flash rug detected: liquidity collapsing"),
    "rapid-drain": ("high", 8, "Rapid liquidity drain"),
    "slow-bleed": ("medium", 5, "Slow liquidity bleed"),
    "creator-selling": ("high", 7, "Creator wallet selling"),
}


def build_threshold_alert(event_name: str, velocity: VelocityData) -> RiskAlert:
    severity, priority, headline = _THRESHOLD_ALERTS[event_name]
    liq = velocity.velocities.liquidity
    indicators = [
        f"Liquidity: ${velocity.current.liquidity_usd:,.0f}",
        f"Liquidity 10s: {liq.s10:+.1f}% / 1m: {liq.m1:+.2f}%/min / 5m: {liq.m5:+.2f}%/min",
        f"Price 1m: {velocity.velocities.price.m1:+.2f}%/min",
    ]
    if event_name == "creator-selling":
        indicators.append(f"Creator balance: {velocity.current.creator_balance_pct:.1f}%")
    return RiskAlert(
        token_id=velocity.token_id,
        alert_type=event_name.replace("-", "_"),
        severity=severity,
        priority=priority,
        message=f"{headline} (risk level {velocity.risk_level.value})",
        indicators=indicators,
    )


def build_pattern_alert(analysis: TokenAnalysis) -> RiskAlert:
    """Alert for a pattern analysis; the most specific pattern names the alert."""
    types = {p.type for p in analysis.patterns}
    risk = analysis.overall_risk
    if PatternType.FLASH_RUG in types:
        alert_type = "flash_rug_imminent"
    elif PatternType.COORDINATED_DUMP in types:
        alert_type = "coordinated_dump_detected"
    elif PatternType.HONEYPOT_EVOLUTION in types:
        alert_type = "honeypot_detected"
    elif risk >= 70:
        alert_type = "pre_rug_warning"
    else:
        alert_type = "pattern_detected"

    if risk >= 80:
        severity = "critical"
    elif risk >= 60:
        severity = "high"
    else:
        severity = "medium"

    descriptions = ", ".join(
        f"{p.type.value.replace('_', ' ')}: {p.confidence * 100:.0f}% confidence"
        for p in analysis.patterns
    )
    eta = next(
        (p.estimated_time_to_rug_min for p in analysis.patterns if p.estimated_time_to_rug_min),
        None,
    )
    return RiskAlert(
        token_id=analysis.token_id,
        alert_type=alert_type,
        severity=severity,
        priority=max(1, math.ceil(risk / 10)),
        message=f"Rug patterns detected. Risk: {risk:.0f}%. {descriptions}",
        overall_risk=risk,
        recommendation=analysis.recommendation.value,
        indicators=[i for p in analysis.patterns for i in p.indicators],
        estimated_time_to_rug_min=eta,
    )


class AlertDispatcher:
    """Dispatches risk alerts with deduplication.

    Alert channels:
    1. Console logger (always)
    2. Telegram (if bot_token + admin_id configured)
    3. Redis pubsub channel "alerts:risk" (if redis available)
    """

    def __init__(
        self,
        *,
        telegram_bot_token: str = "",
        telegram_admin_id: int = 0,
        redis=None,
        cooldown_sec: int = 300,
    ) -> None:
        self._telegram_token = telegram_bot_token
        self._telegram_chat_id = telegram_admin_id
        self._redis = redis
        self._cooldown_sec = cooldown_sec
        self._recent: dict[tuple[str, str], float] = {}  # (token, alert_type) → last sent
        self._http: httpx.AsyncClient | None = None
        self._total_sent: int = 0

    async def send_alert(self, alert: RiskAlert) -> None:
        """Send alert to all configured channels."""
        now = time.monotonic()
        dedup_key = (alert.token_id, alert.alert_type)
        last = self._recent.get(dedup_key)
        if last is not None and now - last < self._cooldown_sec:
            return

        self._recent[dedup_key] = now
        self._total_sent += 1

        # Keep memory bounded
        if len(self._recent) > 5000:
            cutoff = now - self._cooldown_sec
            self._recent = {k: v for k, v in self._recent.items() if v > cutoff}

        _log_alert(alert)

        if self._telegram_token and self._telegram_chat_id:
            await self._send_telegram(alert)

        if self._redis:
            await self._publish_redis(alert)

    async def _send_telegram(self, alert: RiskAlert) -> None:
        """Send alert via Telegram Bot API with 1 retry."""
        text = _format_telegram_message(alert)
        last_err: Exception | None = None
        for _attempt in range(2):
            try:
                if not self._http:
                    self._http = httpx.AsyncClient(timeout=10)

                url = f"https://api.telegram.org/bot{self._telegram_token}/sendMessage"
                resp = await self._http.post(
                    url,
                    json={
                        "chat_id": self._telegram_chat_id,
                        "text": text,
                        "parse_mode": "HTML",
                        "disable_web_page_preview": True,
                    },
                )
                if resp.status_code == 200:
                    return
                last_err = Exception(f"HTTP {resp.status_code}: {resp.text[:200]}")
            except Exception as e:
                last_err = e
            if _attempt == 0:
                await asyncio.sleep(2)

        if last_err:
            logger.warning(f"[ALERT] Telegram send failed after 2 attempts: {last_err}")

    async def _publish_redis(self, alert: RiskAlert) -> None:
        try:
            payload = asdict(alert)
            payload["ts"] = time.time()
            await self._redis.publish("alerts:risk", json.dumps(payload))
        except Exception as e:
            logger.debug(f"[ALERT] Redis publish failed: {e}")

    @property
    def total_sent(self) -> int:
        return self._total_sent

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None


def _log_alert(alert: RiskAlert) -> None:
    risk_str = f" risk={alert.overall_risk:.0f}" if alert.overall_risk is not None else ""
    logger.warning(
        f"[ALERT] {alert.alert_type.upper()} {alert.token_id[:12]} "
        f"severity={alert.severity} p={alert.priority}{risk_str} | {alert.message}"
    )


def _format_telegram_message(alert: RiskAlert) -> str:
    """Format alert as Telegram HTML message."""
    emoji = {"critical": "🚨", "high": "⚠️", "medium": "🟡"}.get(alert.severity, "⚪")
    lines = "\n".join(f"  • {html_mod.escape(i)}" for i in alert.indicators)
    text = (
        f"{emoji} <b>{html_mod.escape(alert.alert_type.upper())}</b>\n\n"
        f"{html_mod.escape(alert.message)}\n"
        f"Severity: <b>{alert.severity}</b> (priority {alert.priority})\n"
    )
    if alert.overall_risk is not None:
        text += f"Risk: <b>{alert.overall_risk:.0f}/100</b>\n"
    if alert.recommendation:
        action = {
            Recommendation.EXIT_NOW.value: "EXIT NOW",
            Recommendation.EXIT_SOON.value: "Exit soon",
            Recommendation.MONITOR_CLOSELY.value: "Monitor closely",
        }.get(alert.recommendation, alert.recommendation)
        text += f"Action: <b>{action}</b>\n"
    if alert.estimated_time_to_rug_min:
        text += f"Est. time to rug: ~{alert.estimated_time_to_rug_min} min\n"
    if lines:
        text += f"\n<b>Indicators:</b>\n{lines}\n"
    text += f"\n<code>{html_mod.escape(alert.token_id)}</code>"
    return text
