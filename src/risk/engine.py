"""RiskEngine, the public entry point of the risk-detection core.

Architecture:
- one adaptive ticker per tracked token (AdaptiveScheduler) drives the
  velocity cycle: collect → history → velocity → classify → reschedule,
  plus the rug lifecycle check and threshold events
- one fixed-cadence sweep runs the pattern detectors across all tracked
  tokens with bounded concurrency and fuses them into a TokenAnalysis
- every await is followed by a "still tracked?" check before shared state
  is touched, so a cycle racing stop_tracking_token never resurrects a token
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

import base58
from loguru import logger

from src.risk.aggregator import (
    ALERT_RISK_THRESHOLD,
    HIGH_RISK_THRESHOLD,
    AnalysisCache,
    RiskAggregator,
)
from src.risk.alerts import RiskAlert, build_pattern_alert, build_threshold_alert
from src.risk.classifier import ThresholdClassifier
from src.risk.collector import SnapshotCollector, SnapshotHistory
from src.risk.events import (
    CreatorSellingEvent,
    EventBus,
    FlashRugEvent,
    HighRiskPatternEvent,
    RapidDrainEvent,
    RiskEvent,
    SlowBleedEvent,
)
from src.risk.exceptions import InvalidTokenIdError
from src.risk.interfaces import (
    AlertSink,
    DevActivitySource,
    EventSink,
    MetricsSource,
    PersistenceSink,
    SellTransactionSource,
    TokenLifecycleSource,
    WalletRelationSource,
)
from src.risk.lifecycle import LifecycleManager
from src.risk.metrics import MonitorMetrics
from src.risk.patterns import PatternDetector
from src.risk.scheduler import DEFAULT_INTERVAL_SEC, AdaptiveScheduler
from src.risk.thresholds import DetectionThresholds
from src.risk.types import (
    LiquiditySnapshot,
    RiskLevel,
    TokenAnalysis,
    TrackedTokenState,
    VelocityData,
)
from src.risk.velocity import VelocityCalculator

if TYPE_CHECKING:
    from config.settings import Settings


def validate_token_id(token_id: object) -> str:
    """Token ids are Solana mint addresses: base58 decoding to 32 bytes."""
    if not isinstance(token_id, str) or not 32 <= len(token_id) <= 44:
        raise InvalidTokenIdError(f"Invalid token id: {token_id!r}")
    try:
        raw = base58.b58decode(token_id)
    except ValueError as e:
        raise InvalidTokenIdError(f"Invalid token id {token_id!r}: {e}") from e
    if len(raw) != 32:
        raise InvalidTokenIdError(f"Invalid token id {token_id!r}: decodes to {len(raw)} bytes")
    return token_id


class RiskEngine:
    def __init__(
        self,
        metrics_source: MetricsSource,
        sell_source: SellTransactionSource,
        dev_activity: DevActivitySource,
        wallet_relations: WalletRelationSource,
        lifecycle_source: TokenLifecycleSource,
        *,
        events: EventSink | None = None,
        alerts: AlertSink | None = None,
        persistence: PersistenceSink | None = None,
        thresholds: DetectionThresholds | None = None,
        intervals: dict[RiskLevel, float] | None = None,
        default_interval_sec: float = DEFAULT_INTERVAL_SEC,
        pattern_interval_sec: float = 60.0,
        pattern_concurrency: int = 5,
        history_max_snapshots: int = 360,
        history_max_age_sec: float = 3 * 3600,
        analysis_ttl_sec: float = 300.0,
        rug_liquidity_floor_usd: float = 10.0,
        rug_min_age_sec: float = 5 * 60,
        clock: Callable[[], float] = time.time,
        metrics: MonitorMetrics | None = None,
    ) -> None:
        self._metrics = metrics or MonitorMetrics()
        self._events: EventSink = events if events is not None else EventBus()
        self._alerts = alerts
        self._persistence = persistence
        self._thresholds = thresholds or DetectionThresholds()
        self._pattern_interval_sec = pattern_interval_sec
        self._pattern_concurrency = max(1, pattern_concurrency)
        self._rug_floor = rug_liquidity_floor_usd

        self._history = SnapshotHistory(
            max_snapshots=history_max_snapshots, max_age_sec=history_max_age_sec,
        )
        self._collector = SnapshotCollector(metrics_source, clock=clock, metrics=self._metrics)
        self._calculator = VelocityCalculator()
        self._classifier = ThresholdClassifier(self._thresholds)
        self._scheduler = AdaptiveScheduler(
            self._update,
            intervals=intervals,
            default_interval_sec=default_interval_sec,
            metrics=self._metrics,
        )
        self._lifecycle = LifecycleManager(
            lifecycle_source,
            self._events,
            persistence=persistence,
            liquidity_floor_usd=rug_liquidity_floor_usd,
            min_age_sec=rug_min_age_sec,
            metrics=self._metrics,
        )
        self._detector = PatternDetector(
            sell_source,
            dev_activity,
            wallet_relations,
            thresholds=self._thresholds,
            clock=clock,
            metrics=self._metrics,
        )
        self._aggregator = RiskAggregator(clock=clock)
        self._analysis_cache = AnalysisCache(analysis_ttl_sec)

        self._states: dict[str, TrackedTokenState] = {}
        self._velocity: dict[str, VelocityData] = {}
        self._background: set[asyncio.Task] = set()
        self._sweep_task: asyncio.Task | None = None
        self._running = False

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> RiskEngine:
        """Build an engine whose cadence and retention come from Settings."""
        kwargs.setdefault("intervals", {
            RiskLevel.CRITICAL: settings.poll_interval_critical_sec,
            RiskLevel.HIGH: settings.poll_interval_high_sec,
            RiskLevel.MEDIUM: settings.poll_interval_medium_sec,
            RiskLevel.LOW: settings.poll_interval_low_sec,
        })
        kwargs.setdefault("default_interval_sec", settings.poll_interval_default_sec)
        kwargs.setdefault("pattern_interval_sec", settings.pattern_check_interval_sec)
        kwargs.setdefault("pattern_concurrency", settings.pattern_max_concurrency)
        kwargs.setdefault("history_max_snapshots", settings.history_max_snapshots)
        kwargs.setdefault("history_max_age_sec", settings.history_max_age_sec)
        kwargs.setdefault("analysis_ttl_sec", settings.analysis_cache_ttl_sec)
        kwargs.setdefault("rug_liquidity_floor_usd", settings.rug_liquidity_floor_usd)
        kwargs.setdefault("rug_min_age_sec", settings.rug_min_token_age_sec)
        return cls(**kwargs)

    # ── Lifecycle ─────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def events(self) -> EventSink:
        return self._events

    @property
    def stats(self) -> dict:
        summary = self._metrics.get_summary()
        summary["tracked_tokens"] = len(self._states)
        return summary

    def start(self) -> None:
        """Start per-token tickers and the pattern sweep. Needs a running loop."""
        if self._running:
            logger.warning("[ENGINE] Already running")
            return
        self._running = True
        for token_id, state in self._states.items():
            if not self._scheduler.is_scheduled(token_id):
                self._scheduler.schedule(token_id, state.polling_interval_sec)
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="risk_pattern_sweep")
        logger.info(
            f"[ENGINE] Started: {len(self._states)} tokens, "
            f"pattern sweep every {self._pattern_interval_sec:g}s"
        )

    async def stop(self) -> None:
        """Stop scheduling. Tracked tokens are kept and resume on start()."""
        if not self._running:
            return
        self._running = False

        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        await self._scheduler.shutdown()
        await self.drain()
        logger.info(f"[ENGINE] Stopped ({self._metrics.format_stats_line()})")

    async def drain(self) -> None:
        """Wait for outstanding alert / persistence / re-analysis tasks."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── Public API ────────────────────────────────────────────────────

    async def track_token(
        self,
        token_id: str,
        initial_risk_level: RiskLevel | None = None,
    ) -> None:
        validate_token_id(token_id)
        if token_id in self._states:
            logger.debug(f"[ENGINE] {token_id[:12]} already tracked")
            return

        interval = self._scheduler.interval_for(initial_risk_level)
        state = TrackedTokenState(
            token_id=token_id,
            polling_interval_sec=interval,
            risk_level=initial_risk_level or RiskLevel.LOW,
        )
        self._states[token_id] = state

        snapshot = await self._collector.collect(token_id)
        if self._states.get(token_id) is not state:
            return
        if self._history.append(snapshot):
            state.last_update_ts = snapshot.timestamp

        if self._running:
            self._scheduler.schedule(token_id, interval)
        logger.info(
            f"[ENGINE] Now tracking {token_id} "
            f"(interval {interval:g}s, liquidity ${snapshot.liquidity_usd:,.0f})"
        )

    def stop_tracking_token(self, token_id: str) -> bool:
        """Stop tracking and purge every per-token cache. Idempotent."""
        removed = self._evict(token_id)
        if removed:
            logger.info(f"[ENGINE] Stopped tracking {token_id}")
        return removed

    def get_tracked_tokens(self) -> list[str]:
        return list(self._states)

    def is_scheduled(self, token_id: str) -> bool:
        return self._scheduler.is_scheduled(token_id)

    def get_state(self, token_id: str) -> TrackedTokenState | None:
        return self._states.get(token_id)

    def get_snapshots(self, token_id: str) -> list[LiquiditySnapshot]:
        return self._history.get(token_id)

    def get_velocity_data(self, token_id: str) -> VelocityData | None:
        return self._velocity.get(token_id)

    def get_analysis(self, token_id: str) -> TokenAnalysis | None:
        return self._analysis_cache.get(token_id)

    async def analyze_token(self, token_id: str, *, use_cache: bool = True) -> TokenAnalysis:
        if use_cache:
            cached = self._analysis_cache.get(token_id)
            if cached is not None:
                return cached

        was_tracked = token_id in self._states
        patterns = await self._detector.detect(token_id, self._velocity.get(token_id))
        analysis = self._aggregator.aggregate(token_id, patterns)
        self._metrics.record_analysis([p.type.value for p in patterns])

        if was_tracked and token_id not in self._states:
            # Stopped while detectors were running: report, but leave no trace.
            return analysis

        self._analysis_cache.set(analysis)
        await self._dispatch_analysis(analysis)
        return analysis

    async def run_pattern_sweep(self) -> None:
        """Analyse every tracked token once, with bounded concurrency."""
        tokens = list(self._states)
        if not tokens:
            return
        semaphore = asyncio.Semaphore(self._pattern_concurrency)

        async def _one(token_id: str) -> None:
            async with semaphore:
                if token_id not in self._states:
                    return
                try:
                    await self.analyze_token(token_id)
                except Exception as e:
                    logger.error(f"[ENGINE] Pattern analysis failed for {token_id[:12]}: {e}")

        await asyncio.gather(*(_one(t) for t in tokens))
        logger.info(f"[ENGINE] Sweep done: {len(tokens)} tokens | {self._metrics.format_stats_line()}")

    # ── Velocity cycle ────────────────────────────────────────────────

    async def update_token(self, token_id: str) -> bool:
        """Run one velocity cycle now and wait for it.

        Shares the scheduler's in-flight guard: returns False without
        running anything while a cycle for the token is already in progress.
        """
        if token_id not in self._states:
            return False
        return await self._scheduler.run_now(token_id)

    async def _update(self, token_id: str) -> None:
        if token_id not in self._states:
            return
        started = time.monotonic()
        try:
            await self._run_cycle(token_id)
        except Exception as e:
            logger.error(f"[ENGINE] Velocity cycle failed for {token_id[:12]}: {e}")
        finally:
            self._metrics.record_cycle((time.monotonic() - started) * 1000)

    async def _run_cycle(self, token_id: str) -> None:
        snapshot = await self._collector.collect(token_id)
        state = self._states.get(token_id)
        if state is None:
            return
        if not self._history.append(snapshot):
            return

        snapshots = self._history.get(token_id)
        velocities = self._calculator.compute(snapshots)
        flags, level = self._classifier.classify(velocities, snapshots)
        data = VelocityData(
            token_id=token_id,
            current=snapshot,
            velocities=velocities,
            alerts=flags,
            risk_level=level,
        )

        if snapshot.liquidity_usd < self._rug_floor:
            rugged = await self._lifecycle.is_rugged(snapshot, snapshots)
            if self._states.get(token_id) is not state:
                return
            if rugged:
                await self._lifecycle.terminate(
                    token_id, snapshot.liquidity_usd, evict=self._evict,
                )
                return

        self._velocity[token_id] = data
        state.last_update_ts = snapshot.timestamp
        state.risk_level = level
        self._scheduler.reschedule(token_id, level)
        state.polling_interval_sec = self._scheduler.interval_for(level)

        await self._emit_threshold_events(data, state)

        if self._persistence and self._states.get(token_id) is state:
            self._spawn(
                self._persist(self._persistence.store_velocity_snapshot(data), "velocity", token_id),
                "store_velocity",
            )

    async def _emit_threshold_events(self, data: VelocityData, state: TrackedTokenState) -> None:
        flags = data.alerts
        events: list[RiskEvent] = []
        if flags.flash_rug:
            logger.error(f"[ENGINE] FLASH RUG DETECTED: {data.token_id}")
            events.append(FlashRugEvent(token_id=data.token_id, velocity=data))
        elif flags.rapid_drain:
            logger.warning(f"[ENGINE] Rapid drain detected: {data.token_id}")
            events.append(RapidDrainEvent(token_id=data.token_id, velocity=data))
        elif flags.slow_bleed:
            logger.warning(f"[ENGINE] Slow bleed detected: {data.token_id}")
            events.append(SlowBleedEvent(token_id=data.token_id, velocity=data))
        if flags.creator_selling:
            logger.warning(f"[ENGINE] Creator selling detected: {data.token_id}")
            events.append(CreatorSellingEvent(token_id=data.token_id, velocity=data))

        liquidity_event = False
        for event in events:
            if self._states.get(data.token_id) is not state:
                return
            await self._emit(event)
            self._send_alert(build_threshold_alert(event.name, data))
            if not isinstance(event, CreatorSellingEvent):
                liquidity_event = True

        if liquidity_event and self._states.get(data.token_id) is state:
            self._spawn(self._reanalyze(data.token_id), "reanalyze")

    async def _reanalyze(self, token_id: str) -> None:
        # Cached within the analysis TTL, so a flag that stays set does not
        # re-run the detectors or re-emit high-risk-pattern every cycle.
        try:
            await self.analyze_token(token_id)
        except Exception as e:
            logger.error(f"[ENGINE] Re-analysis failed for {token_id[:12]}: {e}")

    # ── Pattern sweep ─────────────────────────────────────────────────

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._pattern_interval_sec)
            try:
                await self.run_pattern_sweep()
            except Exception as e:
                logger.error(f"[ENGINE] Pattern sweep error: {e}")

    async def _dispatch_analysis(self, analysis: TokenAnalysis) -> None:
        risk = analysis.overall_risk
        if risk >= HIGH_RISK_THRESHOLD:
            logger.warning(
                f"[RISK] HIGH RISK {analysis.token_id[:12]}: {risk:.0f}/100 "
                f"→ {analysis.recommendation.value}"
            )
            await self._emit(HighRiskPatternEvent(token_id=analysis.token_id, analysis=analysis))
        elif risk < ALERT_RISK_THRESHOLD:
            return

        self._send_alert(build_pattern_alert(analysis))
        if self._persistence:
            self._spawn(
                self._persist(
                    self._persistence.store_pattern_alert(analysis), "pattern alert", analysis.token_id,
                ),
                "store_pattern",
            )

    # ── Plumbing ──────────────────────────────────────────────────────

    def _evict(self, token_id: str) -> bool:
        if self._states.pop(token_id, None) is None:
            return False
        self._scheduler.cancel(token_id)
        self._history.purge(token_id)
        self._velocity.pop(token_id, None)
        self._analysis_cache.delete(token_id)
        self._detector.forget(token_id)
        return True

    async def _emit(self, event: RiskEvent) -> None:
        try:
            await self._events.emit(event)
        except Exception as e:
            logger.error(f"[ENGINE] Failed to emit {event.name} for {event.token_id[:12]}: {e}")

    def _send_alert(self, alert: RiskAlert) -> None:
        if self._alerts is not None:
            self._spawn(self._deliver_alert(alert), "alert")

    async def _deliver_alert(self, alert: RiskAlert) -> None:
        try:
            await self._alerts.send_alert(alert)
            self._metrics.record_alert(ok=True)
        except Exception as e:
            self._metrics.record_alert(ok=False)
            logger.warning(f"[ALERT] Delivery failed for {alert.token_id[:12]}: {e}")

    async def _persist(self, coro: Coroutine[Any, Any, None], kind: str, token_id: str) -> None:
        try:
            await coro
        except Exception as e:
            self._metrics.record_persistence_failure()
            logger.warning(f"[PERSIST] Failed to store {kind} for {token_id[:12]}: {e}")

    def _spawn(self, coro: Coroutine[Any, Any, None], label: str) -> None:
        task = asyncio.create_task(coro, name=f"risk_{label}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
