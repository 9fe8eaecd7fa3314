"""
Abuse Detection - Engine.

============================================================
PURPOSE
============================================================
The "detect" stage. Evaluates abuse rules for accounts and
persists the resulting AbuseSignals.

Two entry points:
- handle_event: rules bound to an upstream event kind, for the
  event's account
- scan: scheduled rules over a page of accounts (bot velocity,
  cancellation farming), committed in batches

============================================================
ERROR HANDLING
============================================================
- A failing rule is logged and recorded; other rules continue
- DataSourceUnavailableError propagates to the job
- A failed signal write is logged; the signals of other
  batches stay committed
- Only committed signals are returned, with their stored
  severity and count

============================================================
"""

import logging
from datetime import datetime, timedelta
from typing import AsyncIterator, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.batching import dedupe_preserving_order
from core.clock import ClockFactory, ClockProtocol
from core.exceptions import DataSourceUnavailableError, FraudEngineError, PersistenceError
from core.identifiers import abuse_signal_id_for
from database.batch import write_in_batches
from database.engine import session_scope

from .config import AbuseDetectionConfig
from .repository import AbuseSignalRepository
from .rules import AbuseRule
from .types import AbuseSignal, AbuseSignalType, DetectionResult, PlatformEvent


logger = logging.getLogger(__name__)


class SignalNotFoundError(FraudEngineError):
    """No abuse signal with the given id."""


class AbuseDetectionEngine:
    """Evaluates abuse rules and persists signals."""
    
    def __init__(
        self,
        rules: Dict[AbuseSignalType, AbuseRule],
        session_factory: async_sessionmaker,
        config: Optional[AbuseDetectionConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.config = config or AbuseDetectionConfig()
        self._rules = dict(rules)
        self._session_factory = session_factory
        self._clock = clock or ClockFactory.get_clock()
    
    # --------------------------------------------------------
    # EVALUATION
    # --------------------------------------------------------
    
    async def evaluate(
        self,
        rule_type: AbuseSignalType,
        user_id: str,
        trigger: str = "scheduled",
        now: Optional[datetime] = None,
    ) -> Optional[AbuseSignal]:
        """
        Count and classify one rule for one account.
        
        Returns:
            AbuseSignal when the count reaches the threshold, else None
        """
        rule = self._rules[rule_type]
        rule_config = self.config.rule(rule_type)
        now = now or self._clock.now()
        
        count = await rule.count(user_id, now - rule_config.window)
        severity = rule_config.classify(count)
        if severity is None:
            return None
        
        signal = AbuseSignal(
            signal_id=abuse_signal_id_for(rule_type.value, user_id, now, rule_config.window),
            signal_type=rule_type,
            user_id=user_id,
            severity=severity,
            count=count,
            threshold=rule_config.threshold,
            window=rule_config.window,
            detected_at=now,
            rule_version=self.config.version,
            trigger=trigger,
        )
        logger.warning(
            f"Abuse signal {rule_type.value} for {user_id}: "
            f"count={count} threshold={rule_config.threshold} severity={severity.value}"
        )
        return signal
    
    async def _evaluate_safely(
        self,
        rule_type: AbuseSignalType,
        user_id: str,
        trigger: str,
        result: DetectionResult,
    ) -> None:
        result.evaluated += 1
        try:
            signal = await self.evaluate(rule_type, user_id, trigger)
        except DataSourceUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Rule {rule_type.value} failed for {user_id}: {e}", exc_info=True)
            result.errors.append(f"{rule_type.value}/{user_id}: {type(e).__name__}: {e}")
            return
        if signal is not None:
            result.signals.append(signal)
    
    # --------------------------------------------------------
    # EVENT TRIGGERS
    # --------------------------------------------------------
    
    async def handle_event(self, event: PlatformEvent) -> DetectionResult:
        """Run every enabled rule bound to the event's kind."""
        result = DetectionResult()
        if not event.user_id:
            logger.debug(f"Ignoring {event.kind.value} event without a user")
            return result
        
        for rule_type in self.config.rules_for_event(event.kind):
            rule = self._rules.get(rule_type)
            if rule is None or not rule.applies_to(event):
                continue
            await self._evaluate_safely(rule_type, event.user_id, event.kind.value, result)
        
        if result.signals:
            try:
                async with session_scope(self._session_factory, "persist_abuse_signals") as session:
                    repo = AbuseSignalRepository(session)
                    stored = [await repo.save_signal(signal) for signal in result.signals]
            except PersistenceError as e:
                logger.error(
                    f"Failed to persist {len(result.signals)} signal(s) for event "
                    f"{event.record_id}, dropping them: {e.message}"
                )
                result.errors.append(e.message)
                stored = []
            result.signals = stored
        return result
    
    # --------------------------------------------------------
    # SCHEDULED SCANS
    # --------------------------------------------------------
    
    async def scan(
        self,
        user_ids: Sequence[str],
        rule_types: Optional[Iterable[AbuseSignalType]] = None,
    ) -> DetectionResult:
        """Evaluate rules for a page of accounts and persist in batches."""
        selected = list(rule_types) if rule_types is not None else self.config.scheduled_rules()
        selected = [t for t in selected if t in self._rules and self.config.rule(t).enabled]
        result = DetectionResult()
        
        for user_id in dedupe_preserving_order([u for u in user_ids if u]):
            for rule_type in selected:
                await self._evaluate_safely(rule_type, user_id, "scheduled", result)
        
        async def write(session, batch: List[AbuseSignal]) -> List[AbuseSignal]:
            repo = AbuseSignalRepository(session)
            return [await repo.save_signal(signal) for signal in batch]
        
        written = await write_in_batches(
            self._session_factory,
            result.signals,
            write,
            batch_size=self.config.scan_batch_size,
            operation="persist_abuse_signals",
        )
        result.errors.extend(written.errors)
        result.signals = written.committed
        return result
    
    async def scan_population(
        self,
        pages: AsyncIterator[List[str]],
        rule_types: Optional[Iterable[AbuseSignalType]] = None,
    ) -> DetectionResult:
        rule_types = list(rule_types) if rule_types is not None else None
        total = DetectionResult()
        async for page in pages:
            total.absorb(await self.scan(page, rule_types))
        logger.info(
            f"Abuse scan: {total.evaluated} evaluations, {len(total.signals)} signals, "
            f"{len(total.errors)} errors"
        )
        return total
    
    # --------------------------------------------------------
    # SIGNAL LIFECYCLE
    # --------------------------------------------------------
    
    async def resolve_signal(self, signal_id: str, resolved_by: str, note: Optional[str] = None) -> AbuseSignal:
        async with session_scope(self._session_factory, "resolve_abuse_signal") as session:
            record = await AbuseSignalRepository(session).resolve_signal(
                signal_id, resolved_by, note, self._clock.now()
            )
            if record is None:
                raise SignalNotFoundError(
                    f"Abuse signal not found: {signal_id}",
                    context={"signal_id": signal_id},
                )
            signal = record.to_signal()
        logger.info(f"Abuse signal {signal_id} resolved by {resolved_by}")
        return signal
    
    async def purge_resolved(self, older_than: Optional[timedelta] = None) -> int:
        """Delete resolved signals past retention, one batch per commit."""
        cutoff = self._clock.since(older_than or timedelta(days=self.config.retention_days))
        deleted = 0
        while True:
            async with session_scope(self._session_factory, "purge_abuse_signals") as session:
                batch = await AbuseSignalRepository(session).delete_resolved_before(
                    cutoff, self.config.scan_batch_size
                )
            deleted += batch
            if batch < self.config.scan_batch_size:
                break
        if deleted:
            logger.info(f"Purged {deleted} resolved abuse signals older than {cutoff.isoformat()}")
        return deleted


class AbuseSignalWeights:
    """
    Weighted count of a user's unresolved abuse signals.
    
    Each active signal contributes its rule's configured weight;
    feeds the trust score's fraud signal input.
    """
    
    def __init__(self, session_factory: async_sessionmaker, config: Optional[AbuseDetectionConfig] = None):
        self._session_factory = session_factory
        self.config = config or AbuseDetectionConfig()
    
    async def weighted_signal_count(self, user_id: str, since: datetime) -> float:
        async with session_scope(self._session_factory, "abuse_signal_weights") as session:
            records = await AbuseSignalRepository(session).list_active_for_user(user_id, since)
        total = 0.0
        for record in records:
            rule = self.config.rules.get(AbuseSignalType(record.signal_type))
            total += rule.weight if rule else 1.0
        return total


__all__ = ["SignalNotFoundError", "AbuseDetectionEngine", "AbuseSignalWeights"]
