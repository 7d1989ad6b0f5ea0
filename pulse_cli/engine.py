"""The Pulse engine.

PulseEngine is the explicitly constructed owner of every runtime
component: the operation registry, the event bus, the scheduler loop,
the alert router, the live feed and the broadcast dispatcher. Nothing
lives in module-level state, so several engines can coexist (tests do
this constantly).

Lifecycle::

    engine = PulseEngine(config, store=SqlEventStore(config.database_url))
    engine.build()        # startup validation, raises ConfigurationError
    await engine.start()  # attach consumers, start ticking
    ...
    await engine.stop()   # stop ticks, settle work, flush digests
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from pulse_cli.alerts import AlertRouter, AlertRule, DigestPolicy, ImmediatePolicy, SchedulerWindowTimer
from pulse_cli.broadcast import BroadcastDispatcher, EmailMedium, LogMedium, Medium
from pulse_cli.config import AlertConfig, PulseConfig
from pulse_cli.database.store import SqlEventStore
from pulse_cli.events.bus import EventBus, Subscription, utcnow
from pulse_cli.exceptions import ConfigurationError, InvalidCronExpr, UnknownMedium
from pulse_cli.feed import FeedTransport, LiveFeedPublisher, QueueTransport
from pulse_cli.operations import Operation, build_operations
from pulse_cli.scheduler import (
    CronExpr,
    CronSchedule,
    EveryTick,
    OperationRegistry,
    OperationRun,
    Schedule,
    SchedulerLoop,
    create_scheduler,
    resolve_timezone,
)

logger = logging.getLogger(__name__)


def build_alert_rules(alerts: Iterable[AlertConfig]) -> List[AlertRule]:
    """Convert alert configuration entries to rules.

    Raises:
        ConfigurationError: If an entry has an unknown type or a bad interval
    """
    rules = []
    for alert in alerts:
        interval = alert.interval_seconds
        if alert.alert_type == "alarm":
            policy = ImmediatePolicy(cooldown=timedelta(seconds=interval or 0))
        elif alert.alert_type == "digest":
            if not interval:
                raise ConfigurationError("Digest alert needs a positive alert_interval", {"rule": alert.name})
            policy = DigestPolicy(window=timedelta(seconds=interval))
        else:
            raise ConfigurationError(f"Unknown alert type: {alert.alert_type}", {"rule": alert.name})

        rules.append(AlertRule(name=alert.name, event_name=alert.event, mediums=tuple(alert.mediums), policy=policy))
    return rules


def build_mediums(config: PulseConfig) -> List[Medium]:
    """Create the mediums the configuration provides."""
    mediums: List[Medium] = [LogMedium()]
    if config.email.configured:
        mediums.append(EmailMedium.from_config(config.email))
    return mediums


class PulseEngine:
    """Owns and wires the runtime components of the daemon."""

    def __init__(
        self,
        config: PulseConfig,
        operations: Optional[Mapping[str, Operation]] = None,
        mediums: Optional[Iterable[Medium]] = None,
        transport: Optional[FeedTransport] = None,
        store: Optional[SqlEventStore] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Loaded configuration
            operations: Operations by name (default: built from config)
            mediums: Delivery mediums (default: built from config)
            transport: Live feed transport (default: in-process queues)
            store: Event store (default: no persistence)
            clock: Source of the current time
        """
        self.config = config
        self._operations = dict(operations) if operations is not None else build_operations(config)
        self._clock = clock

        self.store = store
        self.transport = transport or QueueTransport()
        self.bus = EventBus()
        self.registry = OperationRegistry()
        self.dispatcher = BroadcastDispatcher(mediums if mediums is not None else build_mediums(config))
        self.feed = LiveFeedPublisher(self.transport)
        self.timezone = resolve_timezone(config.scheduler.timezone)
        self.scheduler = create_scheduler(config.scheduler.misfire_grace_time, tz=self.timezone)

        self.router: Optional[AlertRouter] = None
        self.loop: Optional[SchedulerLoop] = None
        self._subscriptions: List[Subscription] = []
        self._built = False
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def build(self) -> "PulseEngine":
        """Register operations and schedules, build alert rules and validate references.

        Raises:
            InvalidCronExpr: If a schedule has a bad cron expression
            UnknownOperation: If a schedule references an unknown operation
            UnknownMedium: If an alert rule references an unconfigured medium
            ConfigurationError: For any other structural error
        """
        if self._built:
            return self

        for name, operation in self._operations.items():
            self.registry.register_operation(name, operation)

        for schedule_config in self.config.schedules:
            trigger = EveryTick()
            if schedule_config.cron:
                try:
                    trigger = CronSchedule(CronExpr.parse(schedule_config.cron, timezone=self.timezone))
                except InvalidCronExpr as e:
                    raise InvalidCronExpr(
                        e.expression, e.reason, schedule=f"{schedule_config.operation} (cron '{e.expression}')"
                    ) from e
            self.registry.add_schedule(Schedule(schedule_config.operation, trigger))

        rules = build_alert_rules(self.config.alerts)
        available = set(self.dispatcher.medium_ids)
        for rule in rules:
            for medium_id in rule.mediums:
                if medium_id not in available:
                    raise UnknownMedium(medium_id, rule=rule.name)

        self.registry.activate(self._clock())

        self.router = AlertRouter(rules, self.dispatcher, SchedulerWindowTimer(self.scheduler), clock=self._clock)
        timeout = self.config.scheduler.operation_timeout or None
        self.loop = SchedulerLoop(
            self.registry,
            self.bus,
            tick_interval=self.config.scheduler.tick_interval,
            operation_timeout=timeout,
            clock=self._clock,
            run_recorder=self.store.record_run if self.store else None,
        )

        self._built = True
        logger.info(
            f"Engine built: {len(self._operations)} operation(s), "
            f"{len(self.registry.schedules)} schedule(s), {len(rules)} alert rule(s)"
        )
        return self

    def _attach_consumers(self) -> None:
        if self._subscriptions:
            return
        self._subscriptions.append(self.bus.attach(self.router.on_event, label="alert-router"))
        self._subscriptions.append(self.bus.attach(self.feed.on_event, label="live-feed"))
        if self.store is not None:
            self._subscriptions.append(self.bus.attach(self.store.append, label="event-store"))

    async def start(self) -> None:
        """Attach the consumers and start ticking."""
        if self._running:
            return
        self.build()
        self._attach_consumers()
        self.scheduler.start()
        self.loop.start(self.scheduler)
        self._running = True
        logger.info("Pulse engine started")

    async def stop(self, grace: Optional[float] = None) -> None:
        """Shut down gracefully.

        Stops ticking, waits up to ``grace`` seconds for in-flight
        operations, lets every consumer process what was published, flushes
        pending digests and waits for outstanding dispatches.

        Args:
            grace: Seconds to wait for in-flight operations (default: configured)
        """
        if not self._built:
            return

        if grace is None:
            grace = self.config.scheduler.shutdown_grace

        logger.info("Stopping Pulse engine...")
        await self.loop.stop(grace)
        await self.bus.join()
        await self.router.close(flush=True)
        await self.dispatcher.drain()

        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        await self.bus.close()
        self._subscriptions.clear()

        self._running = False
        logger.info("Pulse engine stopped")

    async def run_once(self, operation_name: str) -> OperationRun:
        """Execute one operation immediately through the full pipeline.

        The produced event is routed, fed and stored exactly as a scheduled
        one would be.

        Raises:
            UnknownOperation: If no operation has that name
        """
        self.build()
        operation = self.registry.get(operation_name)
        self._attach_consumers()
        run = await self.loop.execute(operation_name, operation)
        await self.bus.join()
        return run

    def status(self) -> Dict[str, Any]:
        """Snapshot of the engine state."""
        next_fires = []
        for schedule, fire_at in self.registry.next_fire_times():
            next_fires.append({
                "operation": schedule.operation_name,
                "trigger": str(schedule.trigger),
                "next_fire": fire_at.isoformat() if fire_at else None,
            })
        return {
            "running": self._running,
            "ticks": self.loop.tick_count if self.loop else 0,
            "in_flight": self.loop.in_flight if self.loop else 0,
            "published": self.bus.published_count,
            "alerts_dispatched": self.router.dispatched_count if self.router else 0,
            "rules": self.router.rule_stats() if self.router else [],
            "feed_subscribers": len(self.transport.subscribers()),
            "timezone": str(self.timezone),
            "schedules": next_fires,
        }
