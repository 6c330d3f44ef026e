"""
SC Crawl - Discovery Event System.

Structured events emitted by the discovery engine. The CLI prints them;
any other caller can subscribe its own observer.

Event Flow:
    crawl_started -> device_started -> neighbor_queued* / neighbor_skipped* ->
    device_complete | device_failed -> device_progress -> ... ->
    crawl_complete | crawl_cancelled
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Discovery event types."""
    # Crawl lifecycle
    CRAWL_STARTED = "crawl_started"
    CRAWL_COMPLETE = "crawl_complete"
    CRAWL_CANCELLED = "crawl_cancelled"

    # Device discovery
    DEVICE_STARTED = "device_started"
    DEVICE_COMPLETE = "device_complete"
    DEVICE_FAILED = "device_failed"
    DEVICE_EXCLUDED = "device_excluded"
    DEVICE_PROGRESS = "device_progress"

    # Neighbor processing
    NEIGHBOR_QUEUED = "neighbor_queued"
    NEIGHBOR_SKIPPED = "neighbor_skipped"

    STATS_UPDATED = "stats_updated"
    LOG_MESSAGE = "log_message"


class LogLevel(str, Enum):
    """Log message severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


_LOGGING_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.SUCCESS: logging.INFO,
}


@dataclass
class DiscoveryStats:
    """Running counters for one crawl."""
    discovered: int = 0
    failed: int = 0
    queue: int = 0
    total: int = 0
    excluded: int = 0
    skipped: int = 0
    max_hops: int = 0
    current_device: str = ""
    status: str = "Ready"

    @property
    def success_rate(self) -> float:
        """Calculate success rate as percentage."""
        if self.total == 0:
            return 0.0
        return (self.discovered / self.total) * 100


@dataclass
class DiscoveryEvent:
    """
    Event emitted by the discovery engine.

    All events have a type, timestamp, and event-specific data.
    """
    event_type: EventType
    timestamp: datetime = field(default_factory=datetime.now)
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return self.data.get("message", "")

    @property
    def target(self) -> str:
        return self.data.get("target", "")

    @property
    def hop(self) -> int:
        return self.data.get("hop", 0)


EventCallback = Callable[[DiscoveryEvent], None]


class EventEmitter:
    """
    Event emitter for the discovery engine.

    Usage:
        emitter = EventEmitter()

        # Subscribe to all events
        emitter.subscribe(my_handler)

        # Subscribe to specific event types
        emitter.subscribe(progress_handler, EventType.DEVICE_PROGRESS)
    """

    def __init__(self):
        self._listeners: List[Tuple[EventCallback, Optional[EventType]]] = []
        self._stats = DiscoveryStats()

    @property
    def stats(self) -> DiscoveryStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = DiscoveryStats()

    def subscribe(
        self,
        callback: EventCallback,
        event_type: Optional[EventType] = None
    ) -> None:
        """
        Subscribe to events.

        Args:
            callback: Function to call with DiscoveryEvent
            event_type: If specified, only receive this event type
        """
        self._listeners.append((callback, event_type))

    def unsubscribe(self, callback: EventCallback) -> None:
        self._listeners = [
            (cb, et) for cb, et in self._listeners if cb != callback
        ]

    def clear(self) -> None:
        self._listeners.clear()

    def emit(self, event_type: EventType, **data) -> DiscoveryEvent:
        """
        Emit an event to all subscribed listeners.

        Listener exceptions are logged and swallowed so an observer can
        never abort a crawl.
        """
        event = DiscoveryEvent(
            event_type=event_type,
            timestamp=datetime.now(),
            data=data
        )

        for callback, filter_type in self._listeners:
            if filter_type is None or filter_type == event_type:
                try:
                    callback(event)
                except Exception:
                    logger.exception(f"Event listener error on {event_type.value}")

        return event

    # =========================================================================
    # Convenience methods for common events
    # =========================================================================

    def crawl_started(
        self,
        seeds: List[str],
        max_hops: int,
        domains: List[str],
        exclude_patterns: List[str],
        commands: List[str],
    ) -> None:
        """Emit crawl started event and reset stats."""
        self.reset_stats()
        self._stats.max_hops = max_hops
        self._stats.queue = len(seeds)
        self._stats.status = "Starting"

        self.emit(
            EventType.CRAWL_STARTED,
            seeds=seeds,
            max_hops=max_hops,
            domains=domains,
            exclude_patterns=exclude_patterns,
            commands=commands,
        )
        self._emit_stats_update()

    def crawl_complete(self, duration_seconds: float, edges: int = 0) -> None:
        self._stats.status = "Complete"
        self._stats.queue = 0

        self.emit(
            EventType.CRAWL_COMPLETE,
            discovered=self._stats.discovered,
            failed=self._stats.failed,
            total=self._stats.total,
            excluded=self._stats.excluded,
            edges=edges,
            duration_seconds=duration_seconds,
        )
        self._emit_stats_update()

    def crawl_cancelled(self, pending: int = 0) -> None:
        self._stats.status = "Cancelled"
        self.emit(EventType.CRAWL_CANCELLED, pending=pending)
        self._emit_stats_update()

    def device_started(self, target: str, hop: int) -> None:
        self._stats.current_device = target
        self._stats.status = f"Discovering: {target}"
        self.emit(EventType.DEVICE_STARTED, target=target, hop=hop)

    def device_complete(
        self,
        target: str,
        hostname: Optional[str],
        neighbor_count: int,
        duration_ms: float,
        credential: Optional[str],
        hop: int,
    ) -> None:
        self._stats.discovered += 1
        self._stats.total += 1
        self._stats.queue = max(0, self._stats.queue - 1)

        self.emit(
            EventType.DEVICE_COMPLETE,
            target=target,
            hostname=hostname or target,
            neighbor_count=neighbor_count,
            duration_ms=duration_ms,
            credential=credential,
            hop=hop,
        )
        self._emit_stats_update()

    def device_failed(self, target: str, error: str, hop: int) -> None:
        self._stats.failed += 1
        self._stats.total += 1
        self._stats.queue = max(0, self._stats.queue - 1)

        self.emit(EventType.DEVICE_FAILED, target=target, error=error, hop=hop)
        self._emit_stats_update()

    def device_progress(self, device_id: str, status: str, hop: int) -> None:
        """The per-device {device_id, status, hop} notification."""
        self.emit(EventType.DEVICE_PROGRESS, device_id=device_id, status=status, hop=hop)

    def device_excluded(self, hostname: str, pattern: str) -> None:
        self._stats.excluded += 1
        self.emit(EventType.DEVICE_EXCLUDED, hostname=hostname, pattern=pattern)

    def neighbor_queued(
        self,
        target: str,
        ip: Optional[str],
        from_device: str,
        hop: int,
    ) -> None:
        self._stats.queue += 1
        self.emit(
            EventType.NEIGHBOR_QUEUED,
            target=target,
            ip=ip,
            from_device=from_device,
            hop=hop,
        )

    def neighbor_skipped(self, target: str, reason: str, from_device: str) -> None:
        """Emit neighbor skipped (beyond hop limit, MAC address, etc.)."""
        self._stats.skipped += 1
        self.emit(
            EventType.NEIGHBOR_SKIPPED,
            target=target,
            reason=reason,
            from_device=from_device,
        )

    def log(
        self,
        message: str,
        level: LogLevel = LogLevel.INFO,
        device: str = "",
    ) -> None:
        """Emit a log event and mirror it to the module logger."""
        logger.log(_LOGGING_LEVELS[level], f"{device + ': ' if device else ''}{message}")
        self.emit(
            EventType.LOG_MESSAGE,
            message=message,
            level=level.value,
            device=device,
        )

    def _emit_stats_update(self) -> None:
        self.emit(
            EventType.STATS_UPDATED,
            discovered=self._stats.discovered,
            failed=self._stats.failed,
            queue=self._stats.queue,
            total=self._stats.total,
            excluded=self._stats.excluded,
            skipped=self._stats.skipped,
            max_hops=self._stats.max_hops,
            current_device=self._stats.current_device,
            status=self._stats.status,
        )


# =========================================================================
# Console Event Printer (for CLI)
# =========================================================================

class ConsoleEventPrinter:
    """
    Prints discovery events to the console.

    Usage:
        printer = ConsoleEventPrinter(verbose=True, color=True)
        emitter.subscribe(printer.handle_event)
    """

    COLORS = {
        "reset": "\033[0m",
        "bold": "\033[1m",
        "dim": "\033[2m",
        "red": "\033[31m",
        "green": "\033[32m",
        "yellow": "\033[33m",
        "blue": "\033[34m",
        "cyan": "\033[36m",
    }

    def __init__(
        self,
        verbose: bool = False,
        color: bool = True,
        show_timestamps: bool = False,
    ):
        self.verbose = verbose
        self.color = color
        self.show_timestamps = show_timestamps

    def _c(self, text: str, *colors: str) -> str:
        if not self.color:
            return text
        codes = "".join(self.COLORS.get(c, "") for c in colors)
        return f"{codes}{text}{self.COLORS['reset']}"

    def _timestamp(self, event: DiscoveryEvent) -> str:
        if not self.show_timestamps:
            return ""
        return f"[{event.timestamp.strftime('%H:%M:%S')}] "

    def handle_event(self, event: DiscoveryEvent) -> None:
        handler = getattr(self, f"_handle_{event.event_type.value}", None)
        if handler:
            handler(event)
        elif self.verbose:
            print(f"{self._timestamp(event)}[{event.event_type.value}] {event.data}")

    def _handle_crawl_started(self, event: DiscoveryEvent) -> None:
        data = event.data
        print()
        print(self._c("=" * 60, "cyan", "bold"))
        print(self._c("NEIGHBOR CRAWL STARTED", "cyan", "bold"))
        print(self._c("=" * 60, "cyan", "bold"))
        print(f"Seeds: {', '.join(data['seeds'])}")
        print(f"Max Hops: {data['max_hops']}")
        print(f"Commands: {', '.join(data['commands'])}")
        if data.get('domains'):
            print(f"Domains: {', '.join(data['domains'])}")
        if data.get('exclude_patterns'):
            print(f"Exclude: {', '.join(data['exclude_patterns'])}")
        print()

    def _handle_crawl_complete(self, event: DiscoveryEvent) -> None:
        data = event.data
        print()
        print(self._c("#" * 60, "green", "bold"))
        print(self._c("CRAWL COMPLETE", "green", "bold"))
        print(self._c("#" * 60, "green", "bold"))
        print(f"Total Attempted: {data['total']}")
        print(f"Successful: {self._c(str(data['discovered']), 'green')}")
        print(f"Failed: {self._c(str(data['failed']), 'red')}")
        if data.get('excluded', 0) > 0:
            print(f"Excluded: {data['excluded']}")
        print(f"Links: {data.get('edges', 0)}")
        print(f"Duration: {data['duration_seconds']:.1f}s")
        print()

    def _handle_crawl_cancelled(self, event: DiscoveryEvent) -> None:
        print()
        print(self._c(f"Crawl cancelled ({event.data.get('pending', 0)} devices not visited)",
                      "yellow", "bold"))
        print()

    def _handle_device_started(self, event: DiscoveryEvent) -> None:
        if self.verbose:
            data = event.data
            print(f"{self._timestamp(event)}  Visiting: {data['target']} (hop {data['hop']})")

    def _handle_device_complete(self, event: DiscoveryEvent) -> None:
        data = event.data
        status = self._c("OK", "green", "bold")
        detail = (f"as {data.get('credential') or '?'} "
                  f"({data.get('neighbor_count', 0)} neighbors, "
                  f"{data.get('duration_ms', 0):.0f}ms)")
        print(f"{self._timestamp(event)}  {status}: {data['hostname']} {detail}")

    def _handle_device_failed(self, event: DiscoveryEvent) -> None:
        data = event.data
        status = self._c("FAILED", "red", "bold")
        error = data.get('error', 'Unknown error')
        if len(error) > 60:
            error = error[:57] + "..."
        print(f"{self._timestamp(event)}  {status}: {data['target']} - {error}")

    def _handle_device_excluded(self, event: DiscoveryEvent) -> None:
        data = event.data
        status = self._c("EXCLUDED", "yellow")
        print(f"{self._timestamp(event)}  {status}: {data['hostname']} "
              f"(matches: {data['pattern']})")

    def _handle_device_progress(self, event: DiscoveryEvent) -> None:
        pass

    def _handle_neighbor_queued(self, event: DiscoveryEvent) -> None:
        data = event.data
        target = data['target']
        ip = data.get('ip')
        ip_str = f" ({ip})" if ip and ip != target else ""
        print(f"{self._timestamp(event)}  {self._c('QUEUED', 'cyan')}: "
              f"{target}{ip_str} hop {data['hop']}")

    def _handle_neighbor_skipped(self, event: DiscoveryEvent) -> None:
        if self.verbose:
            data = event.data
            print(f"{self._timestamp(event)}  SKIPPED: {data['target']} "
                  f"({data['reason']})")

    def _handle_log_message(self, event: DiscoveryEvent) -> None:
        data = event.data
        level = data.get('level', 'info')
        if level == 'debug' and not self.verbose:
            return
        level_colors = {
            'debug': ('dim',),
            'info': (),
            'warning': ('yellow',),
            'error': ('red',),
            'success': ('green',),
        }
        prefix = f"[{level.upper()}] " if self.verbose else ""
        print(f"{self._timestamp(event)}{prefix}{self._c(data.get('message', ''), *level_colors.get(level, ()))}")

    def _handle_stats_updated(self, event: DiscoveryEvent) -> None:
        pass
