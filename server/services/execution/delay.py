"""Delay handling for delay nodes.

Turns a delay specification into a suspend instruction for a durable sleeper:
- FixedDelay {duration, unit}: sleep under key ``delay-<nodeId>``
- WaitUntilDelay {dateField, offset}: read a timestamp from the trigger
  payload, add ``offset`` minutes and sleep under ``delay-until-<nodeId>``
  until that instant (no sleep when it already passed)

Sleepers implement ``DurableSleeper``. ``AsyncioSleeper`` is the in-process
timer used when Temporal is disabled; ``services.temporal`` provides the
durable one.
"""

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol, Union

from core.logging import get_logger
from models.nodes import DelaySpec, FixedDelay, WaitUntilDelay
from .models import ActionResult, ExecutionContext, ensure_utc, utcnow
from .resolver import get_value_from_path

logger = get_logger(__name__)

UNIT_SECONDS: Dict[str, int] = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
}

_DURATION_PATTERN = re.compile(r'^(\d+)\s*(seconds?|minutes?|hours?|days?)$', re.IGNORECASE)
_LEADING_INT = re.compile(r'^[+-]?\d+')

Duration = Union[timedelta, int, float, str]

DEFAULT_DURATION = timedelta(seconds=1)


def parse_duration(value: Duration) -> timedelta:
    """Convert a duration value to a timedelta.

    Accepts a timedelta, a number of milliseconds, or strings such as
    "5 minutes" / "1 hour". Other strings use their leading integer as
    milliseconds, so "250" and "5m" are 250 ms and 5 ms. A string with no
    leading integer, or a zero one, falls back to one second.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        return DEFAULT_DURATION
    if isinstance(value, (int, float)):
        return timedelta(milliseconds=value)

    text = str(value).strip()
    match = _DURATION_PATTERN.match(text)
    if match:
        amount = int(match.group(1))
        unit = match.group(2).lower().rstrip("s")
        return timedelta(seconds=amount * UNIT_SECONDS[unit])

    leading = _LEADING_INT.match(text)
    milliseconds = int(leading.group(0)) if leading else 0
    if not milliseconds:
        logger.warning("Unparseable duration, using default", value=text)
        return DEFAULT_DURATION
    return timedelta(milliseconds=milliseconds)


def to_timedelta(duration: float, unit: str) -> timedelta:
    return timedelta(seconds=duration * UNIT_SECONDS[unit.rstrip("s")])


class DurableSleeper(Protocol):
    """Suspend interface used by the delay handler."""

    async def sleep(self, key: str, duration: Duration) -> None:
        """Suspend the run; ``key`` names the timer within the run."""
        ...

    def now(self) -> datetime:
        """Current time as seen by the run."""
        ...


class AsyncioSleeper:
    """In-process sleeper backed by asyncio timers.

    Timers do not survive a process restart; use the Temporal sleeper for
    durable delays.
    """

    def __init__(self, max_sleep: Optional[float] = None):
        self.max_sleep = max_sleep

    async def sleep(self, key: str, duration: Duration) -> None:
        seconds = parse_duration(duration).total_seconds()
        if self.max_sleep is not None:
            seconds = min(seconds, self.max_sleep)

        logger.info("Suspending run", key=key, seconds=seconds)
        await asyncio.sleep(max(seconds, 0))

    def now(self) -> datetime:
        return utcnow()


# =============================================================================
# DELAY HANDLER
# =============================================================================

async def handle_delay(node_id: str, spec: DelaySpec, context: ExecutionContext,
                       sleeper: DurableSleeper) -> ActionResult:
    """Suspend the run according to a delay specification."""
    if isinstance(spec, FixedDelay):
        await sleeper.sleep(f"delay-{node_id}", to_timedelta(spec.duration, spec.unit))
        return ActionResult.ok({
            "delayed": True,
            "duration": _plain_number(spec.duration),
            "unit": spec.unit,
        })

    if isinstance(spec, WaitUntilDelay):
        target = resolve_date(spec.date_field, context)
        if target is None:
            return ActionResult.fail(f"Could not resolve date field: {spec.date_field}")

        final = target + timedelta(minutes=spec.offset)
        now = sleeper.now()
        if final <= now:
            return ActionResult.ok({
                "delayed": False,
                "reason": "Target time already passed",
                "targetDate": final.isoformat(),
            })

        await sleeper.sleep(f"delay-until-{node_id}", final - now)
        return ActionResult.ok({
            "delayed": True,
            "targetDate": final.isoformat(),
            "offset": _plain_number(spec.offset),
        })

    return ActionResult.fail("Invalid delay configuration")


def resolve_date(date_field: str, context: ExecutionContext) -> Optional[datetime]:
    """Read a dotted path from the trigger payload and parse it as a UTC datetime."""
    path = date_field.strip()
    if path.startswith("{{") and path.endswith("}}"):
        path = path[2:-2].strip()
    if not path.startswith("triggerData."):
        path = f"triggerData.{path}"
    return parse_datetime(get_value_from_path(path, context))


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse datetimes, ISO-8601 strings and epoch milliseconds."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            return ensure_utc(datetime.fromisoformat(value.strip()))
        except ValueError:
            return None
    return None


def _plain_number(value: float) -> Union[int, float]:
    return int(value) if float(value).is_integer() else value
