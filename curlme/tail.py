"""curlme tail - turn an unordered, overlapping backend feed into a live stream.

The backend filter (timestamp >= watermark) may re-return records that were
already shown and gives no ordering guarantee. Each tick sorts the batch,
drops ids already seen, and advances the watermark past every record shown.
Fetch failures are swallowed and retried on the next tick.
"""

from __future__ import annotations

import enum
import logging
import re
import time
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field

from curlme.errors import TransientPollError
from curlme.models import RequestRecord

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.2
BUFFER_SIZE = 10

_DURATION_RE = re.compile(r"([0-9]+)(ms|s|m|h)?", re.IGNORECASE)
_UNIT_MS = {"ms": 1, "s": 1_000, "m": 60_000, "h": 3_600_000}


def parse_duration_ms(value: str | None) -> int | None:
    """Parse '<int>(ms|s|m|h)?' into milliseconds. Invalid input gives None."""
    if not value:
        return None
    m = _DURATION_RE.fullmatch(value.strip())
    if not m:
        return None
    unit = (m.group(2) or "ms").lower()
    return int(m.group(1)) * _UNIT_MS[unit]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class TailState:
    """Per-invocation state, owned by a single LiveTailer."""

    watermark: int
    seen: set[str] = field(default_factory=set)
    display_index: int = 0
    buffer: deque[RequestRecord] = field(default_factory=lambda: deque(maxlen=BUFFER_SIZE))

    @property
    def latest(self) -> RequestRecord | None:
        return self.buffer[0] if self.buffer else None

    @property
    def previous(self) -> RequestRecord | None:
        return self.buffer[1] if len(self.buffer) > 1 else None


class TailEvent(enum.Enum):
    TICK = "tick"
    KEY = "key"
    INTERRUPT = "interrupt"


Fetch = Callable[[int], Iterable[RequestRecord]]
KeyReader = Callable[[float], "str | None"]


class LiveTailer:
    """Polling engine yielding each new request exactly once, oldest first."""

    def __init__(
        self,
        fetch: Fetch,
        since: str | None = None,
        interval: float = POLL_INTERVAL,
        clock: Callable[[], int] = now_ms,
    ):
        self.fetch = fetch
        self.interval = interval
        lookback = parse_duration_ms(since) or 0
        self.state = TailState(watermark=clock() - lookback)

    def tick(self) -> list[tuple[int, RequestRecord]]:
        """Run one poll. Returns (display_index, record) for each new record."""
        state = self.state
        try:
            batch = sorted(self._fetch(state.watermark), key=lambda r: r.timestamp)
        except TransientPollError as e:
            logger.debug("Poll failed, retrying next tick: %s", e)
            return []

        rows = []
        for record in batch:
            if record.id in state.seen:
                continue
            state.seen.add(record.id)
            state.display_index += 1
            state.buffer.appendleft(record)
            # +1 so a record sitting exactly on the watermark is not refetched
            state.watermark = max(state.watermark, record.timestamp + 1)
            rows.append((state.display_index, record))
        return rows

    def _fetch(self, since: int) -> list[RequestRecord]:
        try:
            return list(self.fetch(since))
        except Exception as e:
            raise TransientPollError(str(e) or type(e).__name__) from e

    def events(
        self,
        read_key: KeyReader | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> Iterator[tuple[TailEvent, object]]:
        """Single loop multiplexing poll ticks, keypresses and Ctrl-C.

        Yields (TICK, rows) after every poll, (KEY, char) for each keypress
        read while waiting for the next poll, and a final (INTERRUPT, None)
        on KeyboardInterrupt. Never ends on its own.
        """
        sleep = sleep or time.sleep
        try:
            while True:
                yield TailEvent.TICK, self.tick()
                if read_key is None:
                    sleep(self.interval)
                    continue
                deadline = time.monotonic() + self.interval
                remaining = self.interval
                while remaining > 0:
                    key = read_key(remaining)
                    if key:
                        yield TailEvent.KEY, key
                    remaining = deadline - time.monotonic()
        except KeyboardInterrupt:
            yield TailEvent.INTERRUPT, None
