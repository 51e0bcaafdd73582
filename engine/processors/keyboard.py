"""
Keystroke Feature Extractor

Stateful feature engineering for keyboard biometrics. Every key event is
reduced to timing samples stored in bounded buffers:

- Dwell:  key-up minus key-down of the same key, keyed ``<a>``
- Flight: key-down minus the previous key-up, keyed ``[<a>]->[<b>]``
- N-gram: gap between consecutive key-downs, keyed by every suffix of the
  rolling context, e.g. ``[<t><h>]->[<e>]``. Only gaps inside a typing
  burst are recorded.

Aggregate metrics (averages, variability, rhythm, WPM) are computed on
demand from the buffers.
"""

import logging
from collections import deque
from typing import Deque, Dict, Optional, Set

from engine.buffers import KeyedTimingBuffer, SharedTimingBuffer
from engine.config import KeystrokeConfig
from engine.schemas.inputs import KeyboardEvent, KeyEventType
from engine.schemas.outputs import KeystrokeCounters, KeystrokeMetrics, KeystrokeSnapshot
from engine.stats import coefficient_of_variation, mean

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Raw identifiers with a dedicated token name
KEY_ALIASES = {
    " ": "space",
    "spacebar": "space",
}

# Flight CV below this counts as a steady rhythm
RHYTHM_CV_THRESHOLD = 0.2

# Flights needed before rhythm is reported
MIN_RHYTHM_SAMPLES = 5

# Characters per word for the WPM estimate
CHARS_PER_WORD = 5


def normalize_key(raw_key: str) -> str:
    """Map a raw key identifier to its canonical ``<token>`` form."""
    token = raw_key.lower()
    token = KEY_ALIASES.get(token, token)
    return f"<{token}>"


def flight_key(prev_token: str, next_token: str) -> str:
    return f"[{prev_token}]->[{next_token}]"


def ngram_key(context_tokens, next_token: str) -> str:
    return f"[{''.join(context_tokens)}]->[{next_token}]"


# =============================================================================
# Keystroke Processor
# =============================================================================

class KeystrokeProcessor:
    """
    Converts raw keyboard events into dwell, flight and n-gram samples.

    The processor is single-session and single-threaded: events must be
    delivered in arrival order from one event loop.
    ``revision`` increases on every event and reset, so callers can tell
    whether a cached analysis is still current.
    """

    def __init__(self, config: Optional[KeystrokeConfig] = None) -> None:
        self.config = config or KeystrokeConfig()
        self._dwell = KeyedTimingBuffer(self.config.per_key_limit)
        self._flight = KeyedTimingBuffer(self.config.per_key_limit)
        self._ngram = SharedTimingBuffer(self.config.ngram_total_limit)
        self.revision = 0
        self.reset()

    def reset(self) -> None:
        """Drop every sample, pending key-down and counter."""
        self._dwell.clear()
        self._flight.clear()
        self._ngram.clear()
        self._key_down_times: Dict[str, float] = {}
        self._flight_tokens: Set[str] = set()
        self._context: Deque[str] = deque(maxlen=self.config.context_size)
        self._prev_down_time: Optional[float] = None
        self._last_up_key: Optional[str] = None
        self._last_up_time: Optional[float] = None
        self._first_down_time: Optional[float] = None
        self._last_event_time: Optional[float] = None
        self.total_keystrokes = 0
        self.revision += 1

    # -------------------------------------------------------------------------
    # Event handling
    # -------------------------------------------------------------------------

    def process_event(self, event: KeyboardEvent) -> None:
        """Route a single event to the DOWN or UP handler."""
        if event.event_type == KeyEventType.DOWN:
            self.on_key_down(event.key, event.timestamp)
        else:
            self.on_key_up(event.key, event.timestamp)

    def on_key_down(self, raw_key: str, timestamp: float) -> None:
        token = normalize_key(raw_key)
        self.total_keystrokes += 1
        self.revision += 1
        self._last_event_time = timestamp
        if self._first_down_time is None:
            self._first_down_time = timestamp

        if self._last_up_key is not None and self._last_up_time is not None:
            self._flight.append(
                flight_key(self._last_up_key, token),
                self._sample(timestamp - self._last_up_time),
            )
            self._flight_tokens.update((self._last_up_key, token))

        if self._context and self._prev_down_time is not None:
            gap = timestamp - self._prev_down_time
            if self._in_burst(gap):
                context = list(self._context)
                sample = self._sample(gap)
                for j in range(1, len(context) + 1):
                    self._ngram.append(ngram_key(context[-j:], token), sample)

        self._key_down_times[token] = timestamp
        self._context.append(token)
        self._prev_down_time = timestamp

    def on_key_up(self, raw_key: str, timestamp: float) -> None:
        token = normalize_key(raw_key)
        self.revision += 1
        self._last_event_time = timestamp

        start = self._key_down_times.pop(token, None)
        if start is not None:
            self._dwell.append(token, self._sample(timestamp - start))
        else:
            logger.debug(f"Key-up for {token} without a matching key-down")

        self._last_up_key = token
        self._last_up_time = timestamp

    def _in_burst(self, gap: float) -> bool:
        return gap < self.config.burst_gap_ms and gap <= self.config.hard_cap_ms

    def _sample(self, value: float) -> float:
        if self.config.round_samples:
            return float(round(value))
        return float(value)

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    def snapshot(self) -> KeystrokeSnapshot:
        return KeystrokeSnapshot(
            dwell_times=self._dwell.snapshot(),
            flight_times=self._flight.snapshot(),
            ngram_times=self._ngram.snapshot(),
            total_keystrokes=self.total_keystrokes,
        )

    def counters(self) -> KeystrokeCounters:
        return KeystrokeCounters(
            total_keys=self.total_keystrokes,
            dwell_samples=len(self._dwell),
            flight_samples=len(self._flight),
            ngram_samples=len(self._ngram),
            ngram_buckets=len(self._ngram.keys()),
        )

    def metrics(self) -> KeystrokeMetrics:
        """Aggregate typing statistics over everything currently buffered."""
        dwells = self._dwell.values()
        flights = self._flight.values()

        flight_cv = coefficient_of_variation(flights)
        rhythm = 0.0
        # Out-of-order timestamps can make the mean flight negative
        if len(flights) >= MIN_RHYTHM_SAMPLES and mean(flights) > 0 and flight_cv < RHYTHM_CV_THRESHOLD:
            rhythm = 1.0 - flight_cv

        return KeystrokeMetrics(
            avg_dwell_time=round(mean(dwells), 2),
            avg_flight_time=round(mean(flights), 2),
            dwell_variability=round(coefficient_of_variation(dwells), 3),
            flight_variability=round(flight_cv, 3),
            typing_rhythm=round(rhythm, 3),
            typing_speed=self._words_per_minute(),
            total_keystrokes=self.total_keystrokes,
            unique_keys=self._unique_keys(),
        )

    def _words_per_minute(self) -> float:
        if self._first_down_time is None or self._last_event_time is None:
            return 0.0
        elapsed_minutes = (self._last_event_time - self._first_down_time) / 60000.0
        if elapsed_minutes <= 0:
            return 0.0
        return float(round((self.total_keystrokes / CHARS_PER_WORD) / elapsed_minutes))

    def _unique_keys(self) -> int:
        return len(set(self._dwell.keys()) | self._flight_tokens)
