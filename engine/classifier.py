"""
Remote Keystroke Classifier Client

Ships the n-gram timing buffer to an external classifier through an
injected transport and normalizes the score it returns.

The transport is any callable ``submit(payload) -> score`` (sync or
async). Transport errors propagate unchanged; there is no retry. A
response that is not a number is coerced with float parsing, defaulting
to 0.0, and the coercion is logged.
"""

import inspect
import logging
import math
from typing import Any, Awaitable, Callable, Dict, Union

from engine.schemas.outputs import KeystrokeSnapshot

logger = logging.getLogger(__name__)

Transport = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


class ClassifierUnavailableError(RuntimeError):
    """Raised when a push is requested but no transport is configured."""
    pass


async def resolve(value: Any) -> Any:
    """Await ``value`` if it is awaitable; return it unchanged otherwise."""
    if inspect.isawaitable(value):
        return await value
    return value


def coerce_score(raw: Any) -> float:
    """Parse a classifier response into a float, 0.0 when unparseable."""
    if isinstance(raw, dict) and "score" in raw:
        raw = raw["score"]
    if isinstance(raw, bool):
        logger.warning(f"Classifier returned a boolean score ({raw}), coercing")
        return 1.0 if raw else 0.0
    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        logger.warning(f"Classifier returned a non-numeric score {raw!r}, coercing")
        try:
            value = float(str(raw).strip())
        except (TypeError, ValueError):
            return 0.0
    if not math.isfinite(value):
        logger.warning(f"Classifier returned a non-finite score {value}, using 0.0")
        return 0.0
    return value


class KeystrokeClassifierClient:
    """Thin adapter between the keystroke buffers and a transport."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    @staticmethod
    def build_payload(snapshot: KeystrokeSnapshot) -> Dict[str, Any]:
        return {"ngram_times": snapshot.ngram_times}

    async def submit(self, snapshot: KeystrokeSnapshot) -> float:
        payload = self.build_payload(snapshot)
        logger.debug(f"Submitting {len(payload['ngram_times'])} n-gram buckets")
        raw = await resolve(self.transport(payload))
        score = coerce_score(raw)
        logger.info(f"Remote classifier score: {score:.3f}")
        return score
