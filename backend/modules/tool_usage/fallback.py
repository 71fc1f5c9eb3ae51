"""
modules/tool_usage/fallback.py
-------------------------------
Small result type for remote → local fallback chains.

Each stage returns StageResult.ok(value) or StageResult.fail(reason, detail).
first_success() runs stages in order and returns the first success, logging
every fall-through; the last stage is expected to be a local computation
that cannot fail.

    result = first_success([
        ("remote", lambda: fetch_remote()),
        ("local",  lambda: StageResult.ok(compute_locally())),
    ], label="eta_matrix")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailureReason(str, Enum):
    NOT_CONFIGURED     = "not_configured"      # no credential / nothing to ask
    REMOTE_UNAVAILABLE = "remote_unavailable"  # network, timeout, non-2xx
    RATE_LIMITED       = "rate_limited"        # provider quota / denial status
    EMPTY_RESPONSE     = "empty_response"      # no rows
    MALFORMED_RESPONSE = "malformed_response"  # unexpected shape
    UNEXPECTED_ERROR   = "unexpected_error"


@dataclass(frozen=True)
class StageResult(Generic[T]):
    value: Optional[T] = None
    reason: Optional[FailureReason] = None
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        return self.reason is None

    @classmethod
    def ok(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, reason: FailureReason, detail: str = "") -> "StageResult[T]":
        return cls(reason=reason, detail=detail)


Stage = tuple[str, Callable[[], StageResult]]


def first_success(stages: Sequence[Stage], label: str = "") -> StageResult:
    """
    Run *stages* in order; return the first successful result.

    An exception escaping a stage is converted to UNEXPECTED_ERROR so the
    chain keeps going. If every stage fails, the last failure is returned.
    """
    last: StageResult = StageResult.fail(FailureReason.NOT_CONFIGURED, "no stages")
    for index, (name, stage) in enumerate(stages):
        try:
            result = stage()
        except Exception as exc:  # noqa: BLE001
            result = StageResult.fail(FailureReason.UNEXPECTED_ERROR, repr(exc))
        if result.succeeded:
            return result
        last = result
        if index + 1 < len(stages):
            log = logger.debug if result.reason is FailureReason.NOT_CONFIGURED else logger.warning
            log(
                "[%s] stage %r failed (%s: %s); falling back to %r",
                label or "fallback", name, result.reason.value, result.detail,
                stages[index + 1][0],
            )
    return last
