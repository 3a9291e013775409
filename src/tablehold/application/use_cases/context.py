from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable


@dataclass(frozen=True)
class TraceContext:
    trace_id: str | None
    request_id: str | None


NO_TRACE = TraceContext(trace_id=None, request_id=None)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
