from __future__ import annotations

from typing import Protocol


class AdvisoryLock(Protocol):
    """Cluster-wide mutual exclusion keyed by a fixed integer."""

    def acquire(self) -> bool: ...

    def release(self) -> None: ...
