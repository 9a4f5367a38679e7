from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from logrelay.logv2.severity import Severity


@runtime_checkable
class Notifier(Protocol):
    """
    Side-channel alert hook, fired for records at/above the configured threshold.

    Implementations may raise; the logger swallows notifier failures.
    """

    def notify(
        self,
        severity: Severity,
        execution_id: Optional[str],
        message: str,
        payload: Optional[Mapping[str, Any]],
    ) -> None: ...
