"""Out-of-band pruning of stale device bindings."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from guidegate.config import const

from .errors import InvalidInputError, StoreUnavailableError
from .locks import KeyedLocks
from .models import CleanupResult, SweepReport
from .store import DeviceBindingStore

__all__ = ["RetentionSweeper"]

_log = logging.getLogger("guidegate.sweeper")


class RetentionSweeper:
    def __init__(
        self,
        *,
        store: DeviceBindingStore,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
        default_max_age_ms: int = const.DEFAULT_RETENTION_MS,
    ) -> None:
        self._store = store
        self._default_max_age_ms = default_max_age_ms
        self._locks = locks or KeyedLocks()
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))

    def cleanup(self, uid: str, max_age_ms: int | None = None) -> CleanupResult:
        """Drop bindings of ``uid`` whose last access is older than ``max_age_ms``.

        Writes only when at least one binding was removed. Store failures
        propagate to the caller.
        """

        if not uid:
            raise InvalidInputError("uid is required", fields=["uid"], code="missing_field")
        if max_age_ms is None:
            max_age_ms = self._default_max_age_ms
        if max_age_ms < 0:
            raise InvalidInputError("maxAge must not be negative", fields=["maxAge"])
        cutoff = self._clock() - timedelta(milliseconds=max_age_ms)

        with self._locks.hold(uid):
            bindings = self._store.get(uid)
            active = bindings.active_since(cutoff)
            removed = len(bindings) - len(active)
            if removed:
                self._store.put(uid, active)
                _log.info("sweeper: pruned stale bindings", extra={"uid": uid, "removed": removed})
        return CleanupResult(cleaned=removed > 0, removed_count=removed, remaining_count=len(active))

    def sweep(self, max_age_ms: int | None = None) -> SweepReport:
        """Run :meth:`cleanup` for every stored UID; failures are logged and counted."""

        uids = getattr(self._store, "uids", None)
        if uids is None:
            raise TypeError(f"{type(self._store).__name__} cannot enumerate stored UIDs")
        report = SweepReport()
        for uid in uids():
            report.processed += 1
            try:
                result = self.cleanup(uid, max_age_ms)
            except StoreUnavailableError:
                _log.exception("sweeper: cleanup failed; will retry on next run", extra={"uid": uid})
                report.failed.append(uid)
                continue
            if result.cleaned:
                report.cleaned += 1
                report.removed += result.removed_count
        return report
