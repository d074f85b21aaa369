"""Admission decisions for presented tags."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from .codec import ValidationCodeCodec
from .enums import AdmissionReason
from .errors import InvalidInputError, StoreUnavailableError
from .locks import KeyedLocks
from .models import AdmissionDecision, BindingSet, DeviceSummary, TagCredential, TagPolicy
from .store import DeviceBindingStore

__all__ = ["AdmissionController"]

_log = logging.getLogger("guidegate.admission")


class AdmissionController:
    """Verifies a tag code and admits the presenting device under the tag policy.

    Decision order for one request:

    1. code does not verify -> reject ``invalid_code`` (store untouched)
    2. fingerprint already bound -> bump counters, allow ``existing_device``
    3. roster below ``max_devices`` -> append, allow ``under_limit``
    4. otherwise -> reject ``device_limit_exceeded``

    Step 2 precedes the limit check, so a bound device is never locked out even
    when the roster holds more entries than the policy allows. Only allow paths
    write to the store. Store failures fail closed with ``store_unavailable``.
    """

    def __init__(
        self,
        *,
        codec: ValidationCodeCodec,
        store: DeviceBindingStore,
        default_policy: TagPolicy | None = None,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._codec = codec
        self._store = store
        self._default_policy = default_policy or TagPolicy()
        self._locks = locks or KeyedLocks()
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))

    @property
    def default_policy(self) -> TagPolicy:
        return self._default_policy

    @property
    def locks(self) -> KeyedLocks:
        return self._locks

    def _now(self) -> datetime:
        return self._clock()

    def policy_for(self, max_devices: int | None = None) -> TagPolicy:
        if max_devices is None:
            return self._default_policy
        return TagPolicy(max_devices=max_devices, session_duration=self._default_policy.session_duration)

    def admit(
        self,
        uid: str,
        code: str | None,
        fingerprint: str,
        *,
        policy: TagPolicy | None = None,
    ) -> AdmissionDecision:
        missing = [name for name, value in (("uid", uid), ("deviceFingerprint", fingerprint)) if not value]
        if missing:
            raise InvalidInputError(
                f"missing required field(s): {', '.join(missing)}", fields=missing, code="missing_field"
            )
        policy = policy or self._default_policy

        if not self._codec.verify(uid, code):
            _log.warning("admission: invalid validation code", extra={"uid": uid})
            return AdmissionDecision(allowed=False, reason=AdmissionReason.INVALID_CODE)

        try:
            with self._locks.hold(uid):
                return self._decide(uid, fingerprint, policy)
        except StoreUnavailableError:
            _log.exception("admission: binding store unavailable, rejecting", extra={"uid": uid})
            return AdmissionDecision(allowed=False, reason=AdmissionReason.STORE_UNAVAILABLE)

    def admit_credential(
        self,
        credential: TagCredential,
        fingerprint: str,
        *,
        policy: TagPolicy | None = None,
    ) -> AdmissionDecision:
        return self.admit(credential.uid, credential.code, fingerprint, policy=policy)

    def _decide(self, uid: str, fingerprint: str, policy: TagPolicy) -> AdmissionDecision:
        bindings = self._store.get(uid)
        now = self._now()

        existing = bindings.find(fingerprint)
        if existing is not None:
            existing.touch(now)
            self._store.put(uid, bindings)
            return self._allow(AdmissionReason.EXISTING_DEVICE, bindings, policy, now, is_new=False)

        if len(bindings) < policy.max_devices:
            bindings.register(fingerprint, now)
            self._store.put(uid, bindings)
            _log.info(
                "admission: new device bound",
                extra={"uid": uid, "device_count": len(bindings), "max_devices": policy.max_devices},
            )
            return self._allow(AdmissionReason.UNDER_LIMIT, bindings, policy, now, is_new=True)

        _log.info(
            "admission: device limit exceeded",
            extra={"uid": uid, "device_count": len(bindings), "max_devices": policy.max_devices},
        )
        return AdmissionDecision(
            allowed=False,
            reason=AdmissionReason.DEVICE_LIMIT_EXCEEDED,
            device_count=len(bindings),
            max_devices=policy.max_devices,
        )

    @staticmethod
    def _allow(
        reason: AdmissionReason,
        bindings: BindingSet,
        policy: TagPolicy,
        now: datetime,
        *,
        is_new: bool,
    ) -> AdmissionDecision:
        return AdmissionDecision(
            allowed=True,
            reason=reason,
            device_count=len(bindings),
            is_new_device=is_new,
            expires_at=now + policy.session_duration,
        )

    def inspect(self, uid: str) -> DeviceSummary:
        """Return the stored roster for ``uid``; raises ``StoreUnavailableError``."""

        if not uid:
            raise InvalidInputError("uid is required", fields=["uid"], code="missing_field")
        return DeviceSummary(uid=uid, bindings=self._store.get(uid))
