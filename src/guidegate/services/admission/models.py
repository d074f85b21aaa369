"""Dataclasses capturing the admission data model and its stored record format."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Mapping, Sequence

from guidegate.config import const

from .enums import AdmissionReason

__all__ = [
    "TagPolicy",
    "TagCredential",
    "DeviceBinding",
    "BindingSet",
    "AdmissionDecision",
    "CleanupResult",
    "SweepReport",
    "DeviceSummary",
    "mask_fingerprint",
    "to_epoch_ms",
    "from_epoch_ms",
]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_epoch_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(round(moment.timestamp() * 1000))


def from_epoch_ms(value: int | float) -> datetime:
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"epoch milliseconds out of range: {value!r}") from exc


def _isoformat(moment: datetime) -> str:
    instant = moment.astimezone(timezone.utc)
    return instant.replace(microsecond=instant.microsecond // 1000 * 1000).isoformat().replace("+00:00", "Z")


@dataclass(slots=True, frozen=True)
class TagPolicy:
    max_devices: int = const.DEFAULT_MAX_DEVICES
    session_duration: timedelta = field(
        default_factory=lambda: timedelta(seconds=const.DEFAULT_SESSION_DURATION_SECONDS)
    )

    def __post_init__(self) -> None:
        if isinstance(self.max_devices, bool) or int(self.max_devices) < 1:
            raise ValueError("max_devices must be >= 1")


@dataclass(slots=True, frozen=True)
class TagCredential:
    """Canonical (uid, code) pair, whichever URL encoding produced it."""

    uid: str
    code: str


@dataclass(slots=True)
class DeviceBinding:
    fingerprint: str
    first_access: datetime = field(default_factory=_utcnow)
    last_access: datetime = field(default_factory=_utcnow)
    access_count: int = 1

    def touch(self, at: datetime) -> None:
        # clock skew must not move last_access before first_access
        self.last_access = max(at, self.first_access)
        self.access_count += 1

    def as_record(self) -> dict[str, Any]:
        return {
            "fingerprint": self.fingerprint,
            "firstAccess": to_epoch_ms(self.first_access),
            "lastAccess": to_epoch_ms(self.last_access),
            "accessCount": self.access_count,
        }

    @classmethod
    def from_record(cls, data: Mapping[str, Any]) -> "DeviceBinding":
        if not isinstance(data, Mapping):
            raise ValueError("binding record is not an object")
        fingerprint = data.get("fingerprint")
        if not isinstance(fingerprint, str) or not fingerprint:
            raise ValueError("binding record without fingerprint")
        first = from_epoch_ms(data.get("firstAccess") or data.get("lastAccess") or 0)
        last = from_epoch_ms(data.get("lastAccess") or data.get("firstAccess") or 0)
        return cls(
            fingerprint=fingerprint,
            first_access=first,
            last_access=max(first, last),
            access_count=max(int(data.get("accessCount") or 1), 1),
        )


@dataclass(slots=True)
class BindingSet:
    """Ordered device roster for one UID, in first-registration order."""

    bindings: list[DeviceBinding] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.bindings)

    def __iter__(self) -> Iterator[DeviceBinding]:
        return iter(self.bindings)

    @property
    def fingerprints(self) -> list[str]:
        return [binding.fingerprint for binding in self.bindings]

    def find(self, fingerprint: str) -> DeviceBinding | None:
        for binding in self.bindings:
            if binding.fingerprint == fingerprint:
                return binding
        return None

    def register(self, fingerprint: str, at: datetime) -> DeviceBinding:
        if self.find(fingerprint) is not None:
            raise ValueError(f"fingerprint already bound: {fingerprint!r}")
        binding = DeviceBinding(fingerprint=fingerprint, first_access=at, last_access=at, access_count=1)
        self.bindings.append(binding)
        return binding

    def active_since(self, cutoff: datetime) -> "BindingSet":
        return BindingSet([binding for binding in self.bindings if not binding.last_access < cutoff])

    def as_records(self) -> list[dict[str, Any]]:
        return [binding.as_record() for binding in self.bindings]

    @classmethod
    def from_records(cls, records: Sequence[Mapping[str, Any]]) -> "BindingSet":
        result = cls()
        for record in records:
            binding = DeviceBinding.from_record(record)
            existing = result.find(binding.fingerprint)
            if existing is None:
                result.bindings.append(binding)
                continue
            # merge duplicates left behind by concurrent writers
            existing.first_access = min(existing.first_access, binding.first_access)
            existing.last_access = max(existing.last_access, binding.last_access)
            existing.access_count = max(existing.access_count, binding.access_count)
        return result


@dataclass(slots=True)
class AdmissionDecision:
    allowed: bool
    reason: AdmissionReason
    device_count: int | None = None
    max_devices: int | None = None
    is_new_device: bool | None = None
    expires_at: datetime | None = None

    def as_payload(self) -> dict[str, Any]:
        data: dict[str, Any] = {"allowed": self.allowed, "reason": self.reason.value}
        if self.device_count is not None:
            data["deviceCount"] = self.device_count
        if self.allowed:
            data["isNewDevice"] = bool(self.is_new_device)
            if self.expires_at is not None:
                data["expiresAt"] = _isoformat(self.expires_at)
        elif self.max_devices is not None:
            data["maxDevices"] = self.max_devices
        return data


@dataclass(slots=True)
class CleanupResult:
    cleaned: bool
    removed_count: int
    remaining_count: int

    def as_payload(self) -> dict[str, Any]:
        return {
            "cleaned": self.cleaned,
            "removedCount": self.removed_count,
            "remainingCount": self.remaining_count,
        }


@dataclass(slots=True)
class SweepReport:
    processed: int = 0
    cleaned: int = 0
    removed: int = 0
    failed: list[str] = field(default_factory=list)

    def as_payload(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "cleaned": self.cleaned,
            "removed": self.removed,
            "failed": list(self.failed),
        }


def mask_fingerprint(fingerprint: str) -> str:
    return fingerprint[: const.FINGERPRINT_MASK_CHARS] + "..."


@dataclass(slots=True)
class DeviceSummary:
    uid: str
    bindings: BindingSet

    @property
    def device_count(self) -> int:
        return len(self.bindings)

    def as_payload(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "deviceCount": self.device_count,
            "devices": [
                {
                    "fingerprint": mask_fingerprint(binding.fingerprint),
                    "firstAccess": to_epoch_ms(binding.first_access),
                    "lastAccess": to_epoch_ms(binding.last_access),
                    "accessCount": binding.access_count,
                }
                for binding in self.bindings
            ],
        }
