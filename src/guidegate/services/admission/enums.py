"""Enumerations describing admission outcomes."""
from __future__ import annotations

from enum import Enum

__all__ = ["AdmissionReason"]


class _StrEnum(str, Enum):
    """Simple ``str``-backed enum compatible with Python 3.10."""

    def __str__(self) -> str:  # pragma: no cover - convenience for logging only
        return str(self.value)


class AdmissionReason(_StrEnum):
    EXISTING_DEVICE = "existing_device"
    UNDER_LIMIT = "under_limit"
    DEVICE_LIMIT_EXCEEDED = "device_limit_exceeded"
    INVALID_CODE = "invalid_code"
    STORE_UNAVAILABLE = "store_unavailable"

    @property
    def allows(self) -> bool:
        return self in (AdmissionReason.EXISTING_DEVICE, AdmissionReason.UNDER_LIMIT)
