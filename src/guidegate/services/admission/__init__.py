"""Admission-control core: tag code validation and bounded device binding."""
from .enums import AdmissionReason
from .errors import InvalidInputError, StoreUnavailableError
from .models import (
    AdmissionDecision,
    BindingSet,
    CleanupResult,
    DeviceBinding,
    DeviceSummary,
    SweepReport,
    TagCredential,
    TagPolicy,
)
from .codec import (
    HmacSha256Strategy,
    MixingHashStrategy,
    Sha256SuffixStrategy,
    ValidationCodeCodec,
    generate_code,
    verify_code,
)
from .locks import KeyedLocks
from .store import DeviceBindingStore, KeyValueBindingStore, MemoryKeyValue, SQLiteKeyValue
from .controller import AdmissionController
from .sweeper import RetentionSweeper
from .tag_url import build_tag_url, credential_from_params, parse_compact, parse_tag_url
from .bootstrap import AdmissionRuntime, build_runtime

__all__ = [
    "AdmissionReason",
    "InvalidInputError",
    "StoreUnavailableError",
    "AdmissionDecision",
    "BindingSet",
    "CleanupResult",
    "DeviceBinding",
    "DeviceSummary",
    "SweepReport",
    "TagCredential",
    "TagPolicy",
    "HmacSha256Strategy",
    "MixingHashStrategy",
    "Sha256SuffixStrategy",
    "ValidationCodeCodec",
    "generate_code",
    "verify_code",
    "KeyedLocks",
    "DeviceBindingStore",
    "KeyValueBindingStore",
    "MemoryKeyValue",
    "SQLiteKeyValue",
    "AdmissionController",
    "RetentionSweeper",
    "build_tag_url",
    "credential_from_params",
    "parse_compact",
    "parse_tag_url",
    "AdmissionRuntime",
    "build_runtime",
]
