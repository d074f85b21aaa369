"""Wiring of settings into codec, store, controller and sweeper."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from guidegate.config.settings import ConfigError, GuideGateSettings

from .codec import ValidationCodeCodec
from .controller import AdmissionController
from .locks import KeyedLocks
from .models import TagPolicy
from .store import KeyValueBackend, KeyValueBindingStore, MemoryKeyValue, SQLiteKeyValue
from .sweeper import RetentionSweeper

__all__ = ["AdmissionRuntime", "build_runtime"]


@dataclass(slots=True)
class AdmissionRuntime:
    settings: GuideGateSettings
    codec: ValidationCodeCodec
    store: KeyValueBindingStore
    controller: AdmissionController
    sweeper: RetentionSweeper

    def close(self) -> None:
        self.store.close()


def _backend_for(db_path: str) -> KeyValueBackend:
    if db_path == ":memory:":
        return MemoryKeyValue()
    return SQLiteKeyValue(db_path)


def build_runtime(
    settings: GuideGateSettings,
    *,
    backend: KeyValueBackend | None = None,
    clock: Callable[[], datetime] | None = None,
) -> AdmissionRuntime:
    try:
        codec = ValidationCodeCodec(settings.secret, settings.code_strategy)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    store = KeyValueBindingStore(backend or _backend_for(settings.db_path), prefix=settings.key_prefix)
    locks = KeyedLocks()
    policy = TagPolicy(
        max_devices=settings.default_max_devices,
        session_duration=settings.session_duration,
    )
    controller = AdmissionController(codec=codec, store=store, default_policy=policy, locks=locks, clock=clock)
    sweeper = RetentionSweeper(
        store=store, locks=locks, clock=clock, default_max_age_ms=settings.retention_ms
    )
    return AdmissionRuntime(settings=settings, codec=codec, store=store, controller=controller, sweeper=sweeper)
