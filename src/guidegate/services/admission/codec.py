"""Validation codes printed on NFC tags and QR codes.

A code is a short, fixed-width, upper-case hex string derived from a tag UID
and the per-deployment secret. The derivation is pluggable:

``mixing``
    The historical 32-bit multiplicative mix (``h = h * 31 + unit``) over the
    UTF-16 code units of ``uid + secret``. It is irreversible but *not*
    cryptographically strong: the last four hex digits leave a ~1/65536
    collision space and the function is linear in its input. It is kept as the
    default so that tags already in circulation keep validating.
``sha256``
    Last digits of ``SHA-256(uid + secret)``.
``hmac``
    Last digits of ``HMAC-SHA256(secret, uid)``. Recommended for new
    deployments.

All functions are pure; only an empty UID is rejected.
"""
from __future__ import annotations

import hashlib
import hmac
import struct
from typing import Callable, Mapping, Protocol

from guidegate.config import const

from .errors import InvalidInputError

__all__ = [
    "CodeStrategy",
    "MixingHashStrategy",
    "Sha256SuffixStrategy",
    "HmacSha256Strategy",
    "ValidationCodeCodec",
    "STRATEGIES",
    "get_strategy",
    "generate_code",
    "verify_code",
]

_INT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000
_SHA256_HEX_WIDTH = 64


class CodeStrategy(Protocol):
    name: str

    def derive(self, uid: str, secret: str) -> str:
        ...


def _check_width(width: int, digest_width: int) -> int:
    if isinstance(width, bool) or not 1 <= int(width) <= digest_width:
        raise ValueError(f"width must be between 1 and {digest_width}")
    return int(width)


def _utf16_units(text: str) -> tuple[int, ...]:
    raw = text.encode("utf-16-le", errors="surrogatepass")
    return struct.unpack(f"<{len(raw) // 2}H", raw)


class MixingHashStrategy:
    name = "mixing"

    def __init__(self, width: int = const.CODE_WIDTH) -> None:
        self.width = _check_width(width, 8)

    @staticmethod
    def mix(text: str) -> int:
        """Return the signed 32-bit accumulator for ``text``."""

        value = 0
        for unit in _utf16_units(text):
            value = ((value << 5) - value + unit) & _INT32_MASK
        if value & _INT32_SIGN:
            value -= 1 << 32
        return value

    def derive(self, uid: str, secret: str) -> str:
        digest = format(abs(self.mix(uid + secret)), "08x")
        return digest[-self.width:].upper()


class Sha256SuffixStrategy:
    name = "sha256"

    def __init__(self, width: int = const.CODE_WIDTH) -> None:
        self.width = _check_width(width, _SHA256_HEX_WIDTH)

    def derive(self, uid: str, secret: str) -> str:
        digest = hashlib.sha256((uid + secret).encode("utf-8")).hexdigest()
        return digest[-self.width:].upper()


class HmacSha256Strategy:
    name = "hmac"

    def __init__(self, width: int = const.CODE_WIDTH) -> None:
        self.width = _check_width(width, _SHA256_HEX_WIDTH)

    def derive(self, uid: str, secret: str) -> str:
        digest = hmac.new(secret.encode("utf-8"), uid.encode("utf-8"), hashlib.sha256).hexdigest()
        return digest[-self.width:].upper()


STRATEGIES: Mapping[str, Callable[[], CodeStrategy]] = {
    MixingHashStrategy.name: MixingHashStrategy,
    Sha256SuffixStrategy.name: Sha256SuffixStrategy,
    HmacSha256Strategy.name: HmacSha256Strategy,
}

_DEFAULT_STRATEGY = MixingHashStrategy()


def get_strategy(name: str) -> CodeStrategy:
    try:
        factory = STRATEGIES[name.strip().lower()]
    except KeyError:
        raise ValueError(f"unknown code strategy: {name!r} (expected one of {', '.join(STRATEGIES)})") from None
    return factory()


def _require_uid(uid: str | None) -> str:
    if not uid or not str(uid).strip():
        raise InvalidInputError("uid is required", fields=["uid"], code="missing_field")
    return str(uid)


def _normalize(code: str | None) -> str:
    return (code or "").strip().upper()


def generate_code(uid: str, secret: str, strategy: CodeStrategy | None = None) -> str:
    return (strategy or _DEFAULT_STRATEGY).derive(_require_uid(uid), secret)


def verify_code(uid: str, supplied_code: str | None, secret: str, strategy: CodeStrategy | None = None) -> bool:
    expected = generate_code(uid, secret, strategy)
    supplied = _normalize(supplied_code)
    if not supplied:
        return False
    return hmac.compare_digest(expected.encode("ascii"), supplied.encode("utf-8"))


class ValidationCodeCodec:
    """Codec bound to one deployment secret and one code strategy."""

    def __init__(self, secret: str, strategy: CodeStrategy | str | None = None) -> None:
        if not secret:
            raise ValueError("codec secret must not be empty")
        if isinstance(strategy, str):
            strategy = get_strategy(strategy)
        self._secret = secret
        self._strategy: CodeStrategy = strategy or MixingHashStrategy()

    @property
    def strategy_name(self) -> str:
        return self._strategy.name

    def generate(self, uid: str) -> str:
        return generate_code(uid, self._secret, self._strategy)

    def verify(self, uid: str, supplied_code: str | None) -> bool:
        return verify_code(uid, supplied_code, self._secret, self._strategy)

    def __repr__(self) -> str:
        return f"ValidationCodeCodec(strategy={self._strategy.name!r})"
