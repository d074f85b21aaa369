"""Translation between tag URLs and the canonical :class:`TagCredential`.

Two encodings are in circulation::

    https://host/?s=<uid>:<code>
    https://host/?uid=<uid>&vc=<code>

``s`` is split on its last ``:`` (codes never contain one, UIDs may). When a
URL carries both encodings (or a lone ``uid`` or ``vc`` next to ``s``) they
must name the same pair; a mismatch is rejected instead of picking one.
"""
from __future__ import annotations

from typing import Literal, Mapping
from urllib.parse import parse_qs, urlencode, urlsplit

from .errors import InvalidInputError
from .models import TagCredential

__all__ = ["TagEncoding", "parse_compact", "credential_from_params", "parse_tag_url", "build_tag_url"]

TagEncoding = Literal["s", "query"]


def parse_compact(value: str) -> TagCredential:
    uid, sep, code = (value or "").strip().rpartition(":")
    if not sep or not uid or not code:
        raise InvalidInputError("compact tag value must look like '<uid>:<code>'", fields=["s"])
    return TagCredential(uid=uid, code=code)


def credential_from_params(params: Mapping[str, str | None]) -> TagCredential:
    compact = params.get("s")
    uid = params.get("uid")
    code = params.get("vc")

    from_compact = parse_compact(compact) if compact else None
    if from_compact is not None and not (uid and code):
        # a lone uid or vc next to 's' only has to agree with it
        if uid and uid != from_compact.uid:
            raise InvalidInputError("conflicting tag encodings: 's' and 'uid' disagree", fields=["s", "uid"])
        if code and code.upper() != from_compact.code.upper():
            raise InvalidInputError("conflicting tag encodings: 's' and 'vc' disagree", fields=["s", "vc"])
        return from_compact
    from_query = None
    if uid or code:
        missing = [name for name, value in (("uid", uid), ("vc", code)) if not value]
        if missing:
            raise InvalidInputError("uid and vc must be supplied together", fields=missing)
        from_query = TagCredential(uid=str(uid), code=str(code))

    if from_compact and from_query:
        if from_compact.uid != from_query.uid or from_compact.code.upper() != from_query.code.upper():
            raise InvalidInputError("conflicting tag encodings: 's' and 'uid'/'vc' disagree", fields=["s", "uid", "vc"])
        return from_query
    credential = from_compact or from_query
    if credential is None:
        raise InvalidInputError("no tag credential present", fields=["s", "uid", "vc"])
    return credential


def parse_tag_url(url: str) -> TagCredential:
    query = parse_qs(urlsplit(url).query, keep_blank_values=False)
    return credential_from_params({key: values[-1] for key, values in query.items() if values})


def build_tag_url(base_url: str, credential: TagCredential, encoding: TagEncoding = "s") -> str:
    base = base_url.rstrip("/") + "/"
    if encoding == "s":
        # keep the ':' readable, as printed on existing tags
        return f"{base}?{urlencode({'s': f'{credential.uid}:{credential.code}'}, safe=':')}"
    if encoding == "query":
        return f"{base}?{urlencode({'uid': credential.uid, 'vc': credential.code})}"
    raise ValueError(f"unknown tag encoding: {encoding!r}")
