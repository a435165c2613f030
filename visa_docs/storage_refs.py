"""Classify document references into a closed set of storage locations."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Sequence, Union
from urllib.parse import unquote, urlsplit

_STORAGE_URL_RE = re.compile(
    r"/storage/v1/object/(?:public|authenticated|sign)/(?P<bucket>[^/]+)/(?P<path>.+)$"
)
_SIGNATURE_HINT = "sig"


@dataclass(frozen=True)
class KnownRef:
    bucket: str
    path: str
    source_url: Optional[str] = None


@dataclass(frozen=True)
class ExternalRef:
    url: str


@dataclass(frozen=True)
class Unresolvable:
    reason: str


StorageRef = Union[KnownRef, ExternalRef, Unresolvable]


def _match_storage_url(reference: str) -> Optional[KnownRef]:
    parts = urlsplit(reference)
    match = _STORAGE_URL_RE.search(parts.path)
    if not match:
        return None
    return KnownRef(
        bucket=match.group("bucket"),
        path=unquote(match.group("path")),
        source_url=reference,
    )


def parse_storage_ref(
    reference: Optional[str],
    *,
    documents_bucket: str,
    signatures_bucket: str,
    extra_buckets: Sequence[str] = (),
) -> StorageRef:
    """Classify a stored reference.

    Order: known bucket prefix, storage object URL, external http(s) URL,
    then bare path with the bucket guessed from the filename.
    """
    text = (reference or "").strip()
    if not text:
        return Unresolvable("empty reference")

    known = (documents_bucket, signatures_bucket, *extra_buckets)
    head, sep, rest = text.lstrip("/").partition("/")
    if sep and rest and head in known:
        return KnownRef(bucket=head, path=rest)

    if "/storage/v1/object/" in text:
        storage_ref = _match_storage_url(text)
        if storage_ref is not None:
            return storage_ref

    scheme = urlsplit(text).scheme.lower()
    if scheme in ("http", "https"):
        return ExternalRef(url=text)
    if scheme and "://" in text:
        return Unresolvable(f"unsupported scheme {scheme}")
    if text.startswith("data:"):
        return Unresolvable("inline data reference")

    filename = text.rstrip("/").rsplit("/", 1)[-1].lower()
    bucket = signatures_bucket if _SIGNATURE_HINT in filename else documents_bucket
    return KnownRef(bucket=bucket, path=text.lstrip("/"))
