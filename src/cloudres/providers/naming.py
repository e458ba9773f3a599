"""Deterministic external names derived from request identity."""

from __future__ import annotations

import hashlib
import re

from cloudres.domain.models import ResourceRequest

DEFAULT_IDENTIFIER_LENGTH = 40
NAME_PREFIX = "cr"
KEY_DIGEST_LENGTH = 8

_INVALID_CHARS = re.compile(r"[^a-z0-9]")


def _key_digest(key: str) -> str:
    return hashlib.sha1(key.encode()).hexdigest()[:KEY_DIGEST_LENGTH]


def build_infra_name(request: ResourceRequest, max_length: int = DEFAULT_IDENTIFIER_LENGTH) -> str:
    """Name for the external resource backing ``request``.

    The same request always maps to the same name, so a create call can look up
    an existing resource before issuing a new one. The readable stem drops
    characters cloud identifiers reject; the suffix hashes the request key as
    given, so keys that only differ in those characters get distinct names.
    """
    stem = _INVALID_CHARS.sub("", f"{NAME_PREFIX}{request.namespace}{request.name}".lower())
    return stem[: max_length - KEY_DIGEST_LENGTH] + _key_digest(request.key)


def build_timestamped_name(
    request: ResourceRequest, max_length: int = DEFAULT_IDENTIFIER_LENGTH
) -> str:
    """Infra name suffixed with the request's creation time."""
    timestamp = request.created_at.strftime("%Y%m%d%H%M%S")
    base = build_infra_name(request, max_length=max_length - len(timestamp) - 1)
    return f"{base}-{timestamp}"
