"""Verifier identity map: platform user id → canonical display name."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

log = logging.getLogger("closeout.identity")

SUPPORTED_VERSIONS = frozenset({1})


class IdentityMapError(RuntimeError):
    """Raised when the verifier map document is malformed."""


@dataclass(frozen=True)
class VerifierIdentityMap:
    version: int = 1
    names: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def lookup(self, user_id: object) -> str | None:
        if user_id is None:
            return None
        return self.names.get(str(user_id))

    def resolve(self, user_id: object, fallback: str) -> tuple[str, bool]:
        """Return ``(name, known)``; unknown ids fall back to ``fallback``."""

        name = self.lookup(user_id)
        if name:
            return name, True
        return fallback, False

    def __len__(self) -> int:
        return len(self.names)


def parse_identity_map(document: Any) -> VerifierIdentityMap:
    """Validate a decoded JSON document and build the map."""

    if not isinstance(document, Mapping):
        raise IdentityMapError("verifier map must be a JSON object")
    version = document.get("version")
    if not isinstance(version, int) or version not in SUPPORTED_VERSIONS:
        raise IdentityMapError(f"unsupported verifier map version: {version!r}")
    raw = document.get("verifiers")
    if not isinstance(raw, Mapping):
        raise IdentityMapError("'verifiers' must be an object of id → name")

    names: dict[str, str] = {}
    for key, value in raw.items():
        user_id = str(key).strip()
        if not user_id.isdigit():
            raise IdentityMapError(f"verifier id must be numeric: {key!r}")
        if not isinstance(value, str) or not value.strip():
            raise IdentityMapError(f"verifier name for {user_id} must be a non-empty string")
        names[user_id] = value.strip()
    return VerifierIdentityMap(version=version, names=MappingProxyType(names))


def load_identity_map(path: str | Path) -> VerifierIdentityMap:
    """Load the map from ``path``; a missing file yields an empty map."""

    target = Path(path)
    if not target.exists():
        log.warning("verifier map not found; using platform display names", extra={"path": str(target)})
        return VerifierIdentityMap()
    try:
        document = json.loads(target.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise IdentityMapError(f"verifier map is not valid JSON: {exc}") from exc
    identity_map = parse_identity_map(document)
    log.info(
        "verifier map loaded",
        extra={"path": str(target), "version": identity_map.version, "entries": len(identity_map)},
    )
    return identity_map


__all__ = [
    "IdentityMapError",
    "VerifierIdentityMap",
    "load_identity_map",
    "parse_identity_map",
]
