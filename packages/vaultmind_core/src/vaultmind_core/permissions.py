#!/usr/bin/env python3
"""Scope model and credential resolution for tool authorization."""

from __future__ import annotations

import hashlib
import hmac
import json
import os
import time
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import tomllib

from vaultmind_core.common import get_logger
from vaultmind_core.config import get_config_value

logging = get_logger(name="core.permissions")


class Scope(str, Enum):
    """Capabilities a credential can grant."""

    VERIFY_READ = "verify:read"
    VERIFY_WRITE = "verify:write"
    DASHBOARD_READ = "dashboard:read"
    CHAT_WRITE = "chat:write"
    GOVERNANCE_READ = "governance:read"
    GOVERNANCE_WRITE = "governance:write"
    DEVELOPERS_READ = "developers:read"
    LAUNCH_READ = "launch:read"
    LAUNCH_WRITE = "launch:write"
    WALLET_READ = "wallet:read"
    FEES_READ = "fees:read"
    CLAIM_WRITE = "claim:write"
    TOKENS_MANAGE = "tokens:manage"


ALL_SCOPES: frozenset[Scope] = frozenset(Scope)
DEFAULT_TOKEN_SCOPES: frozenset[Scope] = frozenset(
    {
        Scope.VERIFY_READ,
        Scope.VERIFY_WRITE,
        Scope.DASHBOARD_READ,
        Scope.CHAT_WRITE,
        Scope.DEVELOPERS_READ,
        Scope.LAUNCH_READ,
        Scope.LAUNCH_WRITE,
        Scope.WALLET_READ,
        Scope.FEES_READ,
    }
)


def parse_scopes(values: Iterable[str] | str | None) -> frozenset[Scope]:
    """Parse scope names, raising ValueError on unknown entries."""
    if values is None:
        return frozenset()
    if isinstance(values, str):
        values = [entry for entry in values.replace(",", " ").split() if entry]
    parsed: set[Scope] = set()
    invalid: list[str] = []
    for value in values:
        try:
            parsed.add(Scope(str(value).strip().lower()))
        except ValueError:
            invalid.append(str(value))
    if invalid:
        raise ValueError(f"Unknown scopes: {', '.join(sorted(invalid))}")
    return frozenset(parsed)


class ScopedTool(Protocol):
    name: str
    required_scopes: frozenset[Scope]


class CredentialResolver(Protocol):
    """Maps a presented credential to its granted scopes, or None."""

    def resolve(self, credential: str) -> frozenset[Scope] | None:
        ...


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class TokenGrant:
    """A stored credential: its hash, granted scopes and lifetime."""

    name: str
    token_sha256: str
    scopes: frozenset[Scope]
    expires_at: float | None = None
    revoked: bool = False

    def is_active(self, now: float) -> bool:
        if self.revoked:
            return False
        return self.expires_at is None or now < self.expires_at


class StaticCredentialResolver:
    """Resolve bearer tokens against a table of hashed grants."""

    def __init__(self, grants: Iterable[TokenGrant] = (), *, clock=time.time) -> None:
        """Initialize the resolver with a grant table."""
        self._grants = list(grants)
        self._clock = clock

    def __len__(self) -> int:
        return len(self._grants)

    def resolve(self, credential: str) -> frozenset[Scope] | None:
        if not credential:
            return None
        digest = hash_token(credential.strip())
        now = self._clock()
        for grant in self._grants:
            if hmac.compare_digest(grant.token_sha256, digest):
                if not grant.is_active(now):
                    logging.info("Rejected inactive credential '{}'", grant.name)
                    return None
                return grant.scopes
        return None


class ScopeAuthorizer:
    """Resolve caller scopes and decide whether a tool may be invoked."""

    def __init__(self, resolver: CredentialResolver | None = None) -> None:
        """Initialize the authorizer."""
        self._resolver = resolver or StaticCredentialResolver()

    def resolve_scopes(self, credential: str | None) -> frozenset[Scope] | None:
        """Return the caller's scopes, or None when the credential is absent or unknown."""
        if not credential:
            return None
        return self._resolver.resolve(credential)

    @staticmethod
    def missing_scopes(tool: ScopedTool, scopes: Iterable[Scope | str]) -> list[str]:
        granted = {getattr(scope, "value", scope) for scope in scopes}
        return sorted(scope.value for scope in tool.required_scopes if scope.value not in granted)

    def authorize(self, tool: ScopedTool, scopes: Iterable[Scope | str]) -> bool:
        """Return True iff every scope the tool requires is granted."""
        return not self.missing_scopes(tool, scopes)


def _parse_grant(entry: dict[str, Any]) -> TokenGrant | None:
    name = str(entry.get("name") or "unnamed")
    digest = str(entry.get("token_sha256") or "").strip().lower()
    if not digest and entry.get("token"):
        digest = hash_token(str(entry["token"]))
    if len(digest) != 64:
        logging.warning("Skipping credential '{}': missing token hash", name)
        return None
    try:
        scopes = parse_scopes(entry.get("scopes"))
    except ValueError as exc:
        logging.warning("Skipping credential '{}': {}", name, exc)
        return None
    expires_at = entry.get("expires_at")
    return TokenGrant(
        name=name,
        token_sha256=digest,
        scopes=scopes or DEFAULT_TOKEN_SCOPES,
        expires_at=float(expires_at) if expires_at is not None else None,
        revoked=bool(entry.get("revoked", False)),
    )


def _load_token_data(path: str) -> dict[str, Any]:
    with open(path, "rb") as handle:
        if path.endswith(".toml"):
            return tomllib.load(handle)
        return json.load(handle)


def load_credential_resolver(path: str | None = None) -> StaticCredentialResolver:
    """Load the token table from disk and config."""
    entries: list[dict[str, Any]] = list(get_config_value("permissions", "tokens", default=[]))
    if path is None:
        path = get_config_value("permissions", "tokens_path")
    if path:
        if not os.path.exists(path):
            logging.warning("Token table file not found: {}", path)
        else:
            try:
                payload = _load_token_data(path)
            except (json.JSONDecodeError, OSError, tomllib.TOMLDecodeError) as exc:
                logging.warning("Failed to load token table: {}", exc)
            else:
                entries.extend(item for item in payload.get("tokens", []) if isinstance(item, dict))
    grants = [grant for grant in (_parse_grant(entry) for entry in entries) if grant]
    logging.debug("Loaded {} credential grants", len(grants))
    return StaticCredentialResolver(grants)


__all__ = [
    "ALL_SCOPES",
    "CredentialResolver",
    "DEFAULT_TOKEN_SCOPES",
    "Scope",
    "ScopeAuthorizer",
    "StaticCredentialResolver",
    "TokenGrant",
    "hash_token",
    "load_credential_resolver",
    "parse_scopes",
]
