"""Tests for scopes, credential resolution and tool authorization."""

import json

import pytest

from vaultmind_core.config import set_config_override
from vaultmind_core.permissions import (
    DEFAULT_TOKEN_SCOPES,
    Scope,
    ScopeAuthorizer,
    StaticCredentialResolver,
    TokenGrant,
    hash_token,
    load_credential_resolver,
    parse_scopes,
)


class Tool:
    """Minimal scoped tool."""

    def __init__(self, name, scopes):
        """Initialize the tool."""
        self.name = name
        self.required_scopes = frozenset(scopes)


def _grant(token, scopes, **kwargs):
    return TokenGrant(
        name="test", token_sha256=hash_token(token), scopes=frozenset(scopes), **kwargs
    )


def test_parse_scopes_accepts_strings_and_lists():
    """Parse comma/space separated strings and iterables."""
    assert parse_scopes("wallet:read, chat:write") == {Scope.WALLET_READ, Scope.CHAT_WRITE}
    assert parse_scopes(["CLAIM:WRITE"]) == {Scope.CLAIM_WRITE}
    assert parse_scopes(None) == frozenset()


def test_parse_scopes_rejects_unknown_entries():
    """Raise when any scope name is unknown."""
    with pytest.raises(ValueError, match="root:all"):
        parse_scopes(["wallet:read", "root:all"])


def test_authorize_requires_every_scope():
    """Grant access only when all required scopes are held."""
    authorizer = ScopeAuthorizer()
    tool = Tool("claim", {Scope.WALLET_READ, Scope.CLAIM_WRITE})
    assert authorizer.authorize(tool, {Scope.WALLET_READ, Scope.CLAIM_WRITE, Scope.FEES_READ})
    assert not authorizer.authorize(tool, {Scope.WALLET_READ})
    assert authorizer.missing_scopes(tool, ["wallet:read"]) == ["claim:write"]


def test_tool_without_required_scopes_is_always_allowed():
    """Treat an empty requirement as satisfied by any scope set."""
    assert ScopeAuthorizer().authorize(Tool("help", ()), frozenset())


def test_resolver_matches_hashed_tokens():
    """Resolve tokens by hash and ignore unknown or empty ones."""
    resolver = StaticCredentialResolver([_grant("secret-1", {Scope.WALLET_READ})])
    assert resolver.resolve("secret-1") == {Scope.WALLET_READ}
    assert resolver.resolve(" secret-1 ") == {Scope.WALLET_READ}
    assert resolver.resolve("other") is None
    assert resolver.resolve("") is None


def test_resolver_rejects_expired_and_revoked_grants():
    """Refuse credentials past expiry or revoked."""
    resolver = StaticCredentialResolver(
        [
            _grant("expired", {Scope.WALLET_READ}, expires_at=100.0),
            _grant("revoked", {Scope.WALLET_READ}, revoked=True),
            _grant("current", {Scope.WALLET_READ}, expires_at=300.0),
        ],
        clock=lambda: 200.0,
    )
    assert resolver.resolve("expired") is None
    assert resolver.resolve("revoked") is None
    assert resolver.resolve("current") == {Scope.WALLET_READ}


def test_authorizer_resolve_scopes_handles_missing_credentials():
    """Return None for absent credentials without consulting the resolver."""
    authorizer = ScopeAuthorizer(StaticCredentialResolver([_grant("tok", {Scope.FEES_READ})]))
    assert authorizer.resolve_scopes(None) is None
    assert authorizer.resolve_scopes("tok") == {Scope.FEES_READ}


def test_load_credential_resolver_merges_file_and_config(tmp_path):
    """Load grants from the token file and inline config entries."""
    tokens_file = tmp_path / "tokens.json"
    tokens_file.write_text(
        json.dumps(
            {
                "tokens": [
                    {"name": "file", "token_sha256": hash_token("from-file"), "scopes": []},
                    {"name": "bad", "token_sha256": hash_token("bad"), "scopes": ["nope"]},
                    {"name": "nohash"},
                ]
            }
        ),
        encoding="utf-8",
    )
    set_config_override(
        {
            "permissions": {
                "tokens_path": str(tokens_file),
                "tokens": [{"name": "inline", "token": "inline-secret", "scopes": "fees:read"}],
            }
        }
    )
    resolver = load_credential_resolver()
    assert len(resolver) == 2
    assert resolver.resolve("from-file") == DEFAULT_TOKEN_SCOPES
    assert resolver.resolve("inline-secret") == {Scope.FEES_READ}
    assert resolver.resolve("bad") is None


def test_load_credential_resolver_tolerates_missing_file(tmp_path):
    """Start with an empty table when the token file is missing."""
    resolver = load_credential_resolver(str(tmp_path / "missing.json"))
    assert len(resolver) == 0
