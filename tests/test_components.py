"""Tests for component status helpers and Langfuse context handling."""

from vaultmind_core import components
from vaultmind_core.config import set_config_override


def test_langfuse_disabled_by_default():
    """Skip Langfuse callbacks unless enabled in config."""
    status = components.resolve_langfuse_status()
    assert status.enabled is False
    assert status.reason == "disabled via config"
    handler = components.build_langfuse_handler(
        user_id="u", session_id="s", trace_name="t", version="1", release="dev"
    )
    assert handler is None


def test_langfuse_requires_keys_when_enabled():
    """Report missing keys when Langfuse is enabled without credentials."""
    set_config_override({"langfuse": {"enabled": True}})
    status = components.resolve_langfuse_status()
    assert status.enabled is False
    assert status.metadata["required_config"] == [
        "langfuse.public_key",
        "langfuse.secret_key",
    ]


def test_llm_status_reports_fallback_parser():
    """Describe the local-parser fallback when no engine is configured."""
    status = components.resolve_llm_status()
    assert status.enabled is False
    assert "local parser" in (status.reason or "")
    set_config_override({"llm": {"api_key": "sk", "agent_model": "anthropic/claude"}})
    status = components.resolve_llm_status()
    assert status.enabled is True
    assert status.metadata == {"model": "anthropic/claude"}


def test_token_oracle_status_follows_config():
    """Report the oracle settings when the screen is enabled."""
    assert components.resolve_token_oracle_status().enabled is False
    set_config_override(
        {"security": {"oracle_enabled": True, "oracle_unavailable_policy": "block"}}
    )
    status = components.resolve_token_oracle_status()
    assert status.enabled is True
    assert status.metadata["unavailable_policy"] == "block"
    assert status.to_dict()["name"] == "token_oracle"


def test_langfuse_session_context_binds_and_resets():
    """Expose the session id only inside the context."""
    assert components.current_langfuse_session() is None
    with components.langfuse_session_context("a" * 32):
        assert components.current_langfuse_session() == "a" * 32
        assert components._LANGFUSE_TRACE_CONTEXT.get() == {"trace_id": "a" * 32}
    assert components.current_langfuse_session() is None


def test_attach_langfuse_metadata_sets_tags():
    """Attach session, user and tag metadata to a handler."""

    class Handler:
        pass

    handler = Handler()
    components._attach_langfuse_metadata(
        handler, user_id="u1", session_id="s1", trace_name="turn", version="1.0", release="prod"
    )
    assert handler.langfuse_metadata == {
        "langfuse_user_id": "u1",
        "langfuse_session_id": "s1",
        "langfuse_tags": ["turn", "version:1.0", "release:prod"],
    }
