"""Security screening for proposed actions."""

from __future__ import annotations

from vaultmind_core.config import get_config_section, get_config_value
from vaultmind_core.security.checks import (
    AddressScreenCheck,
    PromptManipulationCheck,
    TokenContractCheck,
)
from vaultmind_core.security.oracle import GoPlusTokenOracle, TokenRiskOracle
from vaultmind_core.security.pipeline import (
    PipelineResult,
    SecurityCheck,
    SecurityContext,
    SecurityPipeline,
    SecurityResult,
    Verdict,
    format_screen_message,
)


def build_default_pipeline(oracle: TokenRiskOracle | None = None) -> SecurityPipeline:
    """Build the standard pipeline: cheap local checks first, the oracle last."""
    security = get_config_section("security")
    pipeline = SecurityPipeline()
    pipeline.add(PromptManipulationCheck())
    pipeline.add(AddressScreenCheck(security.get("blocked_addresses") or []))
    if oracle is None and security.get("oracle_enabled", True):
        oracle = GoPlusTokenOracle()
    if oracle is not None:
        pipeline.add(
            TokenContractCheck(
                oracle,
                timeout=float(security.get("oracle_timeout", 8.0)),
                unavailable_policy=str(security.get("oracle_unavailable_policy", "warn")),
                default_chain=str(get_config_value("agent", "default_chain", default="base")),
            )
        )
    return pipeline


__all__ = [
    "PipelineResult",
    "SecurityCheck",
    "SecurityContext",
    "SecurityPipeline",
    "SecurityResult",
    "Verdict",
    "build_default_pipeline",
    "format_screen_message",
]
