"""Mode -> PipelineTopology table. Pure lookups, no I/O."""

from quorum.models import ExtraConfig, Mode, ModelTier, PipelineTopology


class ConfigurationError(Exception):
    """Raised for an unknown mode or an invalid pipeline/backend configuration."""


def _topology(model: ModelTier, refine_agents: int, *, disable_reasoning: bool = False,
              search: bool = True) -> PipelineTopology:
    return PipelineTopology(
        model=model,
        refine_agents=refine_agents,
        extra_config=ExtraConfig(disable_reasoning=disable_reasoning, enable_search_tool=search),
    )


TOPOLOGIES: dict[Mode, PipelineTopology] = {
    Mode.QUICK: _topology(ModelTier.FLASH, 0, disable_reasoning=True),
    Mode.FLASH: _topology(ModelTier.FLASH, 2),
    Mode.PRO: _topology(ModelTier.PRO, 2),
    Mode.HEAVY: _topology(ModelTier.PRO, 4),
    Mode.IMAGE_GEN: _topology(ModelTier.IMAGE, 0, search=False),
}


def validate_topology(topology: PipelineTopology) -> PipelineTopology:
    """Check the fan-out invariants: one draft agent, zero or a positive even number of refiners."""
    if topology.draft_agents != 1:
        raise ConfigurationError(f"draft_agents must be 1, got {topology.draft_agents}")
    if topology.refine_agents < 0 or topology.refine_agents % 2:
        raise ConfigurationError(
            f"refine_agents must be 0 or a positive even number, got {topology.refine_agents}"
        )
    return topology


def resolve(mode: Mode | str) -> PipelineTopology:
    """Return the topology for a mode.

    Raises:
        ConfigurationError: If the mode is not one of the known modes.
    """
    try:
        key = Mode(mode)
    except ValueError as exc:
        known = ", ".join(m.value for m in Mode)
        raise ConfigurationError(f"Unknown mode '{mode}' (expected one of: {known})") from exc
    return validate_topology(TOPOLOGIES[key])
