"""Short conversation title from the first user query."""

import logging

from quorum.models import CompletionRequest, Part, ToolConfig
from quorum.providers.base import CompletionClient

logger = logging.getLogger(__name__)

_FALLBACK_LEN = 40


def _fallback(text: str) -> str:
    text = " ".join(text.split())
    return text if len(text) <= _FALLBACK_LEN else text[:_FALLBACK_LEN].rstrip() + "..."


async def generate_title(client: CompletionClient, model: str, text: str, instruction: str) -> str:
    """Ask the model for a title; quotes and surrounding whitespace are stripped.

    Falls back to a truncated query when the model returns nothing usable.
    ServiceError propagates.
    """
    request = CompletionRequest(
        model=model,
        prior_turns=(),
        new_turn_parts=(Part.from_text(text.strip()),),
        system_instruction=instruction,
        tool_config=ToolConfig(),
        disable_reasoning=True,
    )
    response = await client.complete(request)
    title = response.raw_text.strip().replace('"', "").strip()
    if not title:
        logger.debug("Empty title from model, falling back to query text")
        return _fallback(text)
    return title
