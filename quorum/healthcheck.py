"""Backend health check: ping the completion service before running a pipeline."""

import asyncio
import logging

from quorum.models import CompletionRequest, Part
from quorum.providers.base import CompletionClient

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def run_health_check(client: CompletionClient, model: str) -> tuple[bool, str]:
    """Ping the backend once.

    Returns:
        (ok, error_message); error_message is "" when ok is True.
    """
    request = CompletionRequest(
        model=model,
        prior_turns=(),
        new_turn_parts=(Part.from_text(_PING_PROMPT),),
        system_instruction="",
        disable_reasoning=True,
    )
    try:
        await asyncio.wait_for(client.complete(request), timeout=_TIMEOUT_SEC)
        return True, ""
    except Exception as exc:
        logger.debug("Health check for %s failed: %s", client.name(), exc)
        return False, str(exc) or type(exc).__name__
