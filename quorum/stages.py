"""Stage execution: concurrent completion calls collected by request index."""

import asyncio
import logging

from quorum.models import CompletionRequest, StageResult
from quorum.providers.base import CompletionClient

logger = logging.getLogger(__name__)


async def _drain(tasks: list[asyncio.Task]) -> None:
    """Cancel unfinished tasks and wait until every one of them has settled."""
    for task in tasks:
        if not task.done():
            task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


async def run_parallel(
    client: CompletionClient,
    requests: list[CompletionRequest],
    stage: str = "stage",
) -> StageResult:
    """Fire all requests concurrently and return responses in request order.

    Args:
        client: Shared completion client.
        requests: Requests to dispatch; the i-th response answers the i-th request.
        stage: Label used in task names and log lines.

    Returns:
        Responses index-aligned with ``requests``, independent of completion order.

    Raises:
        Exception: The first error raised by any request, unchanged. Siblings still
            in flight are cancelled and their results discarded.
    """
    if not requests:
        return []

    tasks = [
        asyncio.create_task(client.complete(req), name=f"{stage}-{i + 1}")
        for i, req in enumerate(requests)
    ]

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        logger.debug("%s cancelled with %d request(s) in flight", stage, sum(not t.done() for t in tasks))
        await _drain(tasks)
        raise

    # Lowest index wins when several failed in the same tick.
    failed = [t for t in tasks if t in done and not t.cancelled() and t.exception() is not None]
    if failed:
        first = failed[0]
        logger.warning(
            "%s: %s failed, cancelling %d sibling(s): %s",
            stage,
            first.get_name(),
            len(pending),
            first.exception(),
        )
        await _drain(list(pending))
        raise first.exception()

    logger.debug("%s: %d/%d requests complete", stage, len(done), len(tasks))
    return [t.result() for t in tasks]
