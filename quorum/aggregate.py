"""Merge refinement outputs into one labeled block for the synthesizer."""

import logging

from quorum.models import Part, StageResult

logger = logging.getLogger(__name__)

HEADER_TEMPLATE = "--- Refined Response {index} ---"


def _coalesce_text(parts: list[Part], separator: str = "\n") -> list[Part]:
    """Join runs of adjacent text parts with ``separator``; binary parts stay where they are."""
    merged: list[Part] = []
    run: list[str] = []
    for part in parts:
        if part.is_text:
            run.append(part.text)
            continue
        if run:
            merged.append(Part.from_text(separator.join(run)))
            run = []
        merged.append(part)
    if run:
        merged.append(Part.from_text(separator.join(run)))
    return merged


def aggregate(results: StageResult) -> list[Part]:
    """Label each refinement result by its 1-based position and concatenate in order.

    An empty result still contributes its header, with nothing after it.
    """
    labeled: list[Part] = []
    for index, response in enumerate(results, start=1):
        if response.is_empty:
            logger.warning("Refined response %d is empty; keeping its header only", index)
        labeled.append(Part.from_text(HEADER_TEMPLATE.format(index=index)))
        labeled.extend(_coalesce_text(response.content_parts, separator=""))
    return _coalesce_text(labeled)
