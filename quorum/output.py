"""Rich console output and markdown file save for pipeline answers."""

import logging
import mimetypes
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.rule import Rule
from rich.text import Text

from quorum.models import AnswerRecord, Citation, Part

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _binary_label(part: Part) -> str:
    return f"[{part.mime_type} attachment, {len(part.data or b'')} bytes]"


def _render_parts(parts: list[Part]) -> str:
    return "\n\n".join(p.text if p.is_text else _binary_label(p) for p in parts)


def _sources_lines(citations: list[Citation]) -> list[str]:
    return [f"[{i}] [{c.title}]({c.uri})" for i, c in enumerate(citations, start=1)]


def print_answer(record: AnswerRecord) -> None:
    """Print the final answer to the console using Rich markdown."""
    heading = record.title or "Answer"
    console.print(Rule(f"[bold green]{escape(heading)}[/bold green]"))
    console.print(
        Text(
            f"Mode: {record.mode} | Model: {record.model} | "
            f"Persona: {record.persona} | Duration: {record.total_duration_sec:.1f}s",
            style="dim",
        )
    )
    if not record.result.content_parts:
        console.print("[yellow]The model returned no content.[/yellow]")
    else:
        console.print(Markdown(_render_parts(record.result.content_parts)))
    if record.result.citations:
        console.print(Rule("[dim]Sources[/dim]"))
        for line in _sources_lines(record.result.citations):
            console.print(Markdown(line))


def save_to_file(record: AnswerRecord, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the question and final answer as a markdown file.

    Binary answer parts (e.g. generated images) are written next to the
    markdown file and linked from it.

    Args:
        record: The completed AnswerRecord.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the question text.

    Returns:
        Path to the saved markdown file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(record.question.text)
    stem = f"{timestamp}_{slug}"
    filepath = output_dir / f"{stem}.md"

    lines: list[str] = [
        f"# {record.title or record.question.text[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Mode:** {record.mode}",
        f"**Model:** {record.model}",
        f"**Persona:** {record.persona}",
        f"**Duration:** {record.total_duration_sec:.1f}s",
        f"**Source:** {record.question.source}",
        "",
        "---",
        "",
        "## Question",
        "",
        record.question.text,
        "",
        "## Answer",
        "",
    ]

    for i, part in enumerate(record.result.content_parts, start=1):
        if part.is_text:
            lines.append(part.text)
        else:
            ext = mimetypes.guess_extension(part.mime_type or "") or ".bin"
            asset = output_dir / f"{stem}_{i}{ext}"
            asset.write_bytes(part.data or b"")
            lines.append(f"![{_binary_label(part)}]({asset.name})")
        lines.append("")

    if record.result.citations:
        lines += ["## Sources", ""]
        lines += [f"{line}  " for line in _sources_lines(record.result.citations)]
        lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Answer saved to: %s", filepath)
    return filepath
