"""Click CLI — orchestrates config loading, backend selection, the answer pipeline, and output."""

import asyncio
import logging
import sys
import time
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, BackendConfig, PersonaConfig, load_config
from quorum.healthcheck import run_health_check
from quorum.history import load_history
from quorum.models import AnswerRecord, Mode, Part, Question, StageEvent, ToolConfig, Turn
from quorum.output import print_answer, save_to_file
from quorum.pipeline import PipelineError, PipelineOrchestrator
from quorum.providers.anthropic import AnthropicClient
from quorum.providers.base import CompletionClient, ServiceError
from quorum.providers.gemini import GeminiClient
from quorum.providers.openai_provider import OpenAIClient
from quorum.title import generate_title
from quorum.topology import ConfigurationError, resolve

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

CLIENT_CLASSES: dict[str, type[CompletionClient]] = {
    "gemini": GeminiClient,
    "openai": OpenAIClient,
    "anthropic": AnthropicClient,
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_client(backend: BackendConfig) -> CompletionClient:
    """Instantiate the configured backend.

    Raises:
        ConfigurationError: Unknown sdk name.
        ServiceError: Missing API key.
    """
    if backend.sdk not in CLIENT_CLASSES:
        known = ", ".join(sorted(CLIENT_CLASSES))
        raise ConfigurationError(f"Unknown backend sdk '{backend.sdk}' (expected one of: {known})")
    return CLIENT_CLASSES[backend.sdk](backend)


def _select_persona(config: AppConfig, persona_arg: str | None) -> PersonaConfig:
    """--persona wins over the configured default. An unknown name is a ConfigurationError."""
    name = persona_arg or config.defaults.persona
    if name not in config.personas:
        if persona_arg is None and not config.personas:
            return PersonaConfig(name=name, instruction="")
        raise ConfigurationError(f"Unknown persona '{name}'")
    return config.personas[name]


def _select_mode(config: AppConfig, persona: PersonaConfig, mode_arg: str | None) -> str:
    """Precedence: --mode > persona default_mode > config default."""
    if mode_arg:
        return mode_arg
    if persona.default_mode:
        return persona.default_mode
    return config.defaults.mode


def _check_backend(client: CompletionClient, model: str) -> None:
    """Ping the backend and ask whether to continue on failure."""
    console.print("\n[bold]Checking backend...[/bold]")
    ok, err = asyncio.run(run_health_check(client, model))
    if ok:
        console.print(f"  [green]OK  [/green] {client.name()}\n")
        return
    short_err = err.splitlines()[0][:120] if err else "unknown error"
    console.print(f"  [red]FAIL[/red] {client.name()}: {escape(short_err)}")
    if not click.confirm("Continue anyway?", default=False):
        sys.exit(1)
    console.print()


async def _run_single(
    question: Question,
    history: tuple[Turn, ...],
    config: AppConfig,
    client: CompletionClient,
    mode: str,
    persona: PersonaConfig,
    search: bool,
    with_title: bool,
) -> AnswerRecord:
    """Run one question through the pipeline and return the answer record."""
    topology = resolve(mode)
    orchestrator = PipelineOrchestrator(
        client=client,
        prompts=config.prompts,
        models=config.backend.models,
        persona_scope=config.defaults.persona_scope,
        run_timeout_sec=config.defaults.run_timeout_sec,
    )
    model = config.backend.models.get(topology.model.value, "?")

    console.print(
        f"\n[bold cyan]Quorum[/bold cyan] — {mode} mode, "
        f"{topology.refine_agents} refiner(s) on {model}"
    )
    console.print(f"Persona: {persona.name}")
    preview = question.text[:80] + ('...' if len(question.text) > 80 else '')
    console.print(f"Question: [italic]{escape(preview)}[/italic]\n")

    start = time.monotonic()
    title: str | None = None

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Preparing request...", total=None)

        if with_title and not history and config.prompts.title:
            progress.update(task, description="Generating title...")
            title = await generate_title(
                client,
                config.backend.models.get("flash", model),
                question.text,
                config.prompts.title,
            )

        def on_progress(event: StageEvent) -> None:
            progress.update(task, description=event.label)

        result = await orchestrator.run(
            topology=topology,
            history=history,
            user_parts=[Part.from_text(question.text)],
            persona_instruction=persona.instruction,
            tool_config=ToolConfig(search=search),
            on_progress=on_progress,
        )

    return AnswerRecord(
        question=question,
        mode=mode,
        model=model,
        persona=persona.name,
        result=result,
        total_duration_sec=time.monotonic() - start,
        title=title,
    )


@click.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True), help="Read question from a text/markdown file")
@click.option("--mode", type=click.Choice([m.value for m in Mode]), default=None,
              help="Quality mode (default: persona's default_mode, then config)")
@click.option("--persona", default=None, help="Persona name from config (default: from config)")
@click.option("--search/--no-search", default=False, help="Allow the external search tool where the mode supports it")
@click.option("--history", "history_file", type=click.Path(exists=True), default=None,
              help="JSON file with prior conversation turns")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--no-save", is_flag=True, default=False, help="Print the answer without saving it")
@click.option("--title", "with_title", is_flag=True, default=False, help="Generate a short title for a new conversation")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    question: str | None,
    question_file: str | None,
    mode: str | None,
    persona: str | None,
    search: bool,
    history_file: str | None,
    output_path: str | None,
    no_save: bool,
    with_title: bool,
    verbose: bool,
    skip_health_check: bool,
) -> None:
    """Quorum -- one answer from a draft, parallel refiners, and a synthesizer.

    \b
    Examples:
      quorum "Explain CRDTs" --mode quick
      quorum "Compare Raft and Paxos" --mode heavy --search
      quorum --file question.md --persona reviewer
      quorum "And for Go?" --history chat.json --mode flash
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError, KeyError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    if question_file:
        question_text = Path(question_file).read_text(encoding="utf-8").strip()
        question_source = question_file
    elif question:
        question_text = question
        question_source = "cli"
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument or --file.")
        sys.exit(1)

    try:
        selected_persona = _select_persona(config, persona)
        effective_mode = _select_mode(config, selected_persona, mode)
        topology = resolve(effective_mode)
        history = load_history(Path(history_file)) if history_file else ()
        client = _build_client(config.backend)
    except (ConfigurationError, ServiceError, ValueError) as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    if not skip_health_check:
        _check_backend(client, config.backend.models.get(topology.model.value, ""))

    try:
        record = asyncio.run(
            _run_single(
                question=Question(text=question_text, source=question_source),
                history=history,
                config=config,
                client=client,
                mode=effective_mode,
                persona=selected_persona,
                search=search,
                with_title=with_title,
            )
        )
    except (PipelineError, ConfigurationError, ServiceError) as exc:
        logger.debug("Run failed", exc_info=True)
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    print_answer(record)

    if not no_save:
        effective_output = Path(output_path) if output_path else config.defaults.output_dir
        saved_path = save_to_file(record, effective_output)
        console.print(f"\n[dim]Saved to: {saved_path}[/dim]")


if __name__ == "__main__":
    main()
