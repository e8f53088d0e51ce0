"""Pipeline orchestration: Draft -> Refine (fan-out) -> Synthesize, with empty-draft fallback."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from config.config_loader import PromptsConfig
from quorum.aggregate import aggregate
from quorum.models import (
    Citation,
    CompletionRequest,
    CompletionResponse,
    FinalResult,
    Part,
    PipelineRun,
    PipelineTopology,
    RunStatus,
    StageEvent,
    ToolConfig,
    Turn,
)
from quorum.providers.base import CompletionClient
from quorum.stages import run_parallel
from quorum.topology import ConfigurationError, validate_topology

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[StageEvent], None]


class PipelineError(Exception):
    """A run failed. ``stage`` is where it failed, ``cause`` the underlying error if any."""

    def __init__(self, stage: RunStatus, cause: BaseException | None = None, message: str | None = None) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(message or f"Pipeline failed while {stage.value}: {cause}")


class PipelineCancelledError(PipelineError):
    """The caller cancelled the run."""


class PipelineTimeoutError(PipelineError):
    """The run exceeded its time limit."""


def _merge_citations(final: CompletionResponse, *earlier: CompletionResponse) -> list[Citation]:
    """Final response's citations first, then unseen ones from earlier stages, deduplicated by URI."""
    merged: list[Citation] = []
    seen: set[str] = set()
    for response in (final, *earlier):
        for citation in response.citations:
            if citation.uri not in seen:
                seen.add(citation.uri)
                merged.append(citation)
    return merged


class PipelineOrchestrator:
    """Runs one submission through the stage topology of its mode.

    The orchestrator itself is stateless between runs; each call to ``run``
    owns a fresh ``PipelineRun``. The completion client is the only shared
    collaborator.
    """

    def __init__(
        self,
        client: CompletionClient,
        prompts: PromptsConfig,
        models: dict[str, str],
        persona_scope: str = "all",
        run_timeout_sec: float | None = None,
    ) -> None:
        self._client = client
        self._prompts = prompts
        self._models = models
        self._persona_scope = persona_scope
        self._run_timeout_sec = run_timeout_sec

    async def run(
        self,
        topology: PipelineTopology,
        history: Sequence[Turn],
        user_parts: Sequence[Part],
        persona_instruction: str = "",
        tool_config: ToolConfig | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> FinalResult:
        """Produce one final answer for the user's turn.

        Args:
            topology: Fan-out shape for the selected mode.
            history: Prior conversation turns, oldest first.
            user_parts: Content parts of the new user turn.
            persona_instruction: Caller-supplied system/persona text.
            tool_config: Caller tool flags; search is used only where the topology allows it.
            on_progress: Optional callback receiving a StageEvent before each stage.
            cancel_event: Setting this event aborts the run and all in-flight calls.

        Returns:
            FinalResult with the answer's content parts and citations.

        Raises:
            ConfigurationError: Invalid topology or no model configured for its tier.
            PipelineError: Any stage failure; PipelineCancelledError / PipelineTimeoutError
                when aborted.
        """
        validate_topology(topology)
        model = self._models.get(topology.model.value)
        if not model:
            raise ConfigurationError(f"No model configured for tier '{topology.model.value}'")

        run = PipelineRun(
            topology=topology,
            original_history=tuple(history),
            user_parts=tuple(user_parts),
        )
        logger.info(
            "Run started: %s (%s), %d refiner(s)",
            topology.model.value,
            model,
            topology.refine_agents,
        )

        body = asyncio.create_task(
            self._execute(run, model, persona_instruction, tool_config or ToolConfig(), on_progress)
        )
        waiters: set[asyncio.Future] = {body}
        cancel_waiter = asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
        if cancel_waiter is not None:
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(waiters, timeout=self._run_timeout_sec, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            body.cancel()
            await asyncio.gather(body, return_exceptions=True)
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if body in done:
            final = body.result()
            logger.info("Run done in %.2fs", run.elapsed_sec)
            return final

        stage = run.status
        body.cancel()
        await asyncio.gather(body, return_exceptions=True)
        self._fail(run)
        if cancel_waiter is not None and cancel_waiter in done:
            logger.warning("Run cancelled while %s", stage.value)
            raise PipelineCancelledError(stage, message=f"Run cancelled while {stage.value}")
        logger.warning("Run timed out after %ss while %s", self._run_timeout_sec, stage.value)
        raise PipelineTimeoutError(
            stage, message=f"Run timed out after {self._run_timeout_sec}s while {stage.value}"
        )

    async def _execute(
        self,
        run: PipelineRun,
        model: str,
        persona: str,
        tool_config: ToolConfig,
        on_progress: ProgressCallback | None,
    ) -> FinalResult:
        topology = run.topology
        tools = ToolConfig(search=tool_config.search and topology.extra_config.enable_search_tool)

        def build(prior: tuple[Turn, ...], new_parts: tuple[Part, ...], instruction: str) -> CompletionRequest:
            return CompletionRequest(
                model=model,
                prior_turns=prior,
                new_turn_parts=new_parts,
                system_instruction=instruction,
                tool_config=tools,
                disable_reasoning=topology.extra_config.disable_reasoning,
            )

        if topology.is_single_call:
            self._advance(run, RunStatus.DRAFTING, "Thinking...", on_progress)
            request = build(run.original_history, run.user_parts, persona)
            response = await self._guard(run, self._client.complete(request))
            return self._finish(run, FinalResult.from_response(response))

        self._advance(run, RunStatus.DRAFTING, "Agent 1: Initial Draft...", on_progress)
        draft_request = build(
            run.original_history,
            run.user_parts,
            self._instruction(self._prompts.draft, persona, RunStatus.DRAFTING),
        )
        run.draft_result = await self._guard(run, self._client.complete(draft_request))

        if run.draft_result.is_empty:
            logger.warning("Draft returned no content; using it as the final result")
            return self._finish(run, FinalResult.from_response(run.draft_result))

        n = topology.refine_agents
        self._advance(run, RunStatus.REFINING, f"Agents 2-{n + 1}: Refining...", on_progress)
        refine_history = run.original_history + (
            Turn(role="user", parts=run.user_parts),
            Turn(role="model", parts=tuple(run.draft_result.content_parts)),
        )
        refine_instruction = self._instruction(self._prompts.refine, persona, RunStatus.REFINING)
        refine_requests = [build(refine_history, (), refine_instruction) for _ in range(n)]
        run.refine_results = await self._guard(run, run_parallel(self._client, refine_requests, stage="refine"))

        self._advance(run, RunStatus.SYNTHESIZING, "Synthesizing Final Answer...", on_progress)
        synth_request = build(
            run.original_history,
            run.user_parts + tuple(aggregate(run.refine_results)),
            self._instruction(self._prompts.synthesize, persona, RunStatus.SYNTHESIZING),
        )
        synthesis = await self._guard(run, self._client.complete(synth_request))

        final = FinalResult(
            content_parts=list(synthesis.content_parts),
            citations=_merge_citations(synthesis, run.draft_result, *run.refine_results),
        )
        return self._finish(run, final)

    def _instruction(self, stage_instruction: str, persona: str, stage: RunStatus) -> str:
        if self._persona_scope == "synthesize" and stage is not RunStatus.SYNTHESIZING:
            persona = ""
        return "\n\n".join(s for s in (stage_instruction.strip(), persona.strip()) if s)

    async def _guard(self, run: PipelineRun, call: Awaitable):
        try:
            return await call
        except Exception as exc:
            stage = run.status
            self._fail(run)
            logger.error("Stage %s failed: %s", stage.value, exc)
            raise PipelineError(stage, exc) from exc

    @staticmethod
    def _advance(
        run: PipelineRun,
        status: RunStatus,
        label: str,
        on_progress: ProgressCallback | None,
    ) -> None:
        if on_progress is not None:
            try:
                on_progress(StageEvent(status=status, label=label))
            except Exception:
                logger.exception("Progress callback raised; continuing")
        logger.debug("%s -> %s", run.status.value, status.value)
        run.status = status

    @staticmethod
    def _finish(run: PipelineRun, final: FinalResult) -> FinalResult:
        run.final_result = final
        run.status = RunStatus.DONE
        return final

    @staticmethod
    def _fail(run: PipelineRun) -> None:
        run.status = RunStatus.FAILED
        run.draft_result = None
        run.refine_results = None
        run.final_result = None
