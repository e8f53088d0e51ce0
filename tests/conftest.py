"""Shared pytest fixtures."""

import asyncio
import inspect
from collections.abc import Callable
from pathlib import Path

import pytest

from config.config_loader import AppConfig, BackendConfig, DefaultsConfig, PersonaConfig, PromptsConfig
from quorum.models import Citation, CompletionRequest, CompletionResponse, Part, Question, Turn
from quorum.providers.base import CompletionClient

DRAFT = "DRAFT-INSTRUCTION"
REFINE = "REFINE-INSTRUCTION"
SYNTH = "SYNTH-INSTRUCTION"


def text_response(*texts: str, citations: list[Citation] | None = None) -> CompletionResponse:
    return CompletionResponse(
        content_parts=[Part.from_text(t) for t in texts],
        citations=list(citations or []),
    )


def stage_of(request: CompletionRequest) -> str:
    """Identify which stage built a request from its system instruction."""
    for marker, stage in ((DRAFT, "draft"), (REFINE, "refine"), (SYNTH, "synth")):
        if request.system_instruction.startswith(marker):
            return stage
    return "single"


class StubClient(CompletionClient):
    """Test double CompletionClient.

    ``responder`` receives each request and returns a response, raises, or
    returns an awaitable resolving to a response. Every request is recorded
    in call order.
    """

    def __init__(self, responder: Callable | None = None, backend: str = "stub") -> None:
        self._responder = responder or (lambda request: text_response("Stub response"))
        self._backend = backend
        self.requests: list[CompletionRequest] = []
        self.cancelled: list[CompletionRequest] = []

    def name(self) -> str:
        return self._backend

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        try:
            result = self._responder(request)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            self.cancelled.append(request)
            raise
        return result

    @property
    def stages(self) -> list[str]:
        return [stage_of(r) for r in self.requests]


def pipeline_responder(
    draft: CompletionResponse,
    refines: list[CompletionResponse | Exception],
    synth: CompletionResponse,
) -> Callable:
    """Answer by stage; the i-th refine call gets refines[i]."""
    counter = {"refine": 0}

    def respond(request: CompletionRequest) -> CompletionResponse:
        stage = stage_of(request)
        if stage == "draft":
            return draft
        if stage == "refine":
            result = refines[counter["refine"]]
            counter["refine"] += 1
            if isinstance(result, Exception):
                raise result
            return result
        if stage == "synth":
            return synth
        return text_response("single")

    return respond


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        draft=DRAFT,
        refine=REFINE,
        synthesize=SYNTH,
        title="Title this query.",
    )


@pytest.fixture
def sample_models() -> dict[str, str]:
    return {"flash": "test-flash", "pro": "test-pro", "image": "test-image"}


@pytest.fixture
def sample_backend_config(sample_models: dict[str, str]) -> BackendConfig:
    return BackendConfig(
        sdk="gemini",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        models=dict(sample_models),
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        mode="flash",
        persona="default",
        output_dir=tmp_path / "output",
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_backend_config: BackendConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    return AppConfig(
        defaults=sample_defaults_config,
        backend=sample_backend_config,
        prompts=sample_prompts_config,
        personas={
            "default": PersonaConfig(name="default", instruction="Be friendly.", default_mode="quick"),
            "plain": PersonaConfig(name="plain", instruction="Be plain."),
        },
        api_key_available=True,
    )


@pytest.fixture
def sample_question() -> Question:
    return Question(text="Should we use YAML or JSON for config?", source="cli")


@pytest.fixture
def sample_history() -> tuple[Turn, ...]:
    return (
        Turn(role="user", parts=(Part.from_text("Hi"),)),
        Turn(role="model", parts=(Part.from_text("Hello! How can I help?"),)),
    )


@pytest.fixture
def stub_client() -> StubClient:
    return StubClient()
