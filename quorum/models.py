"""Pure dataclasses for the multi-stage answer pipeline. No logic beyond derived fields."""

import time
from dataclasses import dataclass, field
from enum import Enum


class Mode(str, Enum):
    QUICK = "quick"
    FLASH = "flash"
    PRO = "pro"
    HEAVY = "heavy"
    IMAGE_GEN = "image_gen"


class ModelTier(str, Enum):
    FLASH = "flash"
    PRO = "pro"
    IMAGE = "image"


class RunStatus(str, Enum):
    IDLE = "idle"
    DRAFTING = "drafting"
    REFINING = "refining"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Part:
    """One content part: text, or an inline binary payload."""

    text: str | None = None
    mime_type: str | None = None
    data: bytes | None = None

    @classmethod
    def from_text(cls, text: str) -> "Part":
        return cls(text=text)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> "Part":
        return cls(mime_type=mime_type, data=data)

    @property
    def is_text(self) -> bool:
        return self.text is not None


@dataclass(frozen=True)
class Turn:
    role: str              # "user" or "model"
    parts: tuple[Part, ...]


@dataclass(frozen=True)
class Citation:
    uri: str
    title: str


@dataclass(frozen=True)
class ToolConfig:
    search: bool = False


@dataclass(frozen=True)
class ExtraConfig:
    disable_reasoning: bool = False
    enable_search_tool: bool = False


@dataclass(frozen=True)
class PipelineTopology:
    model: ModelTier
    refine_agents: int
    extra_config: ExtraConfig = field(default_factory=ExtraConfig)
    draft_agents: int = 1

    @property
    def is_single_call(self) -> bool:
        return self.refine_agents == 0


@dataclass(frozen=True)
class CompletionRequest:
    model: str
    prior_turns: tuple[Turn, ...]
    new_turn_parts: tuple[Part, ...]
    system_instruction: str
    tool_config: ToolConfig = field(default_factory=ToolConfig)
    disable_reasoning: bool = False


@dataclass
class CompletionResponse:
    content_parts: list[Part] = field(default_factory=list)
    citations: list[Citation] = field(default_factory=list)

    @property
    def raw_text(self) -> str:
        return "".join(p.text for p in self.content_parts if p.text is not None)

    @property
    def is_empty(self) -> bool:
        return not self.content_parts


# Index-aligned with the requests that produced it.
StageResult = list[CompletionResponse]


@dataclass
class FinalResult:
    content_parts: list[Part]
    citations: list[Citation] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.content_parts if p.text is not None)

    @classmethod
    def from_response(cls, response: CompletionResponse) -> "FinalResult":
        return cls(content_parts=list(response.content_parts), citations=list(response.citations))


@dataclass(frozen=True)
class StageEvent:
    status: RunStatus
    label: str


@dataclass
class PipelineRun:
    """State of one submission. Created by a single run() call and discarded afterwards."""

    topology: PipelineTopology
    original_history: tuple[Turn, ...]
    user_parts: tuple[Part, ...]
    draft_result: CompletionResponse | None = None
    refine_results: StageResult | None = None
    final_result: FinalResult | None = None
    status: RunStatus = RunStatus.IDLE
    started_at: float = field(default_factory=time.monotonic)

    @property
    def elapsed_sec(self) -> float:
        return time.monotonic() - self.started_at


@dataclass
class Question:
    text: str
    source: str  # "cli" or file path


@dataclass
class AnswerRecord:
    question: Question
    mode: str
    model: str
    persona: str
    result: FinalResult
    total_duration_sec: float
    title: str | None = None
