"""Gemini backend using google-genai SDK with native async."""

import asyncio
import logging
import os
import time

from google import genai
from google.genai import types as genai_types

from config.config_loader import BackendConfig
from quorum.models import Citation, CompletionRequest, CompletionResponse, Part, Turn
from quorum.providers.base import CompletionClient, ServiceError

logger = logging.getLogger(__name__)


def _to_genai_part(part: Part) -> genai_types.Part:
    if part.is_text:
        return genai_types.Part(text=part.text)
    return genai_types.Part(inline_data=genai_types.Blob(mime_type=part.mime_type, data=part.data))


def _to_contents(request: CompletionRequest) -> list[genai_types.Content]:
    turns = list(request.prior_turns)
    if request.new_turn_parts:
        turns.append(Turn(role="user", parts=request.new_turn_parts))
    return [
        genai_types.Content(role=turn.role, parts=[_to_genai_part(p) for p in turn.parts])
        for turn in turns
    ]


def _from_genai_parts(parts) -> list[Part]:
    converted: list[Part] = []
    for p in parts or []:
        if getattr(p, "text", None) is not None:
            converted.append(Part.from_text(p.text))
        elif getattr(p, "inline_data", None) is not None and p.inline_data.data is not None:
            converted.append(Part.from_bytes(p.inline_data.data, p.inline_data.mime_type or "application/octet-stream"))
    return converted


def _citations(candidate) -> list[Citation]:
    metadata = getattr(candidate, "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []
    citations: list[Citation] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is not None and web.uri:
            citations.append(Citation(uri=web.uri, title=web.title or web.uri))
    return citations


class GeminiClient(CompletionClient):
    """Google Gemini backend via google-genai SDK."""

    def __init__(self, config: BackendConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ServiceError(config.sdk, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.sdk

    def _generate_config(self, request: CompletionRequest) -> genai_types.GenerateContentConfig:
        kwargs: dict = {
            "system_instruction": request.system_instruction or None,
            "max_output_tokens": self._config.max_tokens,
        }
        if request.disable_reasoning:
            kwargs["thinking_config"] = genai_types.ThinkingConfig(thinking_budget=0)
        if request.tool_config.search:
            kwargs["tools"] = [genai_types.Tool(google_search=genai_types.GoogleSearch())]
        if request.model in self._config.image_models:
            kwargs["response_modalities"] = ["IMAGE", "TEXT"]
        return genai_types.GenerateContentConfig(**kwargs)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=request.model,
                    contents=_to_contents(request),
                    config=self._generate_config(request),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ServiceError(self.name(), f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ServiceError(self.name(), f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        candidate = response.candidates[0] if response.candidates else None
        if candidate is None or candidate.content is None:
            logger.warning("Gemini %s returned no candidate content", request.model)
            return CompletionResponse()

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.info("Gemini %s: %.2fs, %s tokens", request.model, latency, token_count)

        return CompletionResponse(
            content_parts=_from_genai_parts(candidate.content.parts),
            citations=_citations(candidate),
        )
