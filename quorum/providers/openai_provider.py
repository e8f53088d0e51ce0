"""OpenAI backend using openai SDK with native async. Also serves OpenAI-compatible APIs via base_url."""

import asyncio
import base64
import logging
import os
import time

from openai import AsyncOpenAI

from config.config_loader import BackendConfig
from quorum.models import CompletionRequest, CompletionResponse, Part, Turn
from quorum.providers.base import CompletionClient, ServiceError

logger = logging.getLogger(__name__)


def _user_content(parts: tuple[Part, ...]) -> list[dict]:
    content: list[dict] = []
    for part in parts:
        if part.is_text:
            content.append({"type": "text", "text": part.text})
        elif part.mime_type and part.mime_type.startswith("image/"):
            encoded = base64.b64encode(part.data).decode("ascii")
            content.append({"type": "image_url", "image_url": {"url": f"data:{part.mime_type};base64,{encoded}"}})
        else:
            logger.debug("Dropping unsupported %s part for OpenAI", part.mime_type)
    return content


def _to_messages(request: CompletionRequest) -> list[dict]:
    messages: list[dict] = []
    if request.system_instruction:
        messages.append({"role": "system", "content": request.system_instruction})
    turns = list(request.prior_turns)
    if request.new_turn_parts:
        turns.append(Turn(role="user", parts=request.new_turn_parts))
    for turn in turns:
        if turn.role == "model":
            text = "\n".join(p.text for p in turn.parts if p.is_text)
            messages.append({"role": "assistant", "content": text})
        else:
            messages.append({"role": "user", "content": _user_content(turn.parts)})
    return messages


class OpenAIClient(CompletionClient):
    """OpenAI (or OpenAI-compatible) backend via openai SDK."""

    def __init__(self, config: BackendConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ServiceError(config.sdk, f"Missing API key: {config.api_key_env}")
        self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)

    def name(self) -> str:
        return self._config.sdk

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        if request.tool_config.search:
            logger.debug("Search tool is not available on %s, ignoring", self.name())

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=request.model,
                    messages=_to_messages(request),
                    max_tokens=self._config.max_tokens,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ServiceError(self.name(), f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ServiceError(self.name(), f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            logger.warning("OpenAI %s returned empty content", request.model)
            return CompletionResponse()

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.info("OpenAI %s: %.2fs, %s tokens", request.model, latency, token_count)

        return CompletionResponse(content_parts=[Part.from_text(choice.message.content)])
