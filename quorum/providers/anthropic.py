"""Anthropic Claude backend using anthropic SDK with native async."""

import asyncio
import base64
import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import BackendConfig
from quorum.models import CompletionRequest, CompletionResponse, Part, Turn
from quorum.providers.base import CompletionClient, ServiceError

logger = logging.getLogger(__name__)

REVISE_PROMPT = "Revise the answer above as instructed."


def _content_blocks(parts: tuple[Part, ...]) -> list[dict]:
    blocks: list[dict] = []
    for part in parts:
        if part.is_text:
            blocks.append({"type": "text", "text": part.text})
        elif part.mime_type and part.mime_type.startswith("image/"):
            blocks.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": part.mime_type,
                    "data": base64.b64encode(part.data).decode("ascii"),
                },
            })
        else:
            logger.debug("Dropping unsupported %s part for Anthropic", part.mime_type)
    return blocks


def _to_messages(request: CompletionRequest) -> list[dict]:
    """Map turns to Messages API entries. The list always ends on a user turn."""
    turns = list(request.prior_turns)
    if request.new_turn_parts:
        turns.append(Turn(role="user", parts=request.new_turn_parts))
    messages: list[dict] = []
    for turn in turns:
        if turn.role == "model":
            # assistant turns accept text blocks only
            text_parts = tuple(p for p in turn.parts if p.is_text)
            messages.append({"role": "assistant", "content": _content_blocks(text_parts)})
        else:
            messages.append({"role": "user", "content": _content_blocks(turn.parts)})
    # a trailing assistant message would be treated as a prefill
    if messages and messages[-1]["role"] == "assistant":
        messages.append({"role": "user", "content": [{"type": "text", "text": REVISE_PROMPT}]})
    return messages


class AnthropicClient(CompletionClient):
    """Anthropic Claude backend via anthropic SDK."""

    def __init__(self, config: BackendConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ServiceError(config.sdk, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.sdk

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        if request.tool_config.search:
            logger.debug("Search tool is not wired for %s, ignoring", self.name())

        kwargs: dict = {
            "model": request.model,
            "max_tokens": self._config.max_tokens,
            "messages": _to_messages(request),
        }
        if request.system_instruction:
            kwargs["system"] = request.system_instruction

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ServiceError(self.name(), f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ServiceError(self.name(), f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        text_blocks = [b.text for b in response.content or [] if b.type == "text"]

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens

        logger.info("Anthropic %s: %.2fs, %s tokens", request.model, latency, token_count)

        return CompletionResponse(content_parts=[Part.from_text(t) for t in text_blocks])
