"""Tests for quorum/title.py."""

import pytest

from quorum.models import CompletionResponse
from quorum.providers.base import ServiceError
from quorum.title import generate_title
from tests.conftest import StubClient, text_response


async def test_title_strips_quotes_and_whitespace():
    client = StubClient(lambda request: text_response('  "Config Format Choice"\n'))
    title = await generate_title(client, "test-flash", "Should we use YAML?", "Title it.")
    assert title == "Config Format Choice"


async def test_title_request_shape():
    client = StubClient(lambda request: text_response("T"))
    await generate_title(client, "test-flash", "  Should we use YAML?  ", "Title it.")
    request = client.requests[0]
    assert request.model == "test-flash"
    assert request.system_instruction == "Title it."
    assert request.new_turn_parts[0].text == "Should we use YAML?"
    assert request.prior_turns == ()


async def test_title_falls_back_to_query_when_empty():
    client = StubClient(lambda request: CompletionResponse())
    long_query = "word " * 30
    title = await generate_title(client, "test-flash", long_query, "Title it.")
    assert title.endswith("...")
    assert len(title) <= 43


async def test_title_propagates_service_error():
    def respond(request):
        raise ServiceError("stub", "down")

    with pytest.raises(ServiceError):
        await generate_title(StubClient(respond), "test-flash", "q", "Title it.")
