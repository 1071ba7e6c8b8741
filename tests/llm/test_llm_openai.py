"""
Tests for the OpenAI LLM provider with a mocked SDK client.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from linkgraph.core.llm.openai import OpenAILLM
from linkgraph.models.extraction import EntityCandidate, EntityCandidates
from linkgraph.utils.exceptions import LLMError, ValidationError


def _response(parsed=None, content=None):
    message = MagicMock()
    message.parsed = parsed
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


@pytest.fixture
def llm():
    provider = OpenAILLM(api_key="test-key", model="gpt-4o-mini")
    provider.client = MagicMock()
    provider.client.chat.completions.parse = AsyncMock()
    provider.client.chat.completions.create = AsyncMock()
    provider.client.close = AsyncMock()
    return provider


@pytest.mark.unit
@pytest.mark.asyncio
class TestOpenAILLM:
    async def test_structured_output(self, llm):
        candidates = EntityCandidates(entities=[EntityCandidate(text="React", type="technology")])
        llm.client.chat.completions.parse.return_value = _response(parsed=candidates)

        result = await llm.complete(
            "Extract entities", response_format=EntityCandidates, system_prompt="You extract."
        )

        assert result is candidates
        kwargs = llm.client.chat.completions.parse.call_args.kwargs
        assert kwargs["response_format"] is EntityCandidates
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"][0] == {"role": "system", "content": "You extract."}
        assert kwargs["messages"][1] == {"role": "user", "content": "Extract entities"}

    async def test_plain_text(self, llm):
        llm.client.chat.completions.create.return_value = _response(content="hello")

        assert await llm.complete("Say hello", temperature=0.0) == "hello"
        assert llm.client.chat.completions.create.call_args.kwargs["temperature"] == 0.0

    async def test_empty_prompt_rejected(self, llm):
        with pytest.raises(ValidationError):
            await llm.complete("   ")

    async def test_empty_parsed_response(self, llm):
        llm.client.chat.completions.parse.return_value = _response(parsed=None)

        with pytest.raises(LLMError):
            await llm.complete("Extract", response_format=EntityCandidates)

    async def test_api_error_wrapped(self, llm):
        llm.client.chat.completions.create.side_effect = RuntimeError("rate limited")

        with pytest.raises(LLMError) as exc_info:
            await llm.complete("Say hello")

        assert "rate limited" in str(exc_info.value)

    async def test_close(self, llm):
        await llm.close()
        llm.client.close.assert_awaited_once()
