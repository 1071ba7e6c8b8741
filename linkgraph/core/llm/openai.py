"""
OpenAI LLM provider using official SDK.
"""

from openai import AsyncOpenAI
from pydantic import BaseModel

from linkgraph.core.llm.base import LLMProvider
from linkgraph.utils.exceptions import LLMError, ValidationError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


class OpenAILLM(LLMProvider):
    """
    OpenAI LLM provider.

    Structured output goes through the SDK's parse API so the response is
    validated against the requested pydantic model server side.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout: float = 120.0,
    ):
        """
        Initialize OpenAI LLM provider.

        Args:
            api_key: OpenAI API key
            model: Model name (e.g., "gpt-4o-mini")
            base_url: Optional custom base URL (OpenAI-compatible gateways)
            timeout: Request timeout in seconds
        """
        self.model = model
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        system_prompt: str | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.1,
        **kwargs,
    ) -> BaseModel | str:
        """
        Generate completion using OpenAI.

        Raises:
            ValidationError: If the prompt is empty
            LLMError: If the API call fails or returns nothing usable
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        params = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            **kwargs,
        }

        try:
            if response_format:
                response = await self.client.chat.completions.parse(
                    **params, response_format=response_format
                )
                parsed = response.choices[0].message.parsed
                if parsed is None:
                    raise LLMError("OpenAI returned empty parsed response", {"model": self.model})
                return parsed

            response = await self.client.chat.completions.create(**params)
            content = response.choices[0].message.content
            if not content:
                raise LLMError("OpenAI returned empty content", {"model": self.model})
            return content
        except LLMError:
            raise
        except Exception as e:
            logger.error(f"OpenAI API error ({type(e).__name__}): {e}")
            raise LLMError(f"OpenAI API error: {e}", {"model": self.model}) from e

    async def close(self):
        """Close OpenAI client."""
        await self.client.close()
