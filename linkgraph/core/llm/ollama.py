"""
Ollama LLM provider using native ollama-python SDK.
"""

import ollama
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from linkgraph.core.llm.base import LLMProvider
from linkgraph.utils.exceptions import LLMError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


class OllamaLLM(LLMProvider):
    """
    Ollama LLM provider for local models.

    Structured output passes the model's JSON schema as the `format`
    constraint and validates the reply with pydantic.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        timeout: float = 120.0,
    ):
        """
        Initialize Ollama LLM provider.

        Args:
            host: Ollama server URL
            model: Model name (e.g., "llama3.1:8b")
            timeout: Request timeout in seconds
        """
        self.host = host
        self.model = model
        self.timeout = timeout
        self.client = ollama.AsyncClient(host=host, timeout=timeout)

    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        system_prompt: str | None = None,
        max_tokens: int = 1000,
        temperature: float = 0.1,
        **kwargs,
    ) -> BaseModel | str:
        options = {
            "temperature": temperature,
            "num_predict": max_tokens,
            **kwargs.pop("options", {}),
        }

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            response = await self.client.chat(
                model=self.model,
                messages=messages,
                format=response_format.model_json_schema() if response_format else None,
                options=options,
                **kwargs,
            )
        except Exception as e:
            logger.error(f"Ollama API error ({type(e).__name__}): {e}")
            raise LLMError(f"Ollama API error: {e}", {"model": self.model}) from e

        content = response["message"]["content"]
        if not content:
            raise LLMError("Ollama returned empty content", {"model": self.model})

        if response_format is None:
            return content

        try:
            return response_format.model_validate_json(self._extract_json(content))
        except PydanticValidationError as e:
            raise LLMError(
                f"Failed to parse structured output as {response_format.__name__}: {e}",
                {"model": self.model, "raw": content[:500]},
            ) from e

    def _extract_json(self, content: str) -> str:
        """Strip markdown fences some models wrap around JSON."""
        content = content.strip()

        if "```json" in content:
            content = content.split("```json")[1].split("```")[0].strip()
        elif "```" in content:
            content = content.split("```")[1].split("```")[0].strip()

        return content

    async def close(self):
        """Close client (Ollama SDK handles cleanup internally)."""
        pass
