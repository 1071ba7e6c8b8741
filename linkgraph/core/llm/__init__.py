"""
LLM provider abstraction layer for the extraction classifiers.

Supported providers:
- Ollama (native SDK)
- OpenAI (official SDK)
"""

from linkgraph.core.llm.base import LLMProvider
from linkgraph.core.llm.ollama import OllamaLLM
from linkgraph.core.llm.openai import OpenAILLM

__all__ = [
    "LLMProvider",
    "OllamaLLM",
    "OpenAILLM",
]
