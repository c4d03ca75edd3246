"""
LLM Client Infrastructure
==========================

Wrapper for LLM providers providing a clean interface for embedding and
chat-completion operations.

This module abstracts the LLM client implementation following the
Dependency Inversion Principle - the knowledge context depends on
abstractions, not concrete implementations.
"""

import hashlib
import math
import re
import time
from abc import ABC, abstractmethod
from typing import List, Optional

from openai import AsyncOpenAI

from eventdesk.config import Settings, settings as default_settings
from eventdesk.core import LLMException, ConfigurationException
from eventdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class EmbeddingResult:
    """Result of an embedding generation."""

    def __init__(self, embedding: List[float], model: str):
        self.embedding = embedding
        self.model = model
        self.dimension = len(embedding)


class ChatCompletionResult:
    """Result of a chat completion."""

    def __init__(
        self,
        content: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms


class ILLMClient(ABC):
    """
    Interface for LLM client operations.

    Following Interface Segregation Principle - only methods
    actually needed by the application are defined.
    """

    @property
    @abstractmethod
    def encoder_version(self) -> str:
        """Tag identifying the embedding encoder."""

    @abstractmethod
    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """Generate embedding for text."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.2,
        max_tokens: int = 500,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Generate chat completion."""

    async def close(self) -> None:
        """Release network resources."""


class OpenAILLMClient(ILLMClient):
    """
    OpenAI client implementation.

    Works against api.openai.com or any OpenAI-compatible endpoint
    configured through ``openai_base_url``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[Settings] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        self._settings = config or default_settings
        self._api_key = api_key or self._settings.openai_api_key
        if not self._api_key and client is None:
            raise ConfigurationException("OpenAI API key not configured")

        self._client = client or AsyncOpenAI(
            api_key=self._api_key,
            base_url=self._settings.openai_base_url,
        )
        self._model = self._settings.llm_model
        self._embedding_model = self._settings.embedding_model
        self._dimension = self._settings.embedding_dimension
        self._encoder_version = self._settings.resolved_encoder_version

    @property
    def encoder_version(self) -> str:
        return self._encoder_version

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """
        Generate embedding for text using the configured embedding model.

        Args:
            text: Text to embed

        Returns:
            EmbeddingResult with embedding vector

        Raises:
            LLMException: If embedding generation fails
        """
        try:
            response = await self._client.embeddings.create(
                model=self._embedding_model,
                input=text,
                dimensions=self._dimension
            )
            return EmbeddingResult(
                embedding=list(response.data[0].embedding),
                model=self._embedding_model
            )
        except Exception as e:
            raise LLMException(f"Embedding generation failed: {str(e)}")

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.2,
        max_tokens: int = 500,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Generate chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            operation: Operation type for logs (answer, chat_completion)

        Returns:
            ChatCompletionResult with generated text

        Raises:
            LLMException: If completion fails
        """
        start_time = time.perf_counter()

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
        except Exception as e:
            raise LLMException(f"Chat completion failed: {str(e)}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        content = (response.choices[0].message.content or "").strip()
        usage = response.usage

        logger.debug(
            "Chat completion finished",
            extra={
                "operation": operation,
                "model": self._model,
                "latency_ms": latency_ms,
                "prompt_tokens": usage.prompt_tokens if usage else 0,
                "completion_tokens": usage.completion_tokens if usage else 0,
            }
        )

        return ChatCompletionResult(
            content=content,
            model=self._model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            latency_ms=latency_ms
        )

    async def close(self) -> None:
        await self._client.close()


class MockLLMClient(ILLMClient):
    """
    Mock LLM client for development and testing.

    Embeddings are hashed bag-of-words vectors, so texts sharing words
    score higher under cosine similarity. Generation echoes the best
    context passage instead of calling a model.
    """

    _WORD = re.compile(r"[a-z0-9]+")

    def __init__(self, dimension: int = 256, encoder_version: Optional[str] = None):
        self._dimension = dimension
        self._encoder_version = encoder_version or f"mock:hashed-bow:{dimension}"

    @property
    def encoder_version(self) -> str:
        return self._encoder_version

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """Return a deterministic L2-normalised hashed embedding."""
        vector = [0.0] * self._dimension
        for word in self._WORD.findall(text.lower()):
            digest = hashlib.blake2b(word.encode(), digest_size=8).digest()
            index = int.from_bytes(digest[:4], "big") % self._dimension
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[index] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm:
            vector = [v / norm for v in vector]
        return EmbeddingResult(embedding=vector, model="mock-embedding")

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.2,
        max_tokens: int = 500,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Answer with the first context passage found in the prompt."""
        user_content = str(messages[-1].get("content", "")) if messages else ""
        passage = ""
        match = re.search(r"\[1\]\s*(.+?)(?:\n\[\d+\]|\n---|\Z)", user_content, re.DOTALL)
        if match:
            passage = " ".join(match.group(1).split())
        words = passage.split()[:max_tokens]
        content = " ".join(words) if words else "This is a mock LLM response for testing purposes."

        return ChatCompletionResult(
            content=content,
            model="mock-model",
            prompt_tokens=len(user_content.split()),
            completion_tokens=len(content.split()),
            latency_ms=0
        )


def create_llm_client(config: Optional[Settings] = None) -> ILLMClient:
    """Build the LLM client selected by ``llm_provider``."""
    config = config or default_settings
    if config.llm_provider == "openai":
        return OpenAILLMClient(config=config)
    return MockLLMClient(
        dimension=config.embedding_dimension,
        encoder_version=config.resolved_encoder_version
    )
