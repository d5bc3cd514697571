import asyncio
from typing import List

import openai
from openai import AsyncOpenAI
import structlog

from rentalscout.core.config import settings
from rentalscout.core.errors import EmbeddingUnavailable
from rentalscout.core.retry import call_with_retry

logger = structlog.get_logger()

TRANSIENT_OPENAI_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class EmbeddingService:
    """Turns free text into a fixed-length dense vector.

    Two providers: the OpenAI embeddings API and a local sentence-transformers
    model. Either way the output must have exactly ``dimensions`` entries.
    """

    def __init__(
        self,
        provider: str | None = None,
        model_name: str | None = None,
        dimensions: int | None = None,
        client: AsyncOpenAI | None = None,
        timeout: float | None = None,
        attempts: int | None = None,
        backoff: float | None = None,
    ):
        self.provider = provider or settings.EMBEDDING_PROVIDER
        self.model_name = model_name or settings.EMBEDDING_MODEL
        self.dimensions = dimensions or settings.EMBEDDING_DIMENSIONS
        self.timeout = settings.EMBEDDING_TIMEOUT if timeout is None else timeout
        self.attempts = settings.MAX_RETRIES if attempts is None else attempts
        self.backoff = settings.RETRY_BACKOFF if backoff is None else backoff
        self._client = client
        self._model = None

        if self.provider not in ("openai", "sentence-transformers"):
            raise ValueError(f"Unknown embedding provider: {self.provider}")

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            # Retries and timeouts are owned by call_with_retry, not the SDK
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, max_retries=0, timeout=self.timeout)
        return self._client

    def _local_model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
            logger.info("Embedding model loaded")
        return self._model

    async def _embed_openai(self, text: str) -> List[float]:
        response = await self.client.embeddings.create(model=self.model_name, input=text)
        return list(response.data[0].embedding)

    async def _embed_local(self, text: str, is_query: bool) -> List[float]:
        # E5 models require specific prefixes
        prefix = "query: " if is_query else "passage: "
        loop = asyncio.get_running_loop()
        try:
            model = self._local_model()
            vector = await loop.run_in_executor(None, model.encode, prefix + text)
        except (OSError, RuntimeError) as e:
            logger.error("Local embedding model failed", model=self.model_name, error=repr(e))
            raise EmbeddingUnavailable(f"Local embedding model unavailable: {e}") from e
        return vector.tolist()

    async def embed(self, text: str, is_query: bool = True) -> List[float]:
        if not text or not text.strip():
            raise EmbeddingUnavailable("Cannot embed empty text")

        async def attempt() -> List[float]:
            if self.provider == "openai":
                return await self._embed_openai(text)
            return await self._embed_local(text, is_query)

        try:
            vector = await call_with_retry(
                attempt,
                attempts=self.attempts,
                backoff=self.backoff,
                timeout=self.timeout,
                retry_on=TRANSIENT_OPENAI_ERRORS,
                operation="embed",
            )
        except (asyncio.TimeoutError, openai.OpenAIError) as e:
            logger.error("Embedding failed", provider=self.provider, error=repr(e))
            raise EmbeddingUnavailable(f"Embedding service unavailable: {e}") from e

        if len(vector) != self.dimensions:
            raise EmbeddingUnavailable(
                f"Embedding has {len(vector)} dimensions, expected {self.dimensions}",
                model=self.model_name,
            )
        return vector
