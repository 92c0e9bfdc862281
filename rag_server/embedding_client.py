"""Embedding API client with request queuing and retry."""
import asyncio
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from rag_server import config
from rag_server.errors import EmbeddingError

logger = structlog.get_logger()

RETRYABLE_MARKERS = (
    "network",
    "eof",
    "timeout",
    "timed out",
    "econnreset",
    "econnrefused",
    "connection reset",
    "connection refused",
    "socket hang up",
    "rate limit",
    "too many requests",
)
_RETRYABLE_STATUS_PATTERN = re.compile(r"\b(5\d\d|429)\b")


def is_retryable_error(error: BaseException) -> bool:
    """Decide whether a failed embedding request is worth retrying.

    Network failures, HTTP 5xx and rate limiting (429) are transient;
    anything else (bad request, auth, malformed response) is not.
    """
    if isinstance(error, EmbeddingError) and error.status_code is not None:
        return error.status_code >= 500 or error.status_code == 429

    if isinstance(error, httpx.TransportError):
        return True

    message = str(error).lower()
    if any(marker in message for marker in RETRYABLE_MARKERS):
        return True
    return bool(_RETRYABLE_STATUS_PATTERN.search(message))


def _as_vector(value: Any) -> Optional[List[float]]:
    """The value as a list of floats if it is a non-empty list of numbers."""
    if not isinstance(value, list) or not value:
        return None
    if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in value):
        return None
    return [float(x) for x in value]


def parse_embedding(data: Any) -> List[float]:
    """Extract the embedding vector from an API response body.

    Tries the OpenAI-style ``data[0].embedding`` first, then a top-level
    ``embedding`` (Ollama-style).

    Raises:
        EmbeddingError: If neither field holds a non-empty list of numbers
    """
    if isinstance(data, dict):
        items = data.get("data")
        if isinstance(items, list) and items and isinstance(items[0], dict):
            embedding = _as_vector(items[0].get("embedding"))
            if embedding is not None:
                return embedding

        embedding = _as_vector(data.get("embedding"))
        if embedding is not None:
            return embedding

    raise EmbeddingError("no embedding in response")


class EmbeddingClient:
    """Async client for a remote embedding API.

    All calls to ``embed`` are funnelled through one bounded queue drained by
    a single worker task, so at most one request is in flight at a time.
    Each caller still gets its own result or error.
    """

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        model: str = None,
        timeout: float = None,
        max_retries: int = None,
        retry_delay: float = None,
        backoff_factor: float = None,
        queue_size: int = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """Initialize the embedding client.

        Args:
            base_url: API base URL, ``/embeddings`` is appended (default from config)
            api_key: Bearer token, omitted from requests when empty
            model: Embedding model name (default from config)
            timeout: Per-request timeout in seconds
            max_retries: Retries after the first attempt for transient errors
            retry_delay: Initial backoff in seconds
            backoff_factor: Multiplier applied to the delay after each retry
            queue_size: Maximum number of queued requests
            transport: Optional httpx transport (used by tests)
            sleep: Coroutine used to wait between retries (default asyncio.sleep)
        """
        self.base_url = (base_url or config.BASE_LLM_API).rstrip("/")
        self.api_key = config.LLM_API_KEY if api_key is None else api_key
        self.model = model or config.EMBEDDING_MODEL
        self.timeout = timeout or config.EMBEDDING_TIMEOUT
        self.max_retries = config.EMBEDDING_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = config.EMBEDDING_RETRY_DELAY if retry_delay is None else retry_delay
        self.backoff_factor = backoff_factor or config.EMBEDDING_BACKOFF_FACTOR
        self.queue_size = queue_size or config.EMBEDDING_QUEUE_SIZE
        self._transport = transport
        self._sleep = sleep or asyncio.sleep

        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def uses_input_payload(self) -> bool:
        """True for models taking ``{input, model}`` rather than ``{model, prompt}``."""
        return any(marker in self.model for marker in config.OPENAI_STYLE_MODEL_MARKERS)

    def payload_for(self, text: str) -> Dict[str, str]:
        """Build the request body for the configured model family."""
        if self.uses_input_payload:
            return {"input": text, "model": self.model}
        return {"model": self.model, "prompt": text}

    async def embed(self, text: str) -> List[float]:
        """Embed a text, waiting for its turn in the request queue.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingError: If the request fails after exhausting retries
        """
        self._ensure_worker()
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((self.payload_for(text), future))
        return await future

    async def close(self) -> None:
        """Stop the queue worker and fail any request still waiting."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if self._queue is not None:
            while not self._queue.empty():
                _, future = self._queue.get_nowait()
                if not future.done():
                    future.set_exception(EmbeddingError("embedding client closed"))
                self._queue.task_done()

    def _ensure_worker(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.queue_size)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._process_queue())
            logger.debug("embedding_queue_started", queue_size=self.queue_size)

    async def _process_queue(self) -> None:
        while True:
            job: Tuple[Dict[str, str], asyncio.Future] = await self._queue.get()
            payload, future = job
            try:
                if future.cancelled():
                    continue
                try:
                    embedding = await self._request_with_retry(payload)
                except asyncio.CancelledError:
                    if not future.done():
                        future.set_exception(EmbeddingError("embedding client closed"))
                    raise
                except EmbeddingError as e:
                    if not future.done():
                        future.set_exception(e)
                except Exception as e:
                    logger.error("embedding_worker_error", error=str(e), error_type=type(e).__name__)
                    if not future.done():
                        future.set_exception(EmbeddingError(f"Embedding request failed: {e}"))
                else:
                    if not future.done():
                        future.set_result(embedding)
            finally:
                self._queue.task_done()

    async def _request_with_retry(self, payload: Dict[str, str]) -> List[float]:
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_retryable_error),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay, exp_base=self.backoff_factor),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await self._post(payload)
        except (httpx.HTTPError, EmbeddingError, ValueError) as e:
            retryable = is_retryable_error(e)
            logger.error(
                "embedding_request_failed",
                model=self.model,
                attempts=retrying.statistics.get("attempt_number"),
                retryable=retryable,
                error=str(e),
            )
            if isinstance(e, EmbeddingError):
                raise
            raise EmbeddingError(
                f"Embedding request failed: {e}", retryable=retryable
            ) from e

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "embedding_request_retry",
            attempt=retry_state.attempt_number,
            retries_left=self.max_retries - retry_state.attempt_number + 1,
            delay_seconds=retry_state.next_action.sleep,
            error=str(retry_state.outcome.exception()),
        )

    async def _post(self, payload: Dict[str, str]) -> List[float]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            logger.debug(
                "embedding_request",
                model=self.model,
                text_length=len(payload.get("input") or payload.get("prompt") or ""),
            )

            response = await client.post(
                f"{self.base_url}/embeddings",
                json=payload,
                headers=headers,
            )

            if not response.is_success:
                status = response.status_code
                raise EmbeddingError(
                    f"Embedding API error ({status}): {response.text}",
                    status_code=status,
                    retryable=status >= 500 or status == 429,
                )

            embedding = parse_embedding(response.json())

            logger.debug(
                "embedding_response",
                model=self.model,
                dimension=len(embedding),
            )

            return embedding
