from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

import anthropic
import openai
from openai import AzureOpenAI, OpenAI
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential, wait_random

from bizintel import config
from bizintel.errors import UpstreamFailureError, UpstreamTimeoutError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a business analysis assistant. Return a single JSON object with no markdown."
TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504, 529}
TRANSIENT_MARKERS = ("503", "429", "overloaded", "unavailable", "rate limit")


class TransientCompletionError(RuntimeError):
    """The completion service asked us to come back later."""


class CompletionTimeoutError(TransientCompletionError):
    pass


class PermanentCompletionError(RuntimeError):
    pass


def is_transient_message(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in TRANSIENT_MARKERS)


def translate_sdk_error(exc: Exception) -> RuntimeError:
    if isinstance(exc, (openai.APITimeoutError, anthropic.APITimeoutError)):
        return CompletionTimeoutError(str(exc))
    if isinstance(
        exc,
        (
            openai.RateLimitError,
            openai.APIConnectionError,
            openai.InternalServerError,
            anthropic.RateLimitError,
            anthropic.APIConnectionError,
            anthropic.InternalServerError,
        ),
    ):
        return TransientCompletionError(str(exc))
    status_code = getattr(exc, "status_code", None)
    if status_code in TRANSIENT_STATUS_CODES or is_transient_message(str(exc)):
        return TransientCompletionError(str(exc))
    return PermanentCompletionError(str(exc))


class CompletionClient(ABC):
    @abstractmethod
    def send(self, prompt: str, timeout: int = 60) -> str:
        raise NotImplementedError


class _BaseSDKAdapter(CompletionClient):
    def __init__(self, model: str) -> None:
        self.model = model

    @abstractmethod
    def _complete(self, prompt: str, timeout: int) -> str | None:
        raise NotImplementedError

    def send(self, prompt: str, timeout: int = 60) -> str:
        try:
            content = self._complete(prompt, timeout)
        except (TransientCompletionError, PermanentCompletionError):
            raise
        except Exception as exc:
            raise translate_sdk_error(exc) from exc
        if not content:
            raise PermanentCompletionError("Empty response from completion service.")
        return content


class OpenAIClient(_BaseSDKAdapter):
    def __init__(self, api_key: str, model: str) -> None:
        super().__init__(model=model)
        self.client = OpenAI(api_key=api_key)

    def _complete(self, prompt: str, timeout: int) -> str | None:
        response = self.client.chat.completions.create(
            model=self.model,
            temperature=0,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            timeout=timeout,
        )
        return response.choices[0].message.content


class AzureOpenAIClient(OpenAIClient):
    def __init__(self, endpoint: str, api_key: str, deployment: str) -> None:
        _BaseSDKAdapter.__init__(self, model=deployment)
        self.client = AzureOpenAI(api_key=api_key, azure_endpoint=endpoint, api_version="2024-02-15-preview")


class AnthropicClient(_BaseSDKAdapter):
    def __init__(self, api_key: str, model: str, max_tokens: int = 4096) -> None:
        super().__init__(model=model)
        self.max_tokens = max_tokens
        self.client = anthropic.Anthropic(api_key=api_key)

    def _complete(self, prompt: str, timeout: int) -> str | None:
        message = self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
            timeout=timeout,
        )
        if not message.content:
            return None
        return message.content[0].text.strip()


class RetryingCompletionClient(CompletionClient):
    """Wraps a client with bounded retry and a circuit breaker.

    Only transient failures are retried, with exponential backoff plus up to
    one second of jitter. Once attempts run out the failure surfaces as an
    UpstreamFailureError (or UpstreamTimeoutError). After
    ``failure_threshold`` consecutive failed calls the circuit opens for
    ``cooldown_seconds`` and calls fail fast.
    """

    def __init__(
        self,
        client: CompletionClient,
        max_attempts: int = 5,
        backoff_max_seconds: float = 16,
        timeout: int = 60,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.max_attempts = max_attempts
        self.backoff_max_seconds = backoff_max_seconds
        self.timeout = timeout
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._sleep = sleep
        self._clock = clock
        self._failure_count = 0
        self._open_until = 0.0
        self._lock = threading.Lock()

    def _check_circuit(self) -> None:
        with self._lock:
            is_open = self._clock() < self._open_until
        if is_open:
            raise UpstreamFailureError("Completion service circuit is open. Try again later.", retryable=True)

    def _mark_success(self) -> None:
        with self._lock:
            self._failure_count = 0
            self._open_until = 0.0

    def _mark_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            opened = self._failure_count >= self.failure_threshold
            if opened:
                self._open_until = self._clock() + self.cooldown_seconds
        if opened:
            logger.warning("Completion circuit opened for %ss", self.cooldown_seconds)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "Completion attempt %d/%d failed (%s); retrying in %.1fs",
            retry_state.attempt_number,
            self.max_attempts,
            exc,
            delay,
        )

    def send(self, prompt: str, timeout: int | None = None) -> str:
        self._check_circuit()
        retrying = Retrying(
            retry=retry_if_exception_type(TransientCompletionError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=self.backoff_max_seconds) + wait_random(0, 1),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            text = retrying(self.client.send, prompt, timeout or self.timeout)
        except CompletionTimeoutError as exc:
            self._mark_failure()
            raise UpstreamTimeoutError(f"Completion service timed out: {exc}") from exc
        except TransientCompletionError as exc:
            self._mark_failure()
            raise UpstreamFailureError(f"Completion service unavailable after retries: {exc}", retryable=True) from exc
        except PermanentCompletionError as exc:
            self._mark_failure()
            raise UpstreamFailureError(f"Completion service failed: {exc}", retryable=False) from exc
        self._mark_success()
        return text


def create_completion_client_from_env() -> CompletionClient:
    provider = config.AI_PROVIDER
    has_openai = bool(config.OPENAI_API_KEY)
    has_azure = bool(config.AZURE_OPENAI_ENDPOINT and config.AZURE_OPENAI_API_KEY and config.AZURE_OPENAI_DEPLOYMENT)
    has_anthropic = bool(config.ANTHROPIC_API_KEY)

    def openai_client() -> CompletionClient:
        return OpenAIClient(api_key=config.OPENAI_API_KEY, model=config.OPENAI_MODEL)

    def azure_client() -> CompletionClient:
        return AzureOpenAIClient(
            endpoint=config.AZURE_OPENAI_ENDPOINT,
            api_key=config.AZURE_OPENAI_API_KEY,
            deployment=config.AZURE_OPENAI_DEPLOYMENT,
        )

    def anthropic_client() -> CompletionClient:
        return AnthropicClient(api_key=config.ANTHROPIC_API_KEY, model=config.ANTHROPIC_MODEL)

    if provider == "openai":
        if has_openai:
            return openai_client()
        if has_azure:
            return azure_client()
        raise RuntimeError("OpenAI configuration missing and Azure fallback is not configured.")

    if provider == "azure":
        if has_azure:
            return azure_client()
        if has_openai:
            return openai_client()
        raise RuntimeError("Azure configuration missing and OpenAI fallback is not configured.")

    if provider == "anthropic":
        if has_anthropic:
            return anthropic_client()
        raise RuntimeError("ANTHROPIC_API_KEY is not set.")

    raise RuntimeError("Unsupported AI_PROVIDER. Use 'openai', 'azure' or 'anthropic'.")


def create_resilient_client_from_env() -> RetryingCompletionClient:
    return RetryingCompletionClient(
        create_completion_client_from_env(),
        max_attempts=config.LLM_MAX_ATTEMPTS,
        backoff_max_seconds=config.LLM_BACKOFF_MAX_SECONDS,
        timeout=config.LLM_TIMEOUT_SECONDS,
        failure_threshold=config.LLM_FAILURE_THRESHOLD,
        cooldown_seconds=config.LLM_COOLDOWN_SECONDS,
    )
