from concurrent.futures import ThreadPoolExecutor

import pytest

from bizintel import config
from bizintel.errors import UpstreamFailureError, UpstreamTimeoutError
from bizintel.llm_client import (
    CompletionTimeoutError,
    OpenAIClient,
    PermanentCompletionError,
    RetryingCompletionClient,
    TransientCompletionError,
    _BaseSDKAdapter,
    create_completion_client_from_env,
    translate_sdk_error,
)


def _retrying(inner, sleeps, **kwargs) -> RetryingCompletionClient:
    return RetryingCompletionClient(inner, sleep=sleeps.append, **kwargs)


def test_transient_failures_are_retried_with_backoff(fake_client_factory) -> None:
    inner = fake_client_factory(
        TransientCompletionError("503 overloaded"),
        TransientCompletionError("429 rate limit"),
        '{"answer": "ok"}',
    )
    sleeps = []

    assert _retrying(inner, sleeps).send("prompt") == '{"answer": "ok"}'
    assert len(inner.prompts) == 3
    assert len(sleeps) == 2
    assert 1 <= sleeps[0] <= 2
    assert 2 <= sleeps[1] <= 3


def test_permanent_failure_is_not_retried(fake_client_factory) -> None:
    inner = fake_client_factory(PermanentCompletionError("invalid api key"))
    sleeps = []

    with pytest.raises(UpstreamFailureError) as excinfo:
        _retrying(inner, sleeps).send("prompt")

    assert len(inner.prompts) == 1
    assert sleeps == []
    assert excinfo.value.retryable is False


def test_retries_are_bounded(fake_client_factory) -> None:
    inner = fake_client_factory(TransientCompletionError("service unavailable"))
    sleeps = []

    with pytest.raises(UpstreamFailureError) as excinfo:
        _retrying(inner, sleeps, max_attempts=4, backoff_max_seconds=3).send("prompt")

    assert len(inner.prompts) == 4
    assert len(sleeps) == 3
    assert all(delay <= 4 for delay in sleeps)
    assert excinfo.value.retryable is True
    assert excinfo.value.status_code == 500


def test_timeouts_surface_as_upstream_timeout(fake_client_factory) -> None:
    inner = fake_client_factory(CompletionTimeoutError("read timed out"))

    with pytest.raises(UpstreamTimeoutError) as excinfo:
        _retrying(inner, [], max_attempts=2).send("prompt")

    assert len(inner.prompts) == 2
    assert excinfo.value.kind == "upstream_timeout"


def test_circuit_opens_after_repeated_failures(fake_client_factory, clock) -> None:
    inner = fake_client_factory(PermanentCompletionError("bad request"))
    client = _retrying(inner, [], failure_threshold=2, cooldown_seconds=30, clock=clock)

    for _ in range(2):
        with pytest.raises(UpstreamFailureError):
            client.send("prompt")
    with pytest.raises(UpstreamFailureError) as excinfo:
        client.send("prompt")

    assert len(inner.prompts) == 2
    assert "circuit" in excinfo.value.message

    clock.advance(31)
    inner.replies = ['{"answer": "back"}']
    assert client.send("prompt") == '{"answer": "back"}'


def test_concurrent_failures_are_all_counted(fake_client_factory) -> None:
    inner = fake_client_factory(PermanentCompletionError("bad request"))
    client = _retrying(inner, [], failure_threshold=1000)

    def call(_):
        with pytest.raises(UpstreamFailureError):
            client.send("prompt")

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(call, range(200)))

    assert client._failure_count == 200

    client._mark_success()
    assert client._failure_count == 0


def test_translate_sdk_error_by_message() -> None:
    assert isinstance(translate_sdk_error(RuntimeError("[503 Service Unavailable]")), TransientCompletionError)
    assert isinstance(translate_sdk_error(RuntimeError("The model is overloaded")), TransientCompletionError)
    assert isinstance(translate_sdk_error(ValueError("unknown model")), PermanentCompletionError)


class _ScriptedAdapter(_BaseSDKAdapter):
    def __init__(self, outcome) -> None:
        super().__init__(model="test-model")
        self.outcome = outcome

    def _complete(self, prompt, timeout):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def test_adapter_tags_failures() -> None:
    with pytest.raises(PermanentCompletionError):
        _ScriptedAdapter("").send("prompt")
    with pytest.raises(TransientCompletionError):
        _ScriptedAdapter(RuntimeError("429 Too Many Requests")).send("prompt")
    assert _ScriptedAdapter("text").send("prompt") == "text"


def test_factory_selects_provider(monkeypatch) -> None:
    monkeypatch.setattr(config, "AI_PROVIDER", "openai")
    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-test")
    assert isinstance(create_completion_client_from_env(), OpenAIClient)

    monkeypatch.setattr(config, "AI_PROVIDER", "anthropic")
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "")
    with pytest.raises(RuntimeError):
        create_completion_client_from_env()

    monkeypatch.setattr(config, "AI_PROVIDER", "gemini")
    with pytest.raises(RuntimeError):
        create_completion_client_from_env()
