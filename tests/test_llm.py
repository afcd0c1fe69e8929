import pytest

from content_backend.api.integrations import llm


class _Response:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        return self._payload


def _anthropic_reply(text):
    return _Response(200, {"content": [{"type": "text", "text": text}]})


def _call():
    return llm.call_llm_json(
        system_prompt="system",
        user_prompt="user",
        api_key="key",
        base_url="https://api.anthropic.com/v1",
        model="claude-test",
        timeout_seconds=5,
    )


def test_extract_json_plain_and_fenced():
    assert llm.extract_json('{"title": "A"}') == {"title": "A"}
    assert llm.extract_json('```json\n{"title": "B"}\n```') == {"title": "B"}


def test_extract_json_with_surrounding_prose():
    assert llm.extract_json('Here you go:\n{"caption": "hi", "hashtags": []}\nThanks!') == {
        "caption": "hi",
        "hashtags": [],
    }


def test_extract_json_rejects_non_objects():
    with pytest.raises(llm.LLMError):
        llm.extract_json("[1, 2, 3]")
    with pytest.raises(llm.LLMError):
        llm.extract_json("no json here")


def test_call_retries_transient_errors(monkeypatch):
    monkeypatch.setenv("PIPELINE_LLM_RETRY_BACKOFF_SECONDS", "0")
    replies = [_Response(529, text="overloaded"), _anthropic_reply('{"title": "ok"}')]
    calls = []

    def _post(url, headers, json, timeout):
        calls.append(url)
        return replies.pop(0)

    monkeypatch.setattr(llm.requests, "post", _post)

    assert _call() == {"title": "ok"}
    assert calls == ["https://api.anthropic.com/v1/messages"] * 2


def test_call_does_not_retry_client_errors(monkeypatch):
    monkeypatch.setenv("PIPELINE_LLM_RETRY_BACKOFF_SECONDS", "0")
    calls = []

    def _post(url, headers, json, timeout):
        calls.append(url)
        return _Response(400, text="bad request")

    monkeypatch.setattr(llm.requests, "post", _post)

    with pytest.raises(llm.LLMError) as excinfo:
        _call()
    assert excinfo.value.status_code == 400
    assert len(calls) == 1


def test_call_requires_api_key():
    with pytest.raises(llm.LLMError, match="ANTHROPIC_API_KEY"):
        llm.call_llm_json(
            system_prompt="s",
            user_prompt="u",
            api_key="",
            base_url="https://api.anthropic.com/v1",
            model="claude-test",
            timeout_seconds=5,
        )
