import os

import pytest

from moyamoya.llm import client as client_mod
from moyamoya.llm.client import PROMPTS_DIR, LLMClient, LLMSettings, extract_completion_text
from moyamoya.llm.json_parser import JSONParseError


class FakeResponse:
    def __init__(self, data=None, status_code=200, text=""):
        self._data = data
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = text

    def json(self):
        if self._data is None:
            raise ValueError("not json")
        return self._data


@pytest.fixture
def posts(monkeypatch):
    sent = []
    replies = []

    def fake_post(url, json=None, headers=None, timeout=None, verify=None):
        sent.append({"url": url, "json": json, "headers": headers, "timeout": timeout, "verify": verify})
        return replies.pop(0) if replies else FakeResponse({"choices": [{"message": {"content": " ok "}}]})

    monkeypatch.setattr(client_mod.requests, "post", fake_post)
    return sent, replies


@pytest.fixture
def prompts_dir(tmp_path):
    (tmp_path / "hello.txt").write_text("こんにちは {name} さん", encoding="utf-8")
    (tmp_path / "json.txt").write_text('JSONで返して: {{"name": "{name}"}}', encoding="utf-8")
    return str(tmp_path)


def _openai(**kw):
    base = dict(base_url="https://gw.example.com", api_key="k", model="m")
    base.update(kw)
    return LLMSettings(**base)


@pytest.mark.parametrize(
    "base, expected",
    [
        ("https://gw.example.com", "https://gw.example.com/v1/chat/completions"),
        ("https://gw.example.com/", "https://gw.example.com/v1/chat/completions"),
        ("https://gw.example.com/v1", "https://gw.example.com/v1/chat/completions"),
        ("https://gw.example.com/v1/chat/completions", "https://gw.example.com/v1/chat/completions"),
    ],
)
def test_openai_url_resolution(base, expected):
    assert LLMClient(_openai(base_url=base))._resolve_openai_url() == expected


def test_openai_payload(posts, prompts_dir):
    sent, _ = posts
    llm = LLMClient(_openai(token_field="max_output_tokens", temperature=0.2), prompts_dir=prompts_dir)

    out = llm.run_text("hello.txt", {"name": "たろう"}, max_output_tokens=123)

    assert out == "ok"
    req = sent[0]
    assert req["url"] == "https://gw.example.com/v1/chat/completions"
    assert req["headers"]["Authorization"] == "Bearer k"
    assert req["json"]["max_output_tokens"] == 123
    assert "max_tokens" not in req["json"]
    assert req["json"]["messages"][1]["content"] == "こんにちは たろう さん"
    assert "metadata" not in req["json"]


def test_metadata_added_when_both_credentials_set(posts, prompts_dir):
    sent, _ = posts
    LLMClient(_openai(md_username="u", md_password="p"), prompts_dir=prompts_dir).run_text("hello.txt", {"name": "x"})
    LLMClient(_openai(md_username="u"), prompts_dir=prompts_dir).run_text("hello.txt", {"name": "x"})

    assert sent[0]["json"]["metadata"] == {"username": "u", "pwd": "p"}
    assert "metadata" not in sent[1]["json"]


def test_custom_mode(posts, prompts_dir):
    sent, replies = posts
    replies.append(FakeResponse({"text": "custom reply"}))
    settings = LLMSettings(mode="custom", endpoint="https://llm.example.com/run", header_name="X-Key", header_value="s")

    out = LLMClient(settings, prompts_dir=prompts_dir).run_text("hello.txt", {"name": "x"})

    assert out == "custom reply"
    assert sent[0]["url"] == "https://llm.example.com/run"
    assert sent[0]["headers"]["X-Key"] == "s"
    assert sent[0]["json"]["prompt"] == "こんにちは x さん"


def test_plain_text_response(posts, prompts_dir):
    _, replies = posts
    replies.append(FakeResponse(None, text="raw body"))

    assert LLMClient(_openai(), prompts_dir=prompts_dir).run_text("hello.txt", {"name": "x"}) == "raw body"


def test_http_error_raises(posts, prompts_dir):
    _, replies = posts
    replies.append(FakeResponse(None, status_code=502, text="bad gateway"))

    with pytest.raises(RuntimeError, match="HTTP 502"):
        LLMClient(_openai(), prompts_dir=prompts_dir).run_text("hello.txt", {"name": "x"})


def test_missing_configuration(posts, prompts_dir):
    sent, _ = posts
    with pytest.raises(RuntimeError, match="LLM_BASE_URL is required"):
        LLMClient(_openai(base_url=""), prompts_dir=prompts_dir).run_text("hello.txt", {"name": "x"})
    with pytest.raises(RuntimeError, match="LLM_ENDPOINT is required"):
        LLMClient(LLMSettings(mode="custom"), prompts_dir=prompts_dir).run_text("hello.txt", {"name": "x"})
    assert sent == []


def test_run_json(posts, prompts_dir):
    _, replies = posts
    replies.append(FakeResponse({"choices": [{"text": '```json\n{"name": "x"}\n```'}]}))
    replies.append(FakeResponse({"output": "ごめんなさい"}))
    llm = LLMClient(_openai(), prompts_dir=prompts_dir)

    assert llm.run_json("json.txt", {"name": "x"}) == {"name": "x"}
    with pytest.raises(JSONParseError):
        llm.run_json("json.txt", {"name": "x"})


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("LLM_MODE", "Custom")
    monkeypatch.setenv("LLM_BASE_URL", "https://gw.example.com/v1/")
    monkeypatch.setenv("LLM_TIMEOUT_SEC", "oops")
    monkeypatch.setenv("LLM_VERIFY_SSL", "no")

    s = LLMSettings.from_env()

    assert s.mode == "custom"
    assert s.base_url == "https://gw.example.com/v1"
    assert s.timeout_sec == 30.0
    assert s.verify_ssl is False


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"text": "a"}, "a"),
        ({"output": "b"}, "b"),
        ({"choices": [{"message": {"content": "c"}}]}, "c"),
        ({"choices": [{"text": "d"}]}, "d"),
        ("e", "e"),
    ],
)
def test_extract_completion_text(data, expected):
    assert extract_completion_text(data) == expected


PROMPT_VARIABLES = {
    "audit.txt": ["excerpts"],
    "chat.txt": ["excerpts", "message", "slots_context"],
    "expert_review.txt": ["excerpts", "section_text", "section_title"],
    "generate_funding.txt": ["slots_context"],
    "generate_messages.txt": ["slots_context"],
    "generate_plan.txt": ["slots_context"],
    "generate_profile.txt": ["slots_context"],
    "improve.txt": ["comment", "content", "instruction"],
    "summarize_text.txt": ["text"],
    "summarize_url.txt": ["page_text", "url"],
    "update_summary.txt": ["correction", "current_summary"],
}


def test_every_prompt_is_covered():
    assert sorted(os.listdir(PROMPTS_DIR)) == sorted(PROMPT_VARIABLES)


@pytest.mark.parametrize("name, keys", sorted(PROMPT_VARIABLES.items()))
def test_bundled_prompts_render(name, keys):
    llm = LLMClient(LLMSettings())
    prompt = llm.render_prompt(name, {k: f"<<{k}>>" for k in keys})

    for k in keys:
        assert f"<<{k}>>" in prompt
