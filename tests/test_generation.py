import json
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest
from openai import OpenAIError

import config
from errors import GenerationError, UnknownFieldType
from generation import (
    GenerationSettings,
    generate,
    list_ollama_models,
    parse_generated_schema,
    resolve_settings,
    stream_generate,
    strip_code_fences,
)

FORM_JSON = json.dumps(
    {
        "id": "gen-1",
        "title": "Hackathon signup",
        "fields": [
            {"id": "name", "label": "Name", "type": "text", "required": True},
            {"id": "diet", "label": "Diet", "type": "select", "required": False, "options": ["None", "Vegan"]},
        ],
        "createdAt": 0,
    }
)


def _completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


def _chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


@pytest.fixture
def no_env(monkeypatch):
    for name in ("AI_PROVIDER", "OPENAI_API_KEY", "AI_BASE_URL", "AI_MODEL"):
        monkeypatch.setattr(config, name, None)
    monkeypatch.setattr(config, "OLLAMA_BASE_URL", "http://127.0.0.1:11434/v1")


def test_resolve_settings_ollama_defaults(no_env):
    settings = resolve_settings(provider="ollama")
    assert settings.is_ollama
    assert settings.model == "llama3"
    assert settings.base_url == "http://127.0.0.1:11434/v1"


def test_resolve_settings_openai_with_key(no_env):
    settings = resolve_settings(api_key="sk-test")
    assert settings.provider == "openai"
    assert settings.model == "gpt-4o"
    assert settings.api_key == "sk-test"


def test_resolve_settings_falls_back_to_ollama_without_key(no_env):
    settings = resolve_settings(model="gpt-4o-mini")
    assert settings.is_ollama
    assert settings.model == "llama3"


def test_resolve_settings_reads_environment(no_env, monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-env")
    monkeypatch.setattr(config, "AI_MODEL", "gpt-4o-mini")
    settings = resolve_settings()
    assert settings.api_key == "sk-env"
    assert settings.model == "gpt-4o-mini"


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```\n') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_generated_schema_accepts_fenced_json():
    form = parse_generated_schema(f"```json\n{FORM_JSON}\n```")
    assert form.id == "gen-1"
    assert [f.id for f in form.fields] == ["name", "diet"]
    assert form.createdAt > 1_000_000


def test_parse_generated_schema_rejects_non_json():
    with pytest.raises(GenerationError):
        parse_generated_schema("Sure! Here is your form.")
    with pytest.raises(GenerationError):
        parse_generated_schema("[1, 2]")


def test_parse_generated_schema_rejects_bad_shape():
    with pytest.raises(GenerationError):
        parse_generated_schema(json.dumps({"title": "No fields"}))


def test_parse_generated_schema_unknown_type_is_fatal():
    doc = {"title": "T", "fields": [{"id": "sig", "label": "Sign", "type": "signature"}]}
    with pytest.raises(UnknownFieldType):
        parse_generated_schema(json.dumps(doc))


def test_generate_openai_does_not_unload():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion(FORM_JSON)
    settings = GenerationSettings(provider="openai", model="gpt-4o", api_key="sk-test")

    with patch("generation.httpx.post") as post:
        assert generate("a signup form", settings, client=client) == FORM_JSON
    post.assert_not_called()

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    assert kwargs["messages"][1] == {"role": "user", "content": "a signup form"}
    assert kwargs["temperature"] == 0.7


def test_generate_ollama_unloads_model():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion(FORM_JSON)
    settings = GenerationSettings(provider="ollama", model="llama3", base_url="http://localhost:11434/v1/", api_key="ollama")

    with patch("generation.httpx.post") as post:
        generate("x", settings, client=client)
    post.assert_called_once()
    assert post.call_args.args[0] == "http://localhost:11434/api/chat"
    assert post.call_args.kwargs["json"] == {"model": "llama3", "keep_alive": 0}


def test_unload_failure_is_not_raised():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion("{}")
    settings = GenerationSettings(provider="ollama", model="llama3", base_url="http://localhost:11434/v1", api_key="ollama")

    with patch("generation.httpx.post", side_effect=httpx.ConnectError("down")):
        assert generate("x", settings, client=client) == "{}"


def test_stream_generate_yields_text_chunks():
    client = MagicMock()
    client.chat.completions.create.return_value = iter([_chunk('{"a"'), _chunk(None), _chunk(": 1}")])
    settings = GenerationSettings(provider="openai", model="gpt-4o", api_key="sk-test")
    assert "".join(stream_generate("x", settings, client=client)) == '{"a": 1}'
    assert client.chat.completions.create.call_args.kwargs["stream"] is True


def test_stream_generate_raises_before_first_chunk():
    client = MagicMock()
    client.chat.completions.create.side_effect = OpenAIError("upstream down")
    settings = GenerationSettings(provider="ollama", model="llama3", base_url="http://localhost:11434/v1", api_key="ollama")

    with patch("generation.httpx.post") as post:
        with pytest.raises(GenerationError, match="upstream down"):
            stream_generate("x", settings, client=client)
    post.assert_called_once()


def test_stream_generate_unloads_after_last_chunk():
    client = MagicMock()
    client.chat.completions.create.return_value = iter([_chunk("{}")])
    settings = GenerationSettings(provider="ollama", model="llama3", base_url="http://localhost:11434/v1", api_key="ollama")

    with patch("generation.httpx.post") as post:
        chunks = stream_generate("x", settings, client=client)
        post.assert_not_called()
        assert list(chunks) == ["{}"]
    post.assert_called_once()


def test_list_ollama_models_proxies_listing():
    response = httpx.Response(200, json={"data": [{"id": "llama3"}]}, request=httpx.Request("GET", "http://x/v1/models"))
    with patch("generation.httpx.get", return_value=response) as get:
        assert list_ollama_models("http://x/v1/") == {"data": [{"id": "llama3"}]}
    assert get.call_args.args[0] == "http://x/v1/models"
    assert get.call_args.kwargs["timeout"] == 5.0


def test_list_ollama_models_propagates_upstream_status():
    response = httpx.Response(404, text="no such route", request=httpx.Request("GET", "http://x/models"))
    with patch("generation.httpx.get", return_value=response):
        with pytest.raises(GenerationError) as exc_info:
            list_ollama_models("http://x")
    assert exc_info.value.status_code == 404
    assert "no such route" in str(exc_info.value)
