"""
Form generation through an OpenAI-compatible chat completion API.

Provider selection:
    ollama            - local Ollama server (OpenAI-compatible /v1 endpoint)
    openai / unset    - OpenAI when an API key is available, otherwise Ollama

Environment variables (see config.py):
    AI_PROVIDER, OPENAI_API_KEY, AI_BASE_URL, AI_MODEL, OLLAMA_BASE_URL
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import httpx
from openai import OpenAI, OpenAIError
from pydantic import ValidationError

import config
from errors import GenerationError
from schemas import FormSchema

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_OLLAMA_MODEL = "llama3"
OLLAMA_API_KEY = "ollama"  # Ollama ignores the key but the client requires one
MODELS_TIMEOUT = 5.0

SYSTEM_PROMPT = """You are a form generation assistant. Output ONLY valid JSON matching the following TypeScript schema:
interface FormSchema {
  id: string; // Generate a unique UUID
  title: string;
  description?: string;
  fields: Array<{
    id: string; // camelCase
    label: string;
    type: 'text' | 'textarea' | 'number' | 'email' | 'select' | 'checkbox' | 'checkbox-group' | 'radio' | 'rating' | 'date' | 'file';
    placeholder?: string;
    required: boolean;
    options?: string[]; // Required for select/radio/checkbox-group
    logic?: Array<{
      condition: string; // The option value that triggers the jump, or "*" for always
      destination: string; // The id of a LATER field to jump to
    }>;
  }>;
  createdAt: number; // Current timestamp
}
Do not include markdown formatting (like ```json). Just the raw JSON string."""

_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?(.*?)\n?\s*```\s*$", re.S)


@dataclass
class GenerationSettings:
    provider: str
    model: str
    base_url: Optional[str] = None
    api_key: Optional[str] = None

    @property
    def is_ollama(self) -> bool:
        return self.provider == "ollama"


def resolve_settings(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
) -> GenerationSettings:
    """Pick provider, model and endpoint from explicit overrides, then the environment."""
    provider = provider or config.AI_PROVIDER
    model = model or config.AI_MODEL
    base_url = base_url or config.AI_BASE_URL

    if provider == "ollama":
        return GenerationSettings(
            provider="ollama",
            model=model or DEFAULT_OLLAMA_MODEL,
            base_url=base_url or config.OLLAMA_BASE_URL,
            api_key=OLLAMA_API_KEY,
        )

    key = api_key or config.OPENAI_API_KEY
    if key:
        return GenerationSettings(
            provider="openai",
            model=model or DEFAULT_OPENAI_MODEL,
            base_url=base_url,
            api_key=key,
        )

    logger.info("No OpenAI API key found. Falling back to local Ollama.")
    return GenerationSettings(
        provider="ollama",
        model=DEFAULT_OLLAMA_MODEL,
        base_url=config.OLLAMA_BASE_URL,
        api_key=OLLAMA_API_KEY,
    )


def get_client(settings: GenerationSettings) -> OpenAI:
    kwargs: Dict[str, Any] = {"api_key": settings.api_key}
    if settings.base_url:
        kwargs["base_url"] = settings.base_url
    return OpenAI(**kwargs)


def _messages(prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


def _native_ollama_url(base_url: str) -> str:
    return re.sub(r"/v1/?$", "", base_url.rstrip("/") + "/")


def unload_model(settings: GenerationSettings) -> None:
    """Ask Ollama to drop the model from memory (keep_alive: 0). Failures are only logged."""
    if not settings.is_ollama:
        return
    url = f"{_native_ollama_url(settings.base_url or config.OLLAMA_BASE_URL).rstrip('/')}/api/chat"
    logger.info("Unloading Ollama model %s (keep_alive: 0)", settings.model)
    try:
        httpx.post(url, json={"model": settings.model, "keep_alive": 0}, timeout=MODELS_TIMEOUT)
    except httpx.HTTPError as e:
        logger.warning("Failed to unload Ollama model %s: %s", settings.model, e)


def generate(prompt: str, settings: GenerationSettings, client: Optional[OpenAI] = None) -> str:
    """Return the raw completion text for a form description."""
    client = client or get_client(settings)
    logger.info("Generating form using %s (%s)", settings.provider, settings.model)
    try:
        completion = client.chat.completions.create(
            model=settings.model,
            messages=_messages(prompt),
            temperature=0.7,
            frequency_penalty=0.1,
        )
    except OpenAIError as e:
        logger.error("Generation error: %s", e)
        raise GenerationError(f"Failed to generate form: {e}") from e
    finally:
        unload_model(settings)
    return completion.choices[0].message.content or ""


def stream_generate(prompt: str, settings: GenerationSettings, client: Optional[OpenAI] = None) -> Iterator[str]:
    """Open a streaming completion and return an iterator over its text chunks.

    The request is sent before this returns, so a failing backend raises
    GenerationError here rather than in the middle of a streamed response.
    """
    client = client or get_client(settings)
    logger.info("Stream-generating form using %s (%s)", settings.provider, settings.model)
    try:
        stream = client.chat.completions.create(
            model=settings.model,
            messages=_messages(prompt),
            temperature=0.7,
            frequency_penalty=0.1,
            stream=True,
        )
    except OpenAIError as e:
        logger.error("Generation error: %s", e)
        unload_model(settings)
        raise GenerationError(f"Failed to generate form: {e}") from e
    return _iter_chunks(stream, settings)


def _iter_chunks(stream, settings: GenerationSettings) -> Iterator[str]:
    try:
        for chunk in stream:
            if not chunk.choices:
                continue
            text = chunk.choices[0].delta.content or ""
            if text:
                yield text
    except OpenAIError as e:
        logger.error("Stream error: %s", e)
        raise GenerationError(f"Failed to generate form: {e}") from e
    finally:
        unload_model(settings)


def strip_code_fences(raw: str) -> str:
    match = _FENCE.match(raw)
    return match.group(1) if match else raw.strip()


def parse_generated_schema(raw: str) -> FormSchema:
    """Turn model output (JSON, optionally inside a markdown fence) into a FormSchema."""
    text = strip_code_fences(raw)
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Model did not return JSON; raw output: %s", raw[:500])
        raise GenerationError(f"Model output is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise GenerationError("Model output is not a JSON object")
    try:
        return FormSchema.model_validate(doc)
    except ValidationError as e:
        raise GenerationError(f"Model output does not match the form schema: {e}") from e


def list_ollama_models(base_url: str) -> Dict[str, Any]:
    """Proxy the OpenAI-compatible model listing of an Ollama server."""
    base_url = base_url.rstrip("/")
    logger.info("Proxying Ollama models request to: %s/models", base_url)
    try:
        response = httpx.get(
            f"{base_url}/models",
            headers={"Content-Type": "application/json"},
            timeout=MODELS_TIMEOUT,
        )
    except httpx.HTTPError as e:
        raise GenerationError(f"Failed to fetch models from Ollama: {e}", status_code=500) from e
    if response.status_code >= 400:
        raise GenerationError(
            f"Ollama returned {response.status_code}: {response.text}",
            status_code=response.status_code,
        )
    return response.json()
