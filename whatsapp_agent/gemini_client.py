from __future__ import annotations

from typing import Dict, Optional, Tuple

import google.generativeai as genai

from .config import Settings

DEFAULT_SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]

# Transport-level bound; the reply generator applies a stricter one on top.
TRANSPORT_TIMEOUT_SEC = 20.0


class GeminiClient:
    """Thin async wrapper around the Gemini SDK with model caching and safety settings."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK and initialize model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures SDK global API key.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ValueError if API key or model name is missing.
        If Removed: The reply generator has no model to call and every message falls back.
        Testing Notes: Validate missing key raises ValueError.
        """
        # Configure API key; models are built lazily per system instruction.
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        self._default_model = _normalize_model_name(settings.gemini_model)
        if not self._default_model:
            raise ValueError("Gemini model name is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._models: Dict[Tuple[str, str], genai.GenerativeModel] = {}

    async def generate_json(
        self,
        prompt: str,
        system_instruction: str,
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_output_tokens: int = 300,
    ) -> str:
        """Purpose: Request a JSON-only completion for a single user prompt.
        Inputs/Outputs: Inputs are prompt, system instruction and sampling config;
            returns the raw response text (possibly empty).
        Side Effects / State: May add a model to the internal cache.
        Dependencies: genai.GenerativeModel.generate_content_async.
        Failure Modes: SDK/transport errors propagate to the caller.
        If Removed: No replies can be generated.
        Testing Notes: Mock the model and verify the JSON mime type is requested.
        """
        model_name = _normalize_model_name(model) if model else self._default_model
        cache_key = (model_name, system_instruction)
        if cache_key not in self._models:
            self._models[cache_key] = genai.GenerativeModel(
                model_name,
                system_instruction=system_instruction,
            )
        response = await self._models[cache_key].generate_content_async(
            prompt,
            generation_config={
                "temperature": temperature,
                "max_output_tokens": max_output_tokens,
                "response_mime_type": "application/json",
            },
            safety_settings=DEFAULT_SAFETY_SETTINGS,
            request_options={"timeout": TRANSPORT_TIMEOUT_SEC},
        )
        text: Optional[str] = getattr(response, "text", None)
        return (text or "").strip()


def _normalize_model_name(name: Optional[str]) -> str:
    """Strip an optional "models/" prefix and surrounding whitespace."""
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
