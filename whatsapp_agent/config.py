from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Configuration container for the webhook, model, and guard limits."""
    meta_verify_token: str
    meta_access_token: str
    meta_phone_number_id: str
    meta_graph_api_version: str
    gemini_api_key: str
    gemini_model: str
    max_output_tokens: int
    system_prompt: str
    simulate_only: bool
    generation_timeout_sec: float
    dedup_window_sec: float
    rate_limit_per_window: int
    rate_window_sec: float
    log_level: str


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and the default prompt file.
    Dependencies: Uses os.getenv, _env_int/_env_float helpers and load_system_prompt.
    Failure Modes: Missing required tokens or non-numeric limits raise ValueError.
    If Removed: App cannot configure Meta/Gemini access and fails at startup.
    Testing Notes: Verify defaults, overrides, and the SIMULATE_ONLY relaxation.
    """
    # Meta tokens are optional only in SIMULATE_ONLY mode.
    simulate_only = os.getenv("SIMULATE_ONLY", "false").strip().lower() in TRUE_VALUES
    verify_token = os.getenv("META_VERIFY_TOKEN", "")
    access_token = os.getenv("META_ACCESS_TOKEN", "")
    phone_number_id = os.getenv("META_PHONE_NUMBER_ID", "")
    if not simulate_only:
        missing = [
            name
            for name, value in (
                ("META_VERIFY_TOKEN", verify_token),
                ("META_ACCESS_TOKEN", access_token),
                ("META_PHONE_NUMBER_ID", phone_number_id),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

    api_key = os.getenv("GEMINI_API_KEY") or os.getenv("LLM_API_KEY") or ""
    if not api_key:
        raise ValueError("Either GEMINI_API_KEY or LLM_API_KEY must be provided")

    prompts_dir = (BASE_DIR / "prompts").resolve()
    max_output_tokens = _env_int("MAX_OUTPUT_TOKENS", 300)
    rate_limit = _env_int("RATE_LIMIT_PER_WINDOW", 20)

    return Settings(
        meta_verify_token=verify_token,
        meta_access_token=access_token,
        meta_phone_number_id=phone_number_id,
        meta_graph_api_version=os.getenv("META_GRAPH_API_VERSION", "v20.0"),
        gemini_api_key=api_key,
        gemini_model=os.getenv("GEMINI_MODEL") or os.getenv("MODEL_NAME", "gemini-2.5-flash"),
        max_output_tokens=max_output_tokens,
        system_prompt=os.getenv("SYSTEM_PROMPT") or load_system_prompt(prompts_dir),
        simulate_only=simulate_only,
        generation_timeout_sec=_env_float("GENERATION_TIMEOUT_SEC", 8.0),
        dedup_window_sec=_env_float("DEDUP_WINDOW_SEC", 24 * 60 * 60),
        rate_limit_per_window=rate_limit,
        rate_window_sec=_env_float("RATE_WINDOW_SEC", 60.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def load_system_prompt(prompts_dir: Path) -> str:
    """Read the bundled system prompt, stripping a BOM if present."""
    path = prompts_dir / "system_prompt.txt"
    try:
        text = path.read_text(encoding="utf-8").lstrip("\ufeff").strip()
    except FileNotFoundError:
        raise ValueError("SYSTEM_PROMPT is not set and prompts/system_prompt.txt is missing") from None
    if not text:
        raise ValueError("System prompt is empty")
    return text


def _env_int(name: str, default: int) -> int:
    value = int(os.getenv(name, str(default)))
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer")
    return value


def _env_float(name: str, default: float) -> float:
    value = float(os.getenv(name, str(default)))
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value
