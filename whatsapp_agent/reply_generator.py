"""Structured reply generation on top of the text-generation model.

Every failure cause (transport error, timeout, empty or malformed output, schema
mismatch) collapses to ``None``; callers only see whether a usable reply exists.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Protocol

from pydantic import ValidationError

from .models import GeneratedReply
from .utils import extract_json_block, loads_or_none

logger = logging.getLogger("wabot.generator")

JSON_ONLY_INSTRUCTION = (
    "Return ONLY valid JSON, no markdown, no extra text. "
    "Required keys: reply, intent, fields_collected, fields_missing, notes_for_human."
)
DEFAULT_TIMEOUT_SEC = 8.0


class JsonModelClient(Protocol):
    async def generate_json(
        self,
        prompt: str,
        system_instruction: str,
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_output_tokens: int = 300,
    ) -> str:
        ...


def build_user_prompt(last_message: str, state: Mapping[str, Any], now: Optional[datetime] = None) -> str:
    """Embed the latest customer text, the state snapshot and a timestamp as JSON."""
    payload = {
        "last_customer_message": last_message,
        "state": dict(state),
        "timestamp_iso": (now or datetime.now(timezone.utc)).isoformat(),
    }
    return f"{JSON_ONLY_INSTRUCTION}\n{json.dumps(payload, ensure_ascii=False)}"


def parse_generated_reply(raw: str) -> Optional[GeneratedReply]:
    """Purpose: Parse raw model output into a GeneratedReply with one repair attempt.
    Inputs/Outputs: Input is raw text; output is a validated reply or None.
    Side Effects / State: Logs which path succeeded or failed.
    Dependencies: loads_or_none, extract_json_block, GeneratedReply schema.
    Failure Modes: Returns None when both the direct and the repaired parse fail.
    If Removed: Replies wrapped in prose or code fences are lost to the fallback.
    Testing Notes: Fenced JSON is repaired; prose without braces yields None.
    """
    # Direct parse first, then exactly one repair on the outermost {...} span.
    reply = _validate(loads_or_none(raw))
    if reply is not None:
        return reply
    block = extract_json_block(raw)
    if block is None:
        logger.info("generator parse=failed reason=no_json_object")
        return None
    reply = _validate(loads_or_none(block))
    if reply is None:
        logger.info("generator parse=failed reason=repair_invalid")
        return None
    logger.info("generator parse=repaired")
    return reply


def _validate(data: Any) -> Optional[GeneratedReply]:
    if not isinstance(data, dict):
        return None
    try:
        return GeneratedReply(**data)
    except ValidationError as exc:
        logger.debug("generator schema errors=%s", exc.errors())
        return None


class ReplyGenerator:
    """Turns the latest customer text plus conversation state into a GeneratedReply."""

    def __init__(
        self,
        client: JsonModelClient,
        system_prompt: str,
        model: Optional[str] = None,
        max_output_tokens: int = 300,
        temperature: float = 0.2,
    ) -> None:
        self._client = client
        self._system_prompt = system_prompt
        self._model = model
        self._max_output_tokens = max_output_tokens
        self._temperature = temperature

    async def generate(
        self,
        last_message: str,
        state: Mapping[str, Any],
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
    ) -> Optional[GeneratedReply]:
        """Purpose: Run one bounded generation attempt and parse its output.
        Inputs/Outputs: Inputs are the customer's text, state snapshot and timeout;
            output is a GeneratedReply or None.
        Side Effects / State: One outbound model call; cancelled at the timeout.
        Dependencies: JsonModelClient.generate_json, asyncio.wait_for, parse_generated_reply.
        Failure Modes: Never raises for model failures; all of them return None.
        If Removed: The orchestrator can only ever send the fallback.
        Testing Notes: A client slower than timeout_sec must yield None promptly.
        """
        prompt = build_user_prompt(last_message, state)
        try:
            raw = await asyncio.wait_for(
                self._client.generate_json(
                    prompt,
                    system_instruction=self._system_prompt,
                    model=self._model,
                    temperature=self._temperature,
                    max_output_tokens=self._max_output_tokens,
                ),
                timeout=timeout_sec,
            )
        except asyncio.TimeoutError:
            logger.warning("generator call timed_out after=%ss", timeout_sec)
            return None
        except Exception:
            logger.exception("generator call failed")
            return None
        if not raw:
            logger.info("generator parse=failed reason=empty_output")
            return None
        return parse_generated_reply(raw)
