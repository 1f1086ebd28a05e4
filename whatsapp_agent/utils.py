import json
from typing import Any, Optional

LOG_TEXT_LIMIT = 200


def mask_phone(phone: str) -> str:
    """Purpose: Mask a phone number so it can be logged or handed to operators.
    Inputs/Outputs: Input is a raw phone string; output keeps the first and last two
        characters and replaces the middle with at least two asterisks.
    Side Effects / State: None; pure function.
    Dependencies: None; used by the orchestrator logs and escalation records.
    Failure Modes: Inputs of four characters or fewer collapse to "****".
    If Removed: Raw sender numbers leak into logs and handoff records.
    Testing Notes: "905551112233" -> "90********33"; "1234" -> "****".
    """
    # Keep a short head/tail so operators can still tell senders apart.
    if len(phone) <= 4:
        return "****"
    return f"{phone[:2]}{'*' * max(2, len(phone) - 4)}{phone[-2:]}"


def truncate_text(text: str, limit: int = LOG_TEXT_LIMIT) -> str:
    """Clip free text before it is logged."""
    return text[:limit]


def extract_json_block(text: str) -> Optional[str]:
    """Purpose: Extract the outermost JSON object block from an arbitrary string.
    Inputs/Outputs: Input is a raw string; output is JSON substring or None.
    Side Effects / State: None; pure function.
    Dependencies: None beyond built-ins; used by the reply generator repair path.
    Failure Modes: Returns None if braces are missing or inverted.
    If Removed: Model outputs wrapped in prose or markdown fences cannot be repaired.
    Testing Notes: Provide strings with extra text before/after JSON and ensure extraction.
    """
    # Locate the outermost JSON braces to extract a parseable block.
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def loads_or_none(text: str) -> Optional[Any]:
    """Decode JSON text, returning None instead of raising on malformed input."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
