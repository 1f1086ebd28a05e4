from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, Optional, Protocol

logger = logging.getLogger("wabot.handoff")


@dataclass(frozen=True)
class EscalationRecord:
    """Handoff summary for a human operator; the sender id is already masked."""
    phone: str
    notes_for_human: str
    latest_customer_message: str
    state: Dict[str, Optional[str]] = field(default_factory=dict)
    request_id: str = ""


class EscalationSink(Protocol):
    def emit(self, record: EscalationRecord) -> None:
        ...


class LoggingEscalationSink:
    """Writes handoff records to the log under the [HUMAN_HANDOFF] tag."""

    def emit(self, record: EscalationRecord) -> None:
        logger.info("[HUMAN_HANDOFF] %s", json.dumps(asdict(record), ensure_ascii=False))
