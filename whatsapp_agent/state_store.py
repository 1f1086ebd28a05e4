from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

logger = logging.getLogger("wabot.state")

BUSINESS_FIELDS = (
    "company_name",
    "country_city",
    "product_category",
    "usage",
    "size_mm_or_ligne",
    "type_variant",
    "color_finish",
    "quantity",
    "compliance_needs",
    "delivery_urgency",
    "sample_request",
    "branding_logo_need",
)
TRACKING_FIELDS = ("last_intent", "last_reply")
STATE_FIELDS = frozenset(BUSINESS_FIELDS + TRACKING_FIELDS)

ConversationState = Dict[str, Optional[str]]


class StateStore(ABC):
    """Per-sender conversation facts; implementations decide where they live."""

    @abstractmethod
    async def get(self, sender: str) -> ConversationState:
        """Return the sender's state, or an empty record for unknown senders."""

    @abstractmethod
    async def merge(self, sender: str, partial: Mapping[str, Optional[str]]) -> ConversationState:
        """Shallow-overwrite the given fields, stamp updated_at, and return the full record."""


class InMemoryStateStore(StateStore):
    """Process-local state store; contents are lost on restart."""

    def __init__(self) -> None:
        """Purpose: Initialize the empty sender -> state map.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Allocates the map and the lock guarding it.
        Dependencies: threading.Lock for read-modify-write sections.
        Failure Modes: None.
        If Removed: Follow-up questions lose the facts collected on earlier turns.
        Testing Notes: A fresh store returns {} for any sender.
        """
        self._states: Dict[str, ConversationState] = {}
        self._lock = threading.Lock()

    async def get(self, sender: str) -> ConversationState:
        # Return a copy to prevent external mutation of cache.
        with self._lock:
            return dict(self._states.get(sender, {}))

    async def merge(self, sender: str, partial: Mapping[str, Optional[str]]) -> ConversationState:
        """Purpose: Merge newly collected facts into the sender's state.
        Inputs/Outputs: Inputs are sender id and a partial mapping; returns the merged copy.
        Side Effects / State: Replaces the stored record and refreshes updated_at.
        Dependencies: STATE_FIELDS whitelist.
        Failure Modes: None; unknown keys are dropped and logged at debug level.
        If Removed: Collected facts never reach the next prompt.
        Testing Notes: Merging {"quantity": "500"} twice changes only updated_at.
        """
        # Only the fixed field set is stored.
        accepted = {key: value for key, value in partial.items() if key in STATE_FIELDS}
        dropped = sorted(set(partial) - set(accepted))
        if dropped:
            logger.debug("state merge dropped unknown fields=%s", dropped)
        with self._lock:
            merged: ConversationState = {
                **self._states.get(sender, {}),
                **accepted,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            }
            self._states[sender] = merged
            return dict(merged)
