"""Inbound message orchestration for the WhatsApp sales assistant.

Role:
    Runs every message of a webhook delivery through the same ordered steps and
    decides the single outbound action for it. Messages are independent: a failed
    send is recorded on the batch result and the next message still runs.

Per-message flow:
    Guard:
        Duplicate ids and rate-limited senders are dropped before any work.
    Kind filter:
        Only text messages with a body are answered.
    Generation:
        Loads state, asks the reply generator under a fixed timeout.
    Merge:
        A usable reply merges fields_collected, last_intent and last_reply into
        state before dispatch. The fallback path merges nothing.
    Dispatch:
        handoff -> acknowledgement + escalation record; otherwise reply verbatim;
        no reply -> clarifying fallback.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional

from .escalation import EscalationRecord, EscalationSink
from .guard import GuardDecision, MessageGuard
from .meta_client import DispatchFailure, MessageSender
from .models import GeneratedReply, InboundMessage, SimulateResponse
from .reply_generator import ReplyGenerator
from .state_store import StateStore
from .utils import mask_phone, truncate_text

logger = logging.getLogger("wabot.orchestrator")

HANDOFF_INTENT = "handoff"
GENERATION_TIMEOUT_SEC = 8.0

FALLBACK_REPLY = (
    "Teşekkürler. Size doğru teklif hazırlamak için kullanım alanı ve ölçü (mm) "
    "bilgisini paylaşır mısınız?"
)
HANDOFF_REPLY = (
    "Tamam. Yetkili arkadaşım devreye girsin. Ürün tipi + ölçü (mm) + adet yazar mısınız?"
)
SIMULATE_FALLBACK_REPLY = (
    "Anladım. Hangi ürün için kullanacaksınız ve kaç mm/ligne ölçü istiyorsunuz?"
)


class MessageOutcome(str, Enum):
    DUPLICATE = "duplicate"
    RATE_LIMITED = "rate_limited"
    UNSUPPORTED_KIND = "unsupported_kind"
    FALLBACK = "fallback"
    HANDOFF = "handoff"
    REPLIED = "replied"


@dataclass
class MessageResult:
    message_id: str
    outcome: MessageOutcome
    dispatch_error: Optional[str] = None

    @property
    def dispatched(self) -> bool:
        return self.outcome in _DISPATCHING_OUTCOMES and self.dispatch_error is None


_DISPATCHING_OUTCOMES = {MessageOutcome.FALLBACK, MessageOutcome.HANDOFF, MessageOutcome.REPLIED}


@dataclass
class BatchResult:
    """Per-message results of one webhook delivery, in delivery order."""
    results: List[MessageResult] = field(default_factory=list)

    @property
    def dispatch_failures(self) -> List[MessageResult]:
        return [result for result in self.results if result.dispatch_error is not None]

    @property
    def processed(self) -> int:
        return sum(1 for result in self.results if result.outcome in _DISPATCHING_OUTCOMES)


def is_handoff(reply: GeneratedReply) -> bool:
    return reply.intent.lower() == HANDOFF_INTENT


class InboundOrchestrator:
    def __init__(
        self,
        guard: MessageGuard,
        state_store: StateStore,
        generator: ReplyGenerator,
        sender: MessageSender,
        escalations: EscalationSink,
        generation_timeout_sec: float = GENERATION_TIMEOUT_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Purpose: Wire the guard, state store, generator, sender and escalation sink.
        Inputs/Outputs: Collaborators plus the generation timeout and a clock; no return.
        Side Effects / State: None; all mutable state lives in the collaborators.
        Dependencies: MessageGuard, StateStore, ReplyGenerator, MessageSender, EscalationSink.
        Failure Modes: None at init.
        If Removed: The webhook route has nothing to hand deliveries to.
        Testing Notes: Build with fakes and a fixed clock to drive guard windows.
        """
        self._guard = guard
        self._state_store = state_store
        self._generator = generator
        self._sender = sender
        self._escalations = escalations
        self._generation_timeout = generation_timeout_sec
        self._clock = clock

    async def process_batch(self, messages: Iterable[InboundMessage], request_id: str = "") -> BatchResult:
        """Purpose: Process one delivery's messages in order, isolating each one.
        Inputs/Outputs: Inputs are the ordered messages and a request id for logs;
            output is a BatchResult with one entry per message.
        Side Effects / State: Sweeps expired dedup ids, mutates guard and state, sends.
        Dependencies: _process_message.
        Failure Modes: Any error raised by the sender is caught per message and
            recorded as dispatch_error; guard, state and generator errors propagate.
        If Removed: Webhook deliveries are acknowledged without replies.
        Testing Notes: A failing send on the 2nd of 3 messages leaves 1st and 3rd sent.
        """
        # One clock reading per delivery; sweep before any check.
        now = self._clock()
        swept = self._guard.sweep(now)
        if swept:
            logger.debug("request=%s dedup_swept=%s remaining=%s", request_id, swept, self._guard.seen_count())
        batch = BatchResult()
        for message in messages:
            result = await self._process_message(message, now, request_id)
            logger.info(
                "request=%s message_id=%s outcome=%s dispatched=%s",
                request_id,
                message.message_id,
                result.outcome.value,
                result.dispatched,
            )
            batch.results.append(result)
        return batch

    async def _process_message(self, message: InboundMessage, now: float, request_id: str) -> MessageResult:
        masked = mask_phone(message.sender)
        decision = self._guard.check(message.message_id, message.sender, now)
        if decision is GuardDecision.DUPLICATE:
            logger.info("Duplicate message ignored id=%s", message.message_id)
            return MessageResult(message.message_id, MessageOutcome.DUPLICATE)
        if decision is GuardDecision.RATE_LIMITED:
            logger.warning("Rate limit exceeded for phone=%s", masked)
            return MessageResult(message.message_id, MessageOutcome.RATE_LIMITED)
        if message.kind != "text" or not message.text:
            logger.info("Ignoring non-text inbound message type=%s from=%s", message.kind, masked)
            return MessageResult(message.message_id, MessageOutcome.UNSUPPORTED_KIND)

        state = await self._state_store.get(message.sender)
        reply = await self._generator.generate(message.text, state, timeout_sec=self._generation_timeout)

        if reply is None:
            result = MessageResult(message.message_id, MessageOutcome.FALLBACK)
            return await self._dispatch(result, message.sender, FALLBACK_REPLY)

        merged = await self._state_store.merge(
            message.sender,
            {
                **reply.fields_collected,
                "last_intent": reply.intent,
                "last_reply": reply.reply,
            },
        )

        if is_handoff(reply):
            result = await self._dispatch(
                MessageResult(message.message_id, MessageOutcome.HANDOFF),
                message.sender,
                HANDOFF_REPLY,
            )
            self._escalations.emit(
                EscalationRecord(
                    phone=masked,
                    notes_for_human=reply.notes_for_human,
                    latest_customer_message=truncate_text(message.text),
                    state=merged,
                    request_id=request_id,
                )
            )
            return result

        result = MessageResult(message.message_id, MessageOutcome.REPLIED)
        return await self._dispatch(result, message.sender, reply.reply)

    async def _dispatch(self, result: MessageResult, to: str, body: str) -> MessageResult:
        try:
            await self._sender.send_text(to, body)
        except DispatchFailure as exc:
            logger.error("dispatch failed message_id=%s to=%s error=%s", result.message_id, mask_phone(to), exc)
            result.dispatch_error = str(exc)
        except Exception as exc:
            logger.exception("dispatch crashed message_id=%s to=%s", result.message_id, mask_phone(to))
            result.dispatch_error = f"{type(exc).__name__}: {exc}"
        return result

    async def simulate(self, sender: str, text: str) -> SimulateResponse:
        """Purpose: Dry-run generation for one message without guard or outbound send.
        Inputs/Outputs: Inputs are sender id and text; output is a SimulateResponse.
        Side Effects / State: Merges state when the model returns a usable reply.
        Dependencies: ReplyGenerator, StateStore.
        Failure Modes: A missing reply returns the simulated fallback payload.
        If Removed: Prompt changes cannot be tried without a live WhatsApp number.
        Testing Notes: Failing generator -> intent "qualify" and no state change.
        """
        logger.info("SIMULATE_IN from=%s text=%s", mask_phone(sender), truncate_text(text))
        state = await self._state_store.get(sender)
        reply = await self._generator.generate(text, state, timeout_sec=self._generation_timeout)
        if reply is None:
            output = simulated_fallback()
        else:
            output = SimulateResponse(
                reply=reply.reply,
                intent=reply.intent,
                fields_collected=list(reply.fields_collected.keys()),
                fields_missing=reply.fields_missing,
                notes_for_human=reply.notes_for_human,
            )
            await self._state_store.merge(
                sender,
                {**reply.fields_collected, "last_intent": reply.intent, "last_reply": reply.reply},
            )
        logger.info("SIMULATE_OUT intent=%s reply=%s", output.intent, output.reply[:80])
        return output


def simulated_fallback() -> SimulateResponse:
    return SimulateResponse(
        reply=SIMULATE_FALLBACK_REPLY,
        intent="qualify",
        fields_collected=[],
        fields_missing=["usage", "size"],
        notes_for_human="LLM failed or timed out",
    )
