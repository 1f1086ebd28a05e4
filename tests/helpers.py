"""Fakes shared by the orchestration and HTTP tests."""
import asyncio
import json
from dataclasses import replace
from typing import List, Optional, Set, Tuple

from whatsapp_agent.config import Settings
from whatsapp_agent.meta_client import DispatchFailure
from whatsapp_agent.models import InboundMessage


def reply_json(**overrides) -> str:
    data = {
        "reply": "Hangi ürün için kullanacaksınız?",
        "intent": "qualify",
        "fields_collected": {"product_category": "snap button"},
        "fields_missing": ["usage", "size_mm_or_ligne"],
        "notes_for_human": "",
    }
    data.update(overrides)
    return json.dumps(data, ensure_ascii=False)


class FakeModelClient:
    """Stands in for GeminiClient; returns canned raw text or misbehaves on demand."""

    def __init__(self, raw: str = "", error: Optional[Exception] = None, delay: float = 0.0):
        self.raw = raw
        self.error = error
        self.delay = delay
        self.prompts: List[str] = []
        self.completed = 0

    async def generate_json(self, prompt, system_instruction, model=None, temperature=0.2, max_output_tokens=300):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.completed += 1
        return self.raw


class RecordingSender:
    """Records sends; raises DispatchFailure for recipients in fail_for, RuntimeError for crash_for."""

    def __init__(self, fail_for: Optional[Set[str]] = None, crash_for: Optional[Set[str]] = None):
        self.sent: List[Tuple[str, str]] = []
        self.fail_for = fail_for or set()
        self.crash_for = crash_for or set()

    async def send_text(self, to: str, body: str) -> None:
        if to in self.fail_for:
            raise DispatchFailure("Meta API error: 500")
        if to in self.crash_for:
            raise RuntimeError("connection pool closed")
        self.sent.append((to, body))


class RecordingSink:
    def __init__(self):
        self.records = []

    def emit(self, record) -> None:
        self.records.append(record)


class FixedClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def text_message(message_id: str, sender: str = "905551112233", text: str = "Merhaba, çıtçıt lazım") -> InboundMessage:
    return InboundMessage(message_id=message_id, sender=sender, kind="text", text=text, timestamp="1704067200")


def make_settings(**overrides) -> Settings:
    settings = Settings(
        meta_verify_token="verify-me",
        meta_access_token="token",
        meta_phone_number_id="123456789",
        meta_graph_api_version="v20.0",
        gemini_api_key="test-key",
        gemini_model="gemini-2.5-flash",
        max_output_tokens=300,
        system_prompt="sys",
        simulate_only=False,
        generation_timeout_sec=0.5,
        dedup_window_sec=86400,
        rate_limit_per_window=20,
        rate_window_sec=60,
        log_level="INFO",
    )
    return replace(settings, **overrides)
