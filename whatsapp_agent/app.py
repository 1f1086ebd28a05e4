from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from .config import Settings, load_settings
from .escalation import LoggingEscalationSink
from .gemini_client import GeminiClient
from .guard import MessageGuard
from .meta_client import DispatchFailure, MessageSender, build_sender
from .models import SendRequest, SimulateRequest, SimulateResponse, WebhookPayload, extract_inbound_messages
from .orchestrator import InboundOrchestrator
from .reply_generator import ReplyGenerator
from .state_store import InMemoryStateStore

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR / ".env"

logger = logging.getLogger("wabot.app")

SIMULATE_ONLY_MESSAGE = "Outbound Meta call blocked because SIMULATE_ONLY=true"


def configure_logging(level_name: str) -> None:
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("wabot").setLevel(log_level)


def build_orchestrator(settings: Settings, sender: MessageSender) -> InboundOrchestrator:
    """Purpose: Assemble the production orchestrator from settings.
    Inputs/Outputs: Inputs are Settings and the outbound sender; returns the orchestrator.
    Side Effects / State: Configures the Gemini SDK; allocates the in-memory guard/state.
    Dependencies: GeminiClient, ReplyGenerator, MessageGuard, InMemoryStateStore.
    Failure Modes: GeminiClient raises ValueError on missing credentials.
    If Removed: create_app has no pipeline to serve.
    Testing Notes: Tests pass their own orchestrator to create_app instead.
    """
    generator = ReplyGenerator(
        GeminiClient(settings),
        system_prompt=settings.system_prompt,
        model=settings.gemini_model,
        max_output_tokens=settings.max_output_tokens,
    )
    guard = MessageGuard(
        dedup_window_sec=settings.dedup_window_sec,
        rate_window_sec=settings.rate_window_sec,
        rate_limit=settings.rate_limit_per_window,
    )
    return InboundOrchestrator(
        guard=guard,
        state_store=InMemoryStateStore(),
        generator=generator,
        sender=sender,
        escalations=LoggingEscalationSink(),
        generation_timeout_sec=settings.generation_timeout_sec,
    )


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[InboundOrchestrator] = None,
    sender: Optional[MessageSender] = None,
) -> FastAPI:
    """Purpose: Build the FastAPI application with webhook, simulate and send routes.
    Inputs/Outputs: Optional settings/orchestrator/sender overrides; returns FastAPI app.
    Side Effects / State: Loads .env and configures logging when settings are not given.
    Dependencies: load_settings, build_sender, build_orchestrator.
    Failure Modes: Invalid configuration raises ValueError at startup.
    If Removed: The service cannot be served by uvicorn.
    Testing Notes: Inject fakes and drive routes with TestClient.
    """
    if settings is None:
        if ENV_PATH.exists():
            load_dotenv(ENV_PATH, override=True)
        else:
            load_dotenv()
        settings = load_settings()
    configure_logging(settings.log_level)
    sender = sender or build_sender(settings)
    orchestrator = orchestrator or build_orchestrator(settings, sender)
    started_at = time.monotonic()

    app = FastAPI(title="WhatsApp Sales Assistant")

    @app.middleware("http")
    async def assign_request_id(request: Request, call_next):
        request.state.request_id = uuid.uuid4().hex[:8]
        logger.info(
            "[REQ] method=%s path=%s request_id=%s",
            request.method,
            request.url.path,
            request.state.request_id,
        )
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception("UNHANDLED_ERR request_id=%s", request.state.request_id)
            return JSONResponse(
                status_code=500,
                content={"error": True, "message": str(exc), "request_id": request.state.request_id},
            )

    @app.get("/health")
    def health() -> dict:
        return {
            "ok": True,
            "uptime": time.monotonic() - started_at,
            "ts": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/webhook")
    def verify_webhook(request: Request):
        # Meta subscription handshake.
        params = request.query_params
        if params.get("hub.mode") == "subscribe" and params.get("hub.verify_token") == settings.meta_verify_token:
            return PlainTextResponse(params.get("hub.challenge", ""))
        return PlainTextResponse("Forbidden", status_code=403)

    @app.post("/webhook")
    async def receive_webhook(request: Request):
        request_id = request.state.request_id
        if settings.simulate_only:
            return JSONResponse(
                status_code=403,
                content={"error": True, "message": SIMULATE_ONLY_MESSAGE, "request_id": request_id},
            )
        try:
            payload = WebhookPayload(**(await request.json()))
        except (ValidationError, ValueError, TypeError):
            return JSONResponse(status_code=400, content={"ok": False, "request_id": request_id})

        batch = await orchestrator.process_batch(extract_inbound_messages(payload), request_id=request_id)
        for failure in batch.dispatch_failures:
            logger.error(
                "request=%s message_id=%s dispatch_error=%s",
                request_id,
                failure.message_id,
                failure.dispatch_error,
            )
        return {
            "ok": True,
            "request_id": request_id,
            "processed": batch.processed,
            "dispatch_failures": len(batch.dispatch_failures),
        }

    @app.post("/simulate", response_model=SimulateResponse)
    async def simulate(request: Request):
        request_id = request.state.request_id
        try:
            body = SimulateRequest(**(await request.json()))
        except ValidationError as exc:
            return JSONResponse(
                status_code=400,
                content={"error": True, "request_id": request_id, "details": exc.errors(include_url=False)},
            )
        except (ValueError, TypeError):
            return JSONResponse(status_code=400, content={"error": True, "request_id": request_id})
        return await orchestrator.simulate(body.from_, body.text)

    @app.post("/send")
    async def send(request: Request):
        request_id = request.state.request_id
        if settings.simulate_only:
            return JSONResponse(
                status_code=403,
                content={"error": True, "message": SIMULATE_ONLY_MESSAGE, "request_id": request_id},
            )
        try:
            body = SendRequest(**(await request.json()))
        except ValidationError as exc:
            return JSONResponse(
                status_code=400,
                content={"ok": False, "request_id": request_id, "error": exc.errors(include_url=False)},
            )
        except (ValueError, TypeError):
            return JSONResponse(status_code=400, content={"ok": False, "request_id": request_id})
        try:
            await sender.send_text(body.to, body.text)
        except DispatchFailure as exc:
            return JSONResponse(
                status_code=502,
                content={"error": True, "message": str(exc), "request_id": request_id},
            )
        return {"ok": True, "request_id": request_id}

    return app
