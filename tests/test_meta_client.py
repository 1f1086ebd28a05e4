import asyncio
import json

import httpx
import pytest

from whatsapp_agent.meta_client import (
    BlockedSender,
    DispatchFailure,
    MetaSender,
    OutboundBlocked,
    build_sender,
)

from helpers import make_settings


def run_send(handler, to="905551112233", body="Merhaba", phone_number_id="123456789"):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sender = MetaSender(access_token="token", phone_number_id=phone_number_id, client=client)
            await sender.send_text(to, body)

    asyncio.run(scenario())


class TestMetaSender:
    def test_posts_text_payload(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["json"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "wamid.OUT"}]})

        run_send(handler)

        assert captured["url"] == "https://graph.facebook.com/v20.0/123456789/messages"
        assert captured["auth"] == "Bearer token"
        assert captured["json"] == {
            "messaging_product": "whatsapp",
            "to": "905551112233",
            "type": "text",
            "text": {"body": "Merhaba"},
        }

    def test_error_status_raises_dispatch_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "Invalid parameter"}})

        with pytest.raises(DispatchFailure):
            run_send(handler)

    def test_transport_error_raises_dispatch_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DispatchFailure):
            run_send(handler)

    def test_malformed_url_raises_dispatch_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200)

        with pytest.raises(DispatchFailure):
            run_send(handler, phone_number_id="12\x0034")


class TestBlockedSender:
    def test_every_send_is_refused(self):
        with pytest.raises(OutboundBlocked):
            asyncio.run(BlockedSender().send_text("905551112233", "hi"))

    def test_blocked_is_a_dispatch_failure(self):
        assert issubclass(OutboundBlocked, DispatchFailure)


class TestBuildSender:
    def test_simulate_only_builds_blocked_sender(self):
        assert isinstance(build_sender(make_settings(simulate_only=True)), BlockedSender)

    def test_live_mode_builds_meta_sender(self):
        assert isinstance(build_sender(make_settings()), MetaSender)
