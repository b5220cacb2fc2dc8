"""
Tests for Microsoft Graph email delivery (respx-mocked).
"""

import asyncio
import base64
import email
import json
from datetime import datetime, UTC

import httpx
import pytest
import respx

from billify.core.config import settings
from billify.core.errors import ExternalServiceError
from billify.models.bill import Bill
from billify.models.notification import EmailContent, EmailMessage
from billify.services.aggregation import run_aggregation
from billify.services.mailer import GraphEmailService, build_mime

TOKEN_URL = "https://login.microsoftonline.com/tenant-1/oauth2/v2.0/token"
SEND_URL = "https://graph.microsoft.com/v1.0/users/noreply@billify.local/sendMail"

CONTENT = EmailContent(subject="Invoice Processed - Amount: 99.99", text_body="Total: 99.99", html_body="<p>Total: 99.99</p>")


def make_service(registry, wire_format="structured"):
    return GraphEmailService(
        registry,
        sender="noreply@billify.local",
        api_base_url="https://billify.example.com",
        tenant_id="tenant-1",
        client_id="client-1",
        client_secret="secret-1",
        wire_format=wire_format,
    )


def mock_token():
    return respx.post(TOKEN_URL).mock(
        return_value=httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})
    )


def test_structured_send(registry):
    service = make_service(registry)

    async def scenario():
        try:
            return await service.send("jane@x.com", CONTENT)
        finally:
            await service.aclose()

    with respx.mock:
        token_route = mock_token()
        send_route = respx.post(SEND_URL).mock(return_value=httpx.Response(202, headers={"request-id": "req-42"}))

        result = asyncio.run(scenario())

        assert result.success
        assert result.message_id == "req-42"
        assert result.provider == "graph"
        assert b"grant_type=client_credentials" in token_route.calls.last.request.content

        request = send_route.calls.last.request
        assert request.headers["Authorization"] == "Bearer tok-1"
        payload = json.loads(request.content)
        assert payload["message"]["subject"] == CONTENT.subject
        assert payload["message"]["body"] == {"contentType": "HTML", "content": "<p>Total: 99.99</p>"}
        assert payload["message"]["toRecipients"] == [{"emailAddress": {"address": "jane@x.com"}}]


def test_mime_send_carries_both_parts(registry):
    service = make_service(registry, wire_format="mime")

    async def scenario():
        try:
            await service.send("jane@x.com", CONTENT)
        finally:
            await service.aclose()

    with respx.mock:
        mock_token()
        send_route = respx.post(SEND_URL).mock(return_value=httpx.Response(202))

        asyncio.run(scenario())

        request = send_route.calls.last.request
        assert request.headers["Content-Type"] == "text/plain"
        parsed = email.message_from_bytes(base64.b64decode(request.content))
        assert parsed["Subject"] == CONTENT.subject
        assert parsed["To"] == "jane@x.com"
        types = [part.get_content_type() for part in parsed.walk() if not part.is_multipart()]
        assert types == ["text/plain", "text/html"]


def test_token_is_reused_across_sends(registry):
    service = make_service(registry)

    async def scenario():
        try:
            await service.send("a@x.com", CONTENT)
            await service.send("b@x.com", CONTENT)
        finally:
            await service.aclose()

    with respx.mock:
        token_route = mock_token()
        send_route = respx.post(SEND_URL).mock(return_value=httpx.Response(202))

        asyncio.run(scenario())

        assert token_route.call_count == 1
        assert send_route.call_count == 2


def test_send_failure_raises(registry):
    service = make_service(registry)

    async def scenario():
        try:
            await service.send("jane@x.com", CONTENT)
        finally:
            await service.aclose()

    with respx.mock:
        mock_token()
        respx.post(SEND_URL).mock(return_value=httpx.Response(503))

        with pytest.raises(ExternalServiceError) as exc_info:
            asyncio.run(scenario())

    assert exc_info.value.service == "graph"
    assert "503" in exc_info.value.message


def test_token_failure_raises(registry):
    service = make_service(registry)

    async def scenario():
        try:
            await service.send("jane@x.com", CONTENT)
        finally:
            await service.aclose()

    with respx.mock:
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(401))
        send_route = respx.post(SEND_URL).mock(return_value=httpx.Response(202))

        with pytest.raises(ExternalServiceError):
            asyncio.run(scenario())

        assert send_route.call_count == 0


def test_verification_request_links_to_api(registry):
    service = make_service(registry)

    async def scenario():
        try:
            await service.request_verification("jane@x.com")
        finally:
            await service.aclose()

    with respx.mock:
        mock_token()
        send_route = respx.post(SEND_URL).mock(return_value=httpx.Response(202))

        asyncio.run(scenario())

        token = registry.get("jane@x.com")["token"]
        payload = json.loads(send_route.calls.last.request.content)
        assert f"https://billify.example.com/recipients/verify/{token}" in payload["message"]["body"]["content"]


def test_unknown_wire_format_rejected(registry):
    with pytest.raises(ValueError):
        make_service(registry, wire_format="xml")


def test_from_settings_requires_credentials(registry, monkeypatch):
    monkeypatch.setattr(settings, "ms_client_secret", None)

    with pytest.raises(ValueError):
        GraphEmailService.from_settings(registry)


def test_build_mime_headers():
    message = EmailMessage(to=["a@x.com", "b@x.com"], subject="S", text_body="t", html_body="<p>h</p>")

    mime = build_mime(message)

    assert mime["To"] == "a@x.com, b@x.com"
    assert mime["From"] == "noreply@billify.local"
    assert mime.get_content_type() == "multipart/alternative"


def test_concurrent_report_fan_out_requests_one_token(registry, bill_store):
    for i in range(20):
        email_address = f"user{i}@x.com"
        registry.mark_verified(email_address)
        bill_store.put_if_absent(Bill(id=str(i), name="n", email=email_address, total=1,
                                      timestamp="2026-09-15T00:00:00+00:00"))
    service = make_service(registry)

    async def slow_token(request):
        await asyncio.sleep(0.05)
        return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})

    async def scenario():
        try:
            return await run_aggregation(bill_store, service, now=datetime(2026, 10, 1, 11, tzinfo=UTC))
        finally:
            await service.aclose()

    with respx.mock:
        token_route = respx.post(TOKEN_URL).mock(side_effect=slow_token)
        send_route = respx.post(SEND_URL).mock(return_value=httpx.Response(202))

        report = asyncio.run(scenario())

        assert token_route.call_count == 1
        assert send_route.call_count == 20
        assert report.delivered == 20
