"""
Email service: recipient verification plus message delivery.

Swappable providers behind one interface:
- MockEmailService: records messages in memory (local development, tests)
- GraphEmailService: delivers through Microsoft Graph sendMail

Both own a recipient registry. An address becomes Verified only after its
owner follows the link sent by `request_verification`.
"""

import asyncio
import base64
import time
import uuid
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from ..core.config import settings
from ..core.errors import ExternalServiceError
from ..models.notification import EmailContent, EmailMessage, EmailResult, VerificationState
from .storage.recipients import RecipientRegistryBase
from .templates import compose


class EmailService(ABC):
    provider = "base"

    def __init__(self, registry: RecipientRegistryBase, sender: str, api_base_url: str):
        self.registry = registry
        self.sender = sender
        self.api_base_url = api_base_url.rstrip("/")

    async def get_verification_state(self, email: str) -> VerificationState:
        return self.registry.get_state(email)

    async def request_verification(self, email: str) -> EmailResult:
        """Mark the address pending and mail it a verification link."""
        token = self.registry.begin_verification(email)
        link = f"{self.api_base_url}/recipients/verify/{token}"
        logger.info("Sending verification request", recipient=email)
        return await self._deliver(self._message(email, compose("verification", link=link)))

    async def send(self, recipient: str, content: EmailContent) -> EmailResult:
        """Deliver composed content. Callers are responsible for the verification gate."""
        return await self._deliver(self._message(recipient, content))

    async def aclose(self) -> None:
        pass

    def _message(self, recipient: str, content: EmailContent) -> EmailMessage:
        return EmailMessage(
            to=[recipient],
            subject=content.subject,
            text_body=content.text_body,
            html_body=content.html_body,
            from_address=self.sender,
        )

    @abstractmethod
    async def _deliver(self, message: EmailMessage) -> EmailResult:
        """
        Put one message on the wire.

        Raises:
            ExternalServiceError: the provider rejected or failed the send
        """
        pass


class MockEmailService(EmailService):
    """
    Mock email provider for development and testing.

    Keeps every delivered message in `sent` and logs it for immediate visibility.
    """
    provider = "mock"

    def __init__(self, registry: RecipientRegistryBase, sender: str = "noreply@billify.local",
                 api_base_url: str = "http://127.0.0.1:8000"):
        super().__init__(registry, sender, api_base_url)
        self.sent: List[Dict[str, Any]] = []

    async def _deliver(self, message: EmailMessage) -> EmailResult:
        message_id = f"mock_{uuid.uuid4().hex[:12]}"
        logger.info(
            "[MOCK EMAIL] message recorded",
            to=", ".join(message.to),
            subject=message.subject,
            message_id=message_id
        )
        self.sent.append({**message.to_dict(), "message_id": message_id})
        return EmailResult(success=True, message_id=message_id, provider=self.provider)

    def sent_to(self, recipient: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if recipient in m["to"]]


def build_mime(message: EmailMessage) -> MIMEMultipart:
    """multipart/alternative with the plain-text part first (fallback) and HTML second"""
    mime = MIMEMultipart("alternative")
    mime["Subject"] = message.subject
    mime["From"] = message.from_address
    mime["To"] = ", ".join(message.to)
    mime.attach(MIMEText(message.text_body, "plain", _charset="utf-8"))
    mime.attach(MIMEText(message.html_body, "html", _charset="utf-8"))
    return mime


def graph_message_payload(message: EmailMessage) -> dict:
    # Graph carries a single body; HTML is sent, plain text lives in the MIME variant
    return {
        "message": {
            "subject": message.subject,
            "body": {"contentType": "HTML", "content": message.html_body},
            "toRecipients": [{"emailAddress": {"address": addr}} for addr in message.to],
        },
        "saveToSentItems": False,
    }


class GraphEmailService(EmailService):
    """
    Microsoft Graph email provider (app-only, client-credentials flow).

    Sends as EMAIL_SENDER via POST /users/{sender}/sendMail, either as a
    structured JSON message or as a base64 MIME document (EMAIL_WIRE_FORMAT).
    One httpx.AsyncClient and one access token are reused until the token
    nears expiry.
    """
    provider = "graph"

    def __init__(
        self,
        registry: RecipientRegistryBase,
        sender: str,
        api_base_url: str,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        scope: str = "https://graph.microsoft.com/.default",
        graph_base_url: str = "https://graph.microsoft.com/v1.0",
        login_url: str = "https://login.microsoftonline.com",
        wire_format: str = "structured",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(registry, sender, api_base_url)
        if wire_format not in ("structured", "mime"):
            raise ValueError(f"Unsupported email wire format: {wire_format}")
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope
        self.graph_base_url = graph_base_url.rstrip("/")
        self.login_url = login_url.rstrip("/")
        self.wire_format = wire_format
        self._http = http_client
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, registry: RecipientRegistryBase) -> "GraphEmailService":
        if not (settings.ms_tenant_id and settings.ms_client_id and settings.ms_client_secret):
            raise ValueError("EMAIL_PROVIDER=graph requires MS_TENANT_ID, MS_CLIENT_ID and MS_CLIENT_SECRET")
        return cls(
            registry,
            sender=settings.email_sender,
            api_base_url=settings.api_base_url,
            tenant_id=settings.ms_tenant_id,
            client_id=settings.ms_client_id,
            client_secret=settings.ms_client_secret,
            scope=settings.graph_scope,
            graph_base_url=settings.graph_base_url,
            login_url=settings.ms_login_url,
            wire_format=settings.email_wire_format,
        )

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=10)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _cached_token(self) -> Optional[str]:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        return None

    async def _get_token(self) -> str:
        token = self._cached_token()
        if token:
            return token

        # Concurrent sends (aggregation fan-out) share one token request
        async with self._token_lock:
            return self._cached_token() or await self._request_token()

    async def _request_token(self) -> str:
        url = f"{self.login_url}/{self.tenant_id}/oauth2/v2.0/token"
        try:
            r = await self.http.post(url, data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": self.scope,
            })
        except httpx.HTTPError as e:
            raise ExternalServiceError("graph", f"token request failed: {e}") from e

        if r.status_code != 200:
            raise ExternalServiceError("graph", f"token request returned HTTP {r.status_code}")

        payload = r.json()
        self._token = payload["access_token"]
        # Refresh a minute early
        self._token_expires_at = time.monotonic() + int(payload.get("expires_in", 3600)) - 60
        return self._token

    async def _deliver(self, message: EmailMessage) -> EmailResult:
        token = await self._get_token()
        url = f"{self.graph_base_url}/users/{self.sender}/sendMail"
        headers = {"Authorization": f"Bearer {token}"}

        try:
            if self.wire_format == "mime":
                raw = base64.b64encode(build_mime(message).as_bytes())
                r = await self.http.post(url, content=raw, headers={**headers, "Content-Type": "text/plain"})
            else:
                r = await self.http.post(url, json=graph_message_payload(message), headers=headers)
        except httpx.HTTPError as e:
            raise ExternalServiceError("graph", f"sendMail failed: {e}") from e

        if r.status_code not in (200, 202):
            raise ExternalServiceError("graph", f"sendMail returned HTTP {r.status_code}")

        message_id = r.headers.get("request-id")
        logger.info("Email sent successfully", to=", ".join(message.to), message_id=message_id)
        return EmailResult(success=True, message_id=message_id, provider=self.provider)
