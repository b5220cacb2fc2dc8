"""
Verification-gated notification delivery.

Used by both the extraction worker (one email per processed invoice) and
the monthly aggregation (one email per recipient). Content only goes to
Verified addresses; anyone else gets a verification request instead, at
most once per gateway instance. A request that failed is reported as
FAILED for the rest of the run. Create one gateway per run.
"""

from loguru import logger

from ..models.notification import (
    EmailContent,
    NotificationResult,
    NotificationStatus,
    VerificationState,
    may_send,
)
from .mailer import EmailService
from .storage.recipients import normalize_email


class NotificationGateway:

    def __init__(self, email_service: EmailService):
        self.email_service = email_service
        self._verification_requested: set[str] = set()
        self._verification_failed: dict[str, str] = {}

    async def notify(self, recipient: str, subject: str, text_body: str, html_body: str) -> NotificationResult:
        """
        Deliver a message if the recipient is verified.

        Returns:
            NotificationResult with status DELIVERED, VERIFICATION_REQUESTED
            or FAILED (error set). Provider errors are reported, not raised.
        """
        try:
            state = await self.email_service.get_verification_state(recipient)
        except Exception as e:
            logger.error("Could not read verification state", recipient=recipient, error=str(e))
            return NotificationResult(NotificationStatus.FAILED, recipient, error=str(e))

        if not may_send(state):
            return await self._request_verification(recipient, state)

        try:
            result = await self.email_service.send(recipient, EmailContent(subject, text_body, html_body))
        except Exception as e:
            logger.error("Error while sending email", recipient=recipient, error=str(e))
            return NotificationResult(NotificationStatus.FAILED, recipient, error=str(e))

        return NotificationResult(NotificationStatus.DELIVERED, recipient, message_id=result.message_id)

    async def notify_content(self, recipient: str, content: EmailContent) -> NotificationResult:
        return await self.notify(recipient, content.subject, content.text_body, content.html_body)

    async def _request_verification(self, recipient: str, state: VerificationState) -> NotificationResult:
        key = normalize_email(recipient)
        if key in self._verification_failed:
            return NotificationResult(NotificationStatus.FAILED, recipient, error=self._verification_failed[key])
        if key in self._verification_requested:
            logger.info("Verification already requested in this run", recipient=recipient)
            return NotificationResult(NotificationStatus.VERIFICATION_REQUESTED, recipient)

        # Recorded before the call so a failed request is not retried within the run
        self._verification_requested.add(key)
        logger.info("The recipient is not verified", recipient=recipient, state=state.value)

        try:
            await self.email_service.request_verification(recipient)
        except Exception as e:
            logger.error("Could not send verification request", recipient=recipient, error=str(e))
            self._verification_failed[key] = str(e)
            return NotificationResult(NotificationStatus.FAILED, recipient, error=str(e))

        return NotificationResult(NotificationStatus.VERIFICATION_REQUESTED, recipient)
