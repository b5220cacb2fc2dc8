"""
Error taxonomy for the billing pipeline.

Callers only ever see a coarse success/failure signal; these types exist so
each stage can decide whether a failure is fatal, absorbed or per-recipient.
"""


class BillifyError(Exception):
    """Base class for pipeline errors"""


class JobValidationError(BillifyError):
    """Malformed or incomplete job (or upload metadata)"""


class ExternalServiceError(BillifyError):
    """A call to storage, queue, analysis or email failed"""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message


class PartialDeliveryError(BillifyError):
    """One recipient's notification failed during a fan-out"""

    def __init__(self, recipient: str, reason: str):
        super().__init__(f"Delivery to {recipient} failed: {reason}")
        self.recipient = recipient
        self.reason = reason
