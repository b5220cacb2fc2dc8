from .job import Job, JobDecodeResult, decode_job
from .bill import Bill
from .notification import (
    EmailContent,
    EmailMessage,
    EmailResult,
    NotificationResult,
    NotificationStatus,
    VerificationState,
    may_send,
)
