"""
Recipient verification registry.

Owned by the email service: records which addresses have been sent a
verification link and which have confirmed it. The pipeline only ever
reads the resulting VerificationState.
"""
from abc import ABC, abstractmethod
from datetime import datetime, UTC
from typing import Dict, Optional
import secrets

from ...models.notification import VerificationState


def normalize_email(email: str) -> str:
    return email.strip().lower()


class RecipientRegistryBase(ABC):

    @abstractmethod
    def get(self, email: str) -> Optional[dict]:
        """
        Get the recipient record.

        Returns:
            Dictionary with keys email, state, token, requested_at,
            verified_at; or None if the address was never seen.
        """
        pass

    @abstractmethod
    def begin_verification(self, email: str) -> str:
        """
        Mark the address pending and return its verification token.

        A pending address keeps its existing token so repeated requests
        produce the same link.
        """
        pass

    @abstractmethod
    def confirm(self, token: str) -> Optional[str]:
        """
        Confirm a verification token.

        Returns:
            The verified email address, or None for an unknown token
        """
        pass

    @abstractmethod
    def mark_verified(self, email: str) -> None:
        """Verify an address directly (admin/seed use)"""
        pass

    def get_state(self, email: str) -> VerificationState:
        record = self.get(email)
        if record is None:
            return VerificationState.UNKNOWN
        return VerificationState(record["state"])


class RecipientRegistry(RecipientRegistryBase):
    """In-memory registry (for demo purposes and tests)"""

    def __init__(self):
        self._recipients: Dict[str, dict] = {}

    def get(self, email: str) -> Optional[dict]:
        return self._recipients.get(normalize_email(email))

    def begin_verification(self, email: str) -> str:
        key = normalize_email(email)
        record = self._recipients.get(key)
        if record is not None and record["token"]:
            return record["token"]

        token = secrets.token_urlsafe(24)
        if record is None:
            record = {"email": key, "state": VerificationState.PENDING.value, "verified_at": None}
            self._recipients[key] = record
        record["token"] = token
        record["requested_at"] = datetime.now(UTC).isoformat()
        return token

    def confirm(self, token: str) -> Optional[str]:
        for record in self._recipients.values():
            if record["token"] == token:
                record["state"] = VerificationState.VERIFIED.value
                record["verified_at"] = datetime.now(UTC).isoformat()
                return record["email"]
        return None

    def mark_verified(self, email: str) -> None:
        key = normalize_email(email)
        self._recipients[key] = {
            "email": key,
            "state": VerificationState.VERIFIED.value,
            "token": None,
            "requested_at": None,
            "verified_at": datetime.now(UTC).isoformat(),
        }
