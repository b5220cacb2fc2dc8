"""
Abstract base class for bill store implementations.

Defines the interface that all bill stores must implement,
enabling dependency injection and easy swapping of storage backends.
"""

from abc import ABC, abstractmethod
from typing import Iterator, Optional
from ...models.bill import Bill


class BillStoreBase(ABC):
    """
    Abstract base class for bill persistence.

    Implementations can use:
    - In-memory storage (for testing/demo)
    - SQLite (for single-instance deployments)
    - Cosmos DB / Table Storage (for cloud-native Azure deployments)

    Bills are written once. Queue delivery is at-least-once, so writes are
    conditional on the bill id: a second delivery of the same job must not
    create a second bill.
    """

    @abstractmethod
    def put_if_absent(self, bill: Bill) -> bool:
        """
        Persist a bill unless one with the same id already exists.

        Args:
            bill: Bill to store

        Returns:
            True if the bill was written, False if the id was already present
        """
        pass

    @abstractmethod
    def get(self, bill_id: str) -> Optional[Bill]:
        """
        Get a bill by ID.

        Returns:
            The Bill, or None if not found.
        """
        pass

    @abstractmethod
    def scan(self, page_size: int = 100) -> Iterator[Bill]:
        """
        Iterate over every stored bill.

        Implementations page through the backing store internally so callers
        can stream arbitrarily large tables with bounded memory.

        Args:
            page_size: Number of bills fetched per round trip
        """
        pass

    def list_all(self) -> list:
        """List all bills (for debugging)"""
        return list(self.scan())
