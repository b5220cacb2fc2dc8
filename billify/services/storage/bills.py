"""
In-memory bill store (for demo purposes and tests).
In production, use a database (SQL, Cosmos DB, etc.)
"""
from typing import Dict, Iterator, Optional
from ...models.bill import Bill
from .bill_store_base import BillStoreBase


class InMemoryBillStore(BillStoreBase):
    def __init__(self):
        self._bills: Dict[str, Bill] = {}

    def put_if_absent(self, bill: Bill) -> bool:
        """Store the bill unless its id is already present"""
        if bill.id in self._bills:
            return False
        self._bills[bill.id] = bill
        return True

    def get(self, bill_id: str) -> Optional[Bill]:
        return self._bills.get(bill_id)

    def scan(self, page_size: int = 100) -> Iterator[Bill]:
        # Snapshot so writes during a scan don't break iteration
        yield from list(self._bills.values())
