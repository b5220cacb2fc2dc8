"""
SQLite-based bill persistence.

Provides persistent storage of processed invoices with an idempotent,
id-conditional insert and a paginated scan for the monthly aggregation.
"""

import sqlite3
from typing import Iterator, Optional
from ...models.bill import Bill
from .bill_store_base import BillStoreBase


class SQLiteBillStore(BillStoreBase):
    """
    SQLite-backed bill store with persistent storage.

    Features:
    - Persistent storage across application restarts
    - Bills keyed by (id, timestamp), with id alone unique so redelivered
      jobs cannot create duplicates
    - Keyset-paginated scan (bounded memory regardless of table size)
    """

    def __init__(self, db_path: str = "bills.db"):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (default: bills.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create bills table if it doesn't exist"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS bills (
                id TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                name TEXT NOT NULL,
                email TEXT NOT NULL,
                total REAL NOT NULL DEFAULT 0,
                vendor_name TEXT,
                ttl INTEGER,
                PRIMARY KEY (id, timestamp),
                CHECK (total >= 0)
            )
        """)

        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_bills_id
            ON bills(id)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_bills_email
            ON bills(email)
        """)

        conn.commit()
        conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _row_to_bill(row: sqlite3.Row) -> Bill:
        return Bill(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            total=row["total"],
            timestamp=row["timestamp"],
            vendor_name=row["vendor_name"],
            expires_at=row["ttl"],
        )

    def put_if_absent(self, bill: Bill) -> bool:
        """
        Insert the bill unless its id is already stored.

        Returns:
            True if a row was written, False for a duplicate id
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT OR IGNORE INTO bills (id, timestamp, name, email, total, vendor_name, ttl)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (bill.id, bill.timestamp, bill.name, bill.email, bill.total,
              bill.vendor_name, bill.expires_at))

        inserted = cursor.rowcount > 0
        conn.commit()
        conn.close()

        return inserted

    def get(self, bill_id: str) -> Optional[Bill]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT id, timestamp, name, email, total, vendor_name, ttl
            FROM bills
            WHERE id = ?
        """, (bill_id,))

        row = cursor.fetchone()
        conn.close()

        if row is None:
            return None

        return self._row_to_bill(row)

    def scan(self, page_size: int = 100) -> Iterator[Bill]:
        """
        Stream all bills ordered by id, one page per query.

        Args:
            page_size: Rows fetched per query
        """
        last_id = ""
        while True:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute("""
                SELECT id, timestamp, name, email, total, vendor_name, ttl
                FROM bills
                WHERE id > ?
                ORDER BY id
                LIMIT ?
            """, (last_id, page_size))

            rows = cursor.fetchall()
            conn.close()

            for row in rows:
                yield self._row_to_bill(row)

            if len(rows) < page_size:
                return
            last_id = rows[-1]["id"]
