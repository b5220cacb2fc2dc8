from .bill_store_base import BillStoreBase
from .bills import InMemoryBillStore
from .bills_sqlite import SQLiteBillStore
from .recipients import RecipientRegistry, RecipientRegistryBase
from .recipients_sqlite import SQLiteRecipientRegistry

# Global instances used when no database path is configured
# (in production, configure BILL_DB_PATH / RECIPIENTS_DB_PATH)
bill_store = InMemoryBillStore()
recipient_registry = RecipientRegistry()
