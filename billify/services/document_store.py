"""
Document storage for uploaded invoices.

Documents are keyed by their upload filename. There is no deduplication:
a second upload with the same filename replaces the first.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from loguru import logger


class DocumentStore(ABC):

    @abstractmethod
    def put(self, key: str, content: bytes, content_type: str | None = None) -> str:
        """Store a document and return its reference"""
        pass

    @abstractmethod
    def read(self, key: str) -> bytes:
        """Read a document back by reference"""
        pass


class LocalDocumentStore(DocumentStore):
    """Stores documents in a directory (local development)"""

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        # Keys are filenames; never let one escape the root directory
        name = Path(key).name
        if not name:
            raise ValueError(f"Invalid document key: {key!r}")
        return self.root / name

    def put(self, key: str, content: bytes, content_type: str | None = None) -> str:
        path = self._path(key)
        path.write_bytes(content)
        logger.info("Stored document locally", key=path.name, size=len(content))
        return path.name

    def read(self, key: str) -> bytes:
        return self._path(key).read_bytes()


class BlobDocumentStore(DocumentStore):
    """
    Stores documents in an Azure Blob Storage container.

    Usage:
        store = BlobDocumentStore.from_connection_string(conn_str, "billify-invoices")
    """

    def __init__(self, container_client):
        self.container_client = container_client

    @classmethod
    def from_connection_string(cls, connection_string: str, container: str) -> "BlobDocumentStore":
        from azure.storage.blob import BlobServiceClient

        service = BlobServiceClient.from_connection_string(connection_string)
        return cls(service.get_container_client(container))

    def put(self, key: str, content: bytes, content_type: str | None = None) -> str:
        from azure.storage.blob import ContentSettings

        self.container_client.upload_blob(
            name=key,
            data=content,
            overwrite=True,
            content_settings=ContentSettings(content_type=content_type or "application/octet-stream"),
        )
        logger.info("Invoice uploaded to blob storage", key=key, size=len(content))
        return key

    def read(self, key: str) -> bytes:
        return self.container_client.download_blob(key).readall()
