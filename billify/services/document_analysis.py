
from loguru import logger
from .document_store import DocumentStore
from .extraction_types import AnalyzedField, Extracted, Failed, ExtractionOutcome
from ..core.config import settings

# Document Intelligence invoice-model field names -> canonical field types
AZURE_FIELD_TYPES = {
    "InvoiceTotal": "TOTAL",
    "VendorName": "VENDOR_NAME",
    "InvoiceId": "INVOICE_RECEIPT_ID",
    "InvoiceDate": "INVOICE_RECEIPT_DATE",
    "CustomerName": "RECEIVER_NAME",
    "DueDate": "DUE_DATE",
    "SubTotal": "SUBTOTAL",
    "TotalTax": "TAX",
}


def _field_text(field) -> str | None:
    if getattr(field, "content", None):
        return field.content
    if getattr(field, "value", None) is not None:
        return str(field.value)
    return None


def summary_fields(result) -> list[AnalyzedField]:
    """Flatten an analyze result into (field type, detected text) pairs."""
    fields = []
    for doc in getattr(result, "documents", None) or []:
        for name, field in (getattr(doc, "fields", None) or {}).items():
            text = _field_text(field)
            if text is None:
                continue
            fields.append(AnalyzedField(field_type=AZURE_FIELD_TYPES.get(name, name.upper()), text=text))
    return fields


class DocumentAnalyzer:
    """
    Runs Azure Document Intelligence over stored invoices.

    Falls back to canned mock fields when AZ_DI_ENDPOINT / AZ_DI_API_KEY
    are not set. Never raises: every failure comes back as Failed(reason)
    and the caller decides what to do with it.
    """

    def __init__(self, document_store: DocumentStore, endpoint: str | None = None,
                 api_key: str | None = None, model_id: str = "prebuilt-invoice", client=None):
        self.document_store = document_store
        self.endpoint = endpoint
        self.api_key = api_key
        self.model_id = model_id
        self._client = client

    @classmethod
    def from_settings(cls, document_store: DocumentStore) -> "DocumentAnalyzer":
        return cls(
            document_store,
            endpoint=settings.az_di_endpoint,
            api_key=settings.az_di_api_key,
            model_id=settings.az_di_model,
        )

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self.endpoint and self.api_key)

    @property
    def client(self):
        # Created once and reused for every document this process analyzes
        if self._client is None:
            from azure.ai.documentintelligence import DocumentIntelligenceClient
            from azure.core.credentials import AzureKeyCredential

            self._client = DocumentIntelligenceClient(
                endpoint=self.endpoint,
                credential=AzureKeyCredential(self.api_key)
            )
        return self._client

    def analyze(self, document_ref: str) -> ExtractionOutcome:
        try:
            file_bytes = self.document_store.read(document_ref)
        except Exception as e:
            logger.error("Could not read document for analysis", document_ref=document_ref, error=str(e))
            return Failed(reason=f"Could not read document {document_ref}: {str(e)}")

        if not self.configured:
            return self._mock_analyze(file_bytes)

        logger.info("Analyzing document", document_ref=document_ref, size=len(file_bytes))

        try:
            poller = self.client.begin_analyze_document(
                self.model_id,
                body=file_bytes,
                content_type="application/octet-stream"
            )
            result = poller.result()
        except Exception as e:
            logger.error("Azure DI extraction failed", document_ref=document_ref, error=str(e))
            return Failed(reason=f"Invoice extraction failed: {str(e)}")

        fields = summary_fields(result)
        if not fields:
            logger.warning(
                "Azure DI found no structured invoice data. "
                "Document may be a quote, receipt, or other non-invoice type.",
                document_ref=document_ref
            )

        logger.info("Document analysis complete", document_ref=document_ref, field_count=len(fields))
        return Extracted(fields=fields)

    def _mock_analyze(self, file_bytes: bytes) -> ExtractionOutcome:
        logger.warning(
            "Azure Document Intelligence not configured - using MOCK data. "
            "Set AZ_DI_ENDPOINT and AZ_DI_API_KEY to use real extraction."
        )

        if not file_bytes:
            return Extracted(fields=[])

        return Extracted(fields=[
            AnalyzedField(field_type="VENDOR_NAME", text="Contoso Pty Ltd"),
            AnalyzedField(field_type="INVOICE_RECEIPT_ID", text="INV-10023"),
            AnalyzedField(field_type="INVOICE_RECEIPT_DATE", text="2025-09-30"),
            AnalyzedField(field_type="TOTAL", text="385.00"),
        ])
