
from fastapi import APIRouter, Depends, File, Form, UploadFile
from ..deps import UploadResponse
from ...core.config import settings
from ...services.clients import get_bill_store, get_document_store, get_email_service, get_job_publisher
from ...services.intake import UploadedDocument, submit_invoice

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/upload", response_model=UploadResponse)
async def upload_invoice(
    file: UploadFile = File(...),
    name: str = Form(""),
    email: str = Form(""),
    document_store=Depends(get_document_store),
    publisher=Depends(get_job_publisher),
    email_service=Depends(get_email_service),
):
    """
    Upload an invoice for processing.

    Stores the document (keyed by its filename) and queues a job for the
    extraction worker. The bill itself is created asynchronously; the
    response only confirms the hand-off.

    Example response:
    {
        "message": "Successfully uploaded invoice & queued it for processing",
        "id": "5f0c7a9e-...",
        "name": "Jane",
        "email": "jane@example.com"
    }

    Errors (JobValidationError -> 400, ExternalServiceError -> 500) are
    rendered by the handlers registered in main.py.
    """
    content = await file.read()
    job = await submit_invoice(
        UploadedDocument(filename=file.filename or "", content=content, content_type=file.content_type),
        name,
        email,
        document_store=document_store,
        publisher=publisher,
        email_service=email_service if settings.intake_request_verification else None,
    )
    return UploadResponse(
        message="Successfully uploaded invoice & queued it for processing",
        id=job.id,
        name=job.name,
        email=job.email,
    )


@router.get("/bills")
async def list_bills(bill_store=Depends(get_bill_store)):
    """List all processed bills (for debugging)"""
    bills = [bill.to_record() for bill in bill_store.list_all()]
    bills.sort(key=lambda b: b["timestamp"], reverse=True)
    return {"total_bills": len(bills), "bills": bills}
