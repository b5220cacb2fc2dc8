
from html import escape
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse
from ..deps import RecipientResponse
from ...services.clients import get_recipient_registry

router = APIRouter(prefix="/recipients", tags=["recipients"])


@router.get("/verify/{token}", response_class=HTMLResponse)
async def verify_recipient(token: str, registry=Depends(get_recipient_registry)):
    """Handle the verification link sent by the email service"""
    email = registry.confirm(token)

    if email is None:
        raise HTTPException(status_code=404, detail="Verification link not found")

    return f"""
    <html>
        <body style="font-family: Arial; text-align: center; padding: 50px;">
            <h2>Email Verified</h2>
            <p><strong>{escape(email)}</strong> will now receive invoice notifications.</p>
        </body>
    </html>
    """


@router.get("/{email}", response_model=RecipientResponse)
async def recipient_state(email: str, registry=Depends(get_recipient_registry)):
    return RecipientResponse(email=email, state=registry.get_state(email).value)
