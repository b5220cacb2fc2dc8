
from pydantic import BaseModel

class UploadResponse(BaseModel):
    message: str
    id: str        # generated job id
    name: str
    email: str

class RecipientResponse(BaseModel):
    email: str
    state: str  # Unknown, Pending or Verified
