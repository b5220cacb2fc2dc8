
from typing import Literal, Union
from pydantic import BaseModel

class AnalyzedField(BaseModel):
    field_type: str  # canonical label, e.g. TOTAL, VENDOR_NAME
    text: str        # detected text, unparsed

class Extracted(BaseModel):
    kind: Literal["extracted"] = "extracted"
    fields: list[AnalyzedField] = []

class Failed(BaseModel):
    kind: Literal["failed"] = "failed"
    reason: str

ExtractionOutcome = Union[Extracted, Failed]
