"""
Queue payload for one uploaded, not-yet-processed invoice.
"""

import json
from dataclasses import dataclass
from typing import Optional, Union
from pydantic import BaseModel, Field, ValidationError


class Job(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    document_ref: str = Field(min_length=1, alias="documentRef")
    timestamp: str = Field(min_length=1)

    model_config = {"populate_by_name": True, "str_strip_whitespace": True}

    def to_message(self) -> dict:
        """Wire form: {id, name, email, documentRef, timestamp}"""
        return self.model_dump(by_alias=True)

    def to_json(self) -> str:
        return json.dumps(self.to_message())


@dataclass
class JobDecodeResult:
    """Either a validated Job or the reason the payload was rejected"""
    job: Optional[Job] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.job is not None


def decode_job(body: Union[str, bytes, dict]) -> JobDecodeResult:
    """
    Decode a queue message body into a Job.

    Never raises for bad input: malformed JSON, a non-object payload and
    missing/empty fields all come back as a failed result.
    """
    try:
        if isinstance(body, (bytes, bytearray)):
            body = body.decode("utf-8")
        data = json.loads(body) if isinstance(body, str) else body
    except ValueError as e:
        return JobDecodeResult(error=f"Job message is not valid JSON: {e}")

    if not isinstance(data, dict):
        return JobDecodeResult(error="Job message must be a JSON object")

    try:
        return JobDecodeResult(job=Job.model_validate(data))
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        return JobDecodeResult(error=f"Missing or empty fields in job message: {', '.join(fields)}")
