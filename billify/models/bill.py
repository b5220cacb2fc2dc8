
from pydantic import BaseModel, Field, field_validator
from .job import Job


class Bill(BaseModel):
    """One processed invoice. Created once per job, never updated."""

    id: str
    name: str
    email: str
    total: float = Field(default=0.0, ge=0)
    timestamp: str
    vendor_name: str | None = Field(default=None, alias="vendorName")
    expires_at: int | None = Field(default=None, alias="ttl")  # epoch seconds, expiry managed by the store owner

    model_config = {"populate_by_name": True}

    @field_validator("vendor_name")
    @classmethod
    def _strip_vendor(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @classmethod
    def from_job(cls, job: Job, total: float = 0.0, vendor_name: str | None = None,
                 expires_at: int | None = None) -> "Bill":
        return cls(
            id=job.id,
            name=job.name,
            email=job.email,
            total=total,
            timestamp=job.timestamp,
            vendor_name=vendor_name,
            expires_at=expires_at,
        )

    def to_record(self) -> dict:
        """Persisted schema: {id, name, email, total, timestamp, vendorName?, ttl?}"""
        return self.model_dump(by_alias=True, exclude_none=True)
