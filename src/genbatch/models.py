import typing as t
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from genbatch.status import TERMINAL_STATES, JobStatus


class JobInput(BaseModel):
    """Immutable description of one generation request."""

    model_config = ConfigDict(frozen=True)

    prompt: str = Field(description="text prompt sent to the provider")
    image_url: str | None = Field(default=None, description="optional source image reference")
    ratio: str | None = Field(default=None, description="aspect ratio tag, e.g. 16:9")
    seed: int | None = Field(default=None, description="optional generation seed")
    watermark: str | None = Field(default=None, description="optional watermark text")
    callback_url: str | None = Field(default=None, description="optional provider callback URL")
    translate: str | None = Field(
        default=None, description="prompt translation mode, e.g. auto, off, zh, en"
    )
    extra: dict[str, t.Any] = Field(
        default_factory=dict,
        description="provider-specific and preset parameters",
    )

    @field_validator("image_url", "ratio", "watermark", "callback_url", "translate", mode="before")
    @classmethod
    def blank_to_none(cls, value: t.Any) -> t.Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class JobRecord(BaseModel):
    """
    Mutable unit of work tracked by the ledger.

    Instances are frozen: the ledger replaces a record wholesale on every patch.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    status: JobStatus = JobStatus.PENDING
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    input: JobInput
    provider_request_id: str | None = None
    credential_name: str | None = None
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    created_at: datetime
    updated_at: datetime
    fingerprint: str
    result_url: str | None = None
    local_path: str | None = None
    actual_filename: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @model_validator(mode="after")
    def validate_identity_and_attempts(self) -> "JobRecord":
        if not self.id.strip():
            raise ValueError("job id cannot be empty")
        if self.attempts > self.max_attempts:
            raise ValueError(
                f"attempts ({self.attempts}) cannot exceed max_attempts ({self.max_attempts})"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES


class QueryResult(BaseModel):
    """Provider-reported state of a submitted job."""

    status: t.Literal["queued", "running", "succeeded", "failed"]
    progress: float | None = Field(default=None, ge=0.0, le=1.0)
    result_url: str | None = None
    error_code: str | None = None
    error_message: str | None = None


class CredentialEntry(BaseModel):
    name: str
    secret: str = Field(repr=False)
    platform: str = ""
    source: t.Literal["environment", "settings", "library"] = "library"
    last_used: datetime | None = None
