"""
Broker wire contract - DocumentUploaded event

The message body exchanged between the upload service and the ingestion
service is a JSON object with exactly these camelCase keys:

    {"documentId": "<str>", "userId": "<str>", "fileUrl": "<absolute locator>"}

All three are required and must be non-blank. Unknown keys are ignored so the
producer can add fields without breaking older consumers.
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from docingest.core.errors import MalformedEvent

DOCUMENT_UPLOADED = "document_uploaded"


class DocumentUploadedEvent(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
        extra="ignore",
    )

    document_id: str = Field(..., alias="documentId", min_length=1)
    user_id:     str = Field(..., alias="userId",     min_length=1)
    file_url:    str = Field(..., alias="fileUrl",    min_length=1)

    @classmethod
    def from_payload(cls, payload: Any) -> "DocumentUploadedEvent":
        """Parse a raw message body; any shape problem raises MalformedEvent."""
        if not isinstance(payload, Mapping):
            raise MalformedEvent(
                f"Event payload must be an object, got {type(payload).__name__}",
                payload=payload,
            )
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
            raise MalformedEvent(
                f"Invalid {DOCUMENT_UPLOADED} payload: bad or missing {', '.join(fields) or 'fields'}",
                payload=payload,
            ) from exc

    def to_payload(self) -> dict[str, str]:
        return self.model_dump(by_alias=True)
