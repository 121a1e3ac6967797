"""Request bodies. Clients send camelCase; snake_case is accepted too."""
import base64
import binascii
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from trip_import.shared import ApiError, ErrorCode


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExtractReservationRequest(RequestModel):
    """Request schema for reservation extraction"""
    text: str = Field(..., min_length=1, description="Raw document text")
    file_name: Optional[str] = Field(None, max_length=300)
    trip_destination: Optional[str] = Field(None, max_length=220)

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("text must not be blank")
        return value


class OcrDocumentRequest(RequestModel):
    """Request schema for text acquisition"""
    file_base64: str = Field(..., min_length=1, description="File content, base64 or data URL")
    file_name: Optional[str] = Field(None, max_length=300)
    mime_type: Optional[str] = Field(None, max_length=120)


class GenerateTipsRequest(RequestModel):
    hotel_name: Optional[str] = None
    location: Optional[str] = None
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    trip_destination: Optional[str] = None


class SuggestRestaurantsRequest(RequestModel):
    city: Optional[str] = None
    location: Optional[str] = None
    trip_destination: Optional[str] = None


EntitlementAction = Literal["get_context", "set_plan_tier", "set_override", "track_event", "usage_summary"]


class FeatureEntitlementsRequest(RequestModel):
    """Request schema for the entitlements endpoint; fields depend on ``action``"""
    action: EntitlementAction = "get_context"
    plan_tier: Optional[str] = None
    feature_key: Optional[str] = None
    enabled: Optional[bool] = None
    limit_value: Optional[int] = None
    event_name: Optional[str] = None
    trip_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    days: Optional[int] = None


class ImportDocumentRequest(RequestModel):
    file_base64: str = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1, max_length=300)
    mime_type: Optional[str] = Field(None, max_length=120)
    trip_id: Optional[str] = None
    trip_destination: Optional[str] = Field(None, max_length=220)


class ConfirmImportRequest(RequestModel):
    canonical: Optional[Dict[str, Any]] = Field(None, description="Edited canonical payload")


def decode_file_base64(value: str) -> bytes:
    """Accept raw base64 or a ``data:<mime>;base64,`` URL."""
    if value.startswith("data:") and "," in value:
        value = value.split(",", 1)[1]
    value = "".join(value.split())
    try:
        content = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise ApiError(ErrorCode.BAD_REQUEST, "fileBase64 is not valid base64")
    if not content:
        raise ApiError(ErrorCode.BAD_REQUEST, "fileBase64 decodes to an empty file")
    return content
