from __future__ import annotations

from typing import Any, Dict, Union

from pydantic import BaseModel, ConfigDict, Field, JsonValue, ValidationError as PydanticValidationError

from realmauth.errors import DeserializationFailure, ValidationError

CODEC_VERSION = 1


class StoredIdentity(BaseModel):
    """Schema of the identity payload written to a backing store."""

    model_config = ConfigDict(extra="forbid", allow_inf_nan=False)

    v: int = Field(CODEC_VERSION, description="payload schema version")
    claims: Dict[str, JsonValue] = Field(default_factory=dict)


class IdentityCodec:
    """Encode claim maps to bytes and back.

    Claims must be JSON-compatible (str, int, float, bool, None, lists and
    string-keyed dicts of those); ``decode(encode(claims)) == claims`` holds
    for any such map. Anything else (dates, sets, tuples, custom objects)
    is rejected with ``ValidationError`` instead of being coerced.
    """

    def encode(self, claims: Dict[str, Any]) -> bytes:
        try:
            payload = StoredIdentity(claims=claims)
            return payload.model_dump_json().encode("utf-8")
        except (PydanticValidationError, TypeError, ValueError) as exc:
            raise ValidationError(
                "identity claims are not serializable", detail={"error": str(exc)}
            ) from exc

    def decode(self, raw: Union[bytes, str, None]) -> Dict[str, Any]:
        if raw is None:
            raise DeserializationFailure("no identity payload to decode")
        try:
            payload = StoredIdentity.model_validate_json(raw)
        except (PydanticValidationError, ValueError) as exc:
            raise DeserializationFailure(
                "stored identity payload is malformed",
                detail={"error_type": type(exc).__name__},
            ) from exc
        if payload.v != CODEC_VERSION:
            raise DeserializationFailure(
                "unsupported identity payload version", detail={"version": payload.v}
            )
        return payload.claims


default_codec = IdentityCodec()
