"""
Data models for the client layer using Pydantic.

``Outcome`` is the only value callers ever receive from a request; it is
immutable so a classified result can be compared, cached by the caller or
shared between tasks without defensive copies.  ``RequestDescriptor``
captures everything needed to re-issue a request after a token refresh.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .config import AuthOperation


class Outcome(BaseModel):
    """Normalised result of a client operation."""

    model_config = ConfigDict(frozen=True)

    is_success: bool
    status_code: int
    payload: Any = None
    error_message: str = ""

    @model_validator(mode="after")
    def _check_message(self) -> "Outcome":
        if self.is_success and self.error_message:
            raise ValueError("successful outcome cannot carry an error message")
        if not self.is_success and not self.error_message:
            raise ValueError("failed outcome requires an error message")
        return self

    @classmethod
    def success(cls, status_code: int, payload: Any = None) -> "Outcome":
        return cls(is_success=True, status_code=status_code, payload=payload)

    @classmethod
    def failure(cls, status_code: int, error_message: str, payload: Any = None) -> "Outcome":
        return cls(
            is_success=False,
            status_code=status_code,
            payload=payload,
            error_message=error_message,
        )


class FileUpload(BaseModel):
    """File part of a multipart request, read into memory before dispatch."""

    model_config = ConfigDict(frozen=True)

    field_name: str
    filename: str
    content: bytes
    content_type: str
    fields: Dict[str, str] = Field(default_factory=dict)


class RequestDescriptor(BaseModel):
    """A single request as issued by the façade.

    ``auth_operation`` is decided when the descriptor is built; a
    descriptor carrying one is never retried after a refresh.
    """

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    query: List[Tuple[str, str]] = Field(default_factory=list)
    body: Any = None
    upload: Optional[FileUpload] = None
    token: Optional[str] = None
    auth_operation: Optional[AuthOperation] = None

    @property
    def refresh_eligible(self) -> bool:
        return self.auth_operation is None


class RawResponse(BaseModel):
    """Status, body and headers of a response as received from the wire."""

    model_config = ConfigDict(frozen=True)

    status: int
    body: bytes = b""
    headers: Dict[str, str] = Field(default_factory=dict)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["TokenPair"]:
        """Extract a token pair from an auth response body, if present."""
        if not isinstance(payload, dict):
            return None
        access = payload.get("token") or payload.get("access_token") or payload.get("accessToken")
        if not access or not isinstance(access, str):
            return None
        refresh = payload.get("refresh_token") or payload.get("refreshToken")
        if refresh is not None and not isinstance(refresh, str):
            refresh = None
        return cls(access_token=access, refresh_token=refresh or None)


class User(BaseModel):
    id: str = ""
    name: str = ""
    email: str = ""
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    avatar_url: Optional[str] = Field(None, alias="avatarUrl")
    role: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_payload(cls, data: Any) -> "User":
        if not isinstance(data, dict):
            return cls()
        # Identifiers and names arrive as strings or numbers depending on backend
        values = {key: str(value) for key, value in data.items() if value is not None}
        return cls.model_validate(values)


__all__ = ["Outcome", "FileUpload", "RequestDescriptor", "RawResponse", "TokenPair", "User"]
