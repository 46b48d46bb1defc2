"""
Wire models for the AuthProxy API.

Every endpoint answers with an envelope of the form
``{"result": <T or null>, "error": {"code": ..., "message": ...} or null}``.
"""

import json
import logging
from typing import Any, Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from .errors import AuthProxyError, ErrorKind, ProtocolFailure, TransportError, UnauthenticatedError

logger = logging.getLogger(__name__)

FAILURE_RESULT = "Failure"


class ApiError(BaseModel):
    """Structured error returned by the server or produced locally."""
    code: Optional[Union[int, str]] = None
    message: Optional[str] = None
    kind: ErrorKind = ErrorKind.PROTOCOL


class ApiResponse(BaseModel):
    """Outcome of a protocol call: a result, an error, or both for a "Failure" status."""
    result: Any = None
    error: Optional[ApiError] = None
    headers: Dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None and self.result != FAILURE_RESULT

    @classmethod
    def failure(cls, exc: AuthProxyError) -> "ApiResponse":
        return cls(result=None, error=exc.to_api_error())

    @classmethod
    def from_http(cls, response) -> "ApiResponse":
        """
        Build an ApiResponse from a transport ``HttpResponse``.

        HTTP 401 maps to an unauthenticated error, any other non-2xx status to
        a transport error, and an undecodable body to a protocol failure.
        """
        if response.status == 401:
            return cls.failure(UnauthenticatedError(
                f"Status: {response.status}. {response.reason}"
            ))
        if not 200 <= response.status < 300:
            return cls.failure(TransportError(
                f"Status: {response.status}. {response.reason}", code=response.status
            ))

        try:
            data = json.loads(response.body or b"null")
        except ValueError:
            return cls.failure(ProtocolFailure("Response body is not valid JSON"))

        if not isinstance(data, dict):
            return cls.failure(ProtocolFailure("Response body is not a JSON object"))

        error = None
        if data.get("error"):
            raw = data["error"]
            try:
                if isinstance(raw, dict):
                    error = ApiError(code=raw.get("code"), message=raw.get("message"))
                else:
                    error = ApiError(message=str(raw))
            except PydanticValidationError as e:
                logger.warning(f"Unexpected error payload: {e}")
                return cls.failure(ProtocolFailure("Malformed error envelope"))

        result = data.get("result")
        if error is None and result == FAILURE_RESULT:
            error = ApiError(message="Server reported failure")

        return cls(result=result, error=error, headers=dict(response.headers))

    def parse_result(self, model: Type[BaseModel], many: bool = False) -> "ApiResponse":
        """Validate ``result`` into ``model`` (or a list of them) when successful."""
        if self.error is not None or self.result is None:
            return self
        try:
            if many:
                parsed = [model.model_validate(item) for item in self.result]
            else:
                parsed = model.model_validate(self.result)
        except (PydanticValidationError, TypeError) as e:
            logger.warning(f"Unexpected {model.__name__} payload: {e}")
            return ApiResponse.failure(ProtocolFailure(f"Malformed {model.__name__} result"))
        return self.model_copy(update={"result": parsed})


class Fido2Options(BaseModel):
    """Registration-specific challenge block nested in AuthOptions."""
    model_config = ConfigDict(extra="allow")

    challenge: Optional[str] = None


class AuthOptions(BaseModel):
    """Challenge bundle returned by login_options and register_options."""
    model_config = ConfigDict(extra="allow")

    challenge: Optional[str] = None
    challenge_id: Optional[Union[int, str]] = None
    fido2_options: Optional[Fido2Options] = None


class LoginInfo(BaseModel):
    """Signed challenge submitted to auth/v1/login."""
    challenge_id: Optional[Union[int, str]] = None
    public_key: str
    signature: str
    credential: Optional[Any] = None


class RegisterKeyInfo(BaseModel):
    """Signed registration challenge submitted to auth/v1/register_key."""
    challenge_id: Optional[Union[int, str]] = None
    code: str
    public_key: str
    signature: str


class ServerInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    version: Optional[str] = None


class UserLoginLog(BaseModel):
    model_config = ConfigDict(extra="allow")

    date: Optional[int] = None
    ip: Optional[str] = None
    device: Optional[str] = None
    result: Optional[str] = None


class UserSession(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    device: Optional[str] = None
    ip: Optional[str] = None
    current: Optional[bool] = None


class UserKey(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    public_key: Optional[str] = None
    created: Optional[int] = None


__all__ = [
    "FAILURE_RESULT",
    "ApiError",
    "ApiResponse",
    "AuthOptions",
    "Fido2Options",
    "LoginInfo",
    "RegisterKeyInfo",
    "ServerInfo",
    "UserLoginLog",
    "UserSession",
    "UserKey",
]
