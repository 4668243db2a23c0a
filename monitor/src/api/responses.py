"""
Response envelope shared by every dashboard endpoint.

Every ``/api`` route answers with ``{"success", "data", "error"}``. Payloads
are serialised with camelCase aliases and integer enum values, the contract
the dashboard consumes. Failed results map to a status code by error kind.

CHANGELOG:
- 2026-10-09: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from monitor.src.result import ErrorKind, Result

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_SYNCED: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNSUPPORTED: 404,
    ErrorKind.TRANSPORT: 502,
    ErrorKind.DECODE: 502,
}
"""HTTP status for each failure kind."""


class ApiResponse(BaseModel):
    """Envelope returned by every dashboard endpoint.

    Attributes:
        success: Whether the request succeeded.
        data: Payload on success, ``None`` on failure.
        error: Human-readable message on failure, ``None`` on success.
    """

    success: bool
    data: Any = None
    error: str | None = None


def to_response(result: Result[Any]) -> JSONResponse:
    """Wrap a service result in the envelope and pick the status code.

    Args:
        result: Outcome of a query service call.

    Returns:
        A 200 response carrying the payload, or the mapped error status
        carrying the message.
    """
    if result.is_failure:
        status_code = STATUS_BY_KIND.get(result.kind or ErrorKind.TRANSPORT, 500)
        body = ApiResponse(success=False, error=result.error)
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

    body = ApiResponse(success=True, data=jsonable_encoder(result.value, by_alias=True))
    return JSONResponse(status_code=200, content=body.model_dump(mode="json"))
