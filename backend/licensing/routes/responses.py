"""
Structured result → HTTP response mapping shared by the mutating routes.
"""
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from licensing.exceptions import http_status_for


def result_response(body: BaseModel) -> JSONResponse:
    """Serialize a result model; failures carry their mapped HTTP status."""
    code = getattr(body, "code", None) if not getattr(body, "success", True) else None
    return JSONResponse(status_code=http_status_for(code), content=jsonable_encoder(body))
