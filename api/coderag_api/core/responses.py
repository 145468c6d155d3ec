from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException
from starlette.requests import Request


UNPROCESSABLE_STATUS = 422


def envelope(data: Any, *, code: int = status.HTTP_200_OK, message: str = "success") -> dict[str, Any]:
    """Wrap a payload in the ``{code, message, data}`` shape the console expects."""
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, mode="json")
    elif isinstance(data, list):
        data = [item.model_dump(by_alias=True, mode="json") if isinstance(item, BaseModel) else item for item in data]
    return {"code": code, "message": message, "data": data}


def error_body(request: Request, code: int, message: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
    }
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, message),
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "invalid request"
    details = [{"loc": list(error["loc"]), "msg": error["msg"]} for error in errors]
    return JSONResponse(
        status_code=UNPROCESSABLE_STATUS,
        content=error_body(request, UNPROCESSABLE_STATUS, message, error="ValidationError", details=details),
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
