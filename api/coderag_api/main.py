import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from coderag_api.api.router import api_router
from coderag_api.core.config import get_settings
from coderag_api.core.responses import install_exception_handlers

settings = get_settings()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)
install_exception_handlers(app)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
