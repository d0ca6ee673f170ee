from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.app.config import get_settings
from src.app.routes import router
from src.services.errors import CalendarIntegrationError
from src.utils.logging import configure_logging

settings = get_settings()
configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name, debug=settings.debug)
app.include_router(router)


@app.exception_handler(CalendarIntegrationError)
def calendar_error_handler(request: Request, exc: CalendarIntegrationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
