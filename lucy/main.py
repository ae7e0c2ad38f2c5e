import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from lucy.core.config import settings
from lucy.core.database import engine
from lucy.core.errors import LucyError
from lucy.api.router import api_router


# Close the engine once everything is done and close all the sessions
@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await engine.dispose()


app = FastAPI(title="Lucy Premium Freight Assistant", lifespan=lifespan)

# Signed cookie session, filled in by /auth/login
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SECRET_KEY,
    max_age=settings.SESSION_MAX_AGE,
    same_site="lax",
)

# Include the master router containing all our endpoints
app.include_router(api_router)


# Every failure leaves the API in the same envelope: {"status": "error", "message": ...}
@app.exception_handler(LucyError)
async def lucy_error_handler(request: Request, exc: LucyError):
    if exc.status_code >= 500:
        logging.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "status": "error",
            "message": "Malformed request",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


@app.get("/")
async def root():
    return {"message": "Welcome to the Lucy Premium Freight API"}
