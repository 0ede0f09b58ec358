import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from db import create_db_and_tables
from errors import LifecycleError, ValidationError
from routers import auth, donations, requests, users

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("donations")

app = FastAPI(title="Donation matching")


@app.on_event("startup")
def on_startup() -> None:
    create_db_and_tables()


@app.exception_handler(LifecycleError)
def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    content = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, ValidationError) and exc.errors:
        content["errors"] = jsonable_encoder(exc.errors)
    logger.info("%s %s -> %s (%s)", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(auth.router)
app.include_router(users.router, prefix="/users")
app.include_router(donations.router, prefix="/donations")
app.include_router(requests.router, prefix="/requests")
