# Filename: orgdrive/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .db import init_db
from .errors import DriveError
from .routers import auth as auth_router
from .routers import documents as documents_router
from .routers import folders as folders_router
from .routers import organizations as organizations_router
from .routers import root as root_router

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug)

origins = ["*"] if settings.cors_allow_origins == "*" else [o.strip() for o in settings.cors_allow_origins.split(",")]
allow_methods = ["*"] if settings.cors_allow_methods == "*" else [m.strip() for m in settings.cors_allow_methods.split(",")]
allow_headers = ["*"] if settings.cors_allow_headers == "*" else [h.strip() for h in settings.cors_allow_headers.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=allow_methods,
    allow_headers=allow_headers,
)


@app.exception_handler(DriveError)
async def drive_error_handler(request: Request, exc: DriveError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.error_type, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


app.include_router(auth_router.router)
app.include_router(organizations_router.router)
app.include_router(folders_router.router)
app.include_router(documents_router.router)
app.include_router(root_router.router)


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("%s %s started (%s)", settings.app_name, settings.app_version, settings.environment)
