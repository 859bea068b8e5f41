import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from mangum import Mangum
from starlette.middleware.cors import CORSMiddleware

from volsync import containers
from volsync.config import settings
from volsync.core.exception_handlers import register_exception_handlers
from volsync.core.logging_middleware import LoggingMiddleware
from volsync.logging_config import init_logging
from volsync.routers import admin_router, health_router, reconcile_router, webhook_router

load_dotenv("volsync/.env")
init_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)
app.container = containers.Container()  # type: ignore

app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(health_router.router)
app.include_router(webhook_router.router)
app.include_router(reconcile_router.router)
app.include_router(admin_router.router)

handler = Mangum(app)
