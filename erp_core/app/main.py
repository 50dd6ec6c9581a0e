import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_log_level
from .db import create_db_and_tables
from .routers.rules import router as rules_router

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def get_cors_origins():
    """Get CORS origins from environment or use defaults for development"""
    origins_env = os.getenv("CORS_ORIGINS", "")
    if origins_env:
        return [o.strip() for o in origins_env.split(",") if o.strip()]
    # Default development origins
    return [
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ]


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Pipe ERP Business Rules",
        description="Document lifecycle, deletion, FIFO and traceability rules for pipe trading",
        version="1.0.0"
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rules_router)

    @app.on_event("startup")
    def on_startup():
        create_db_and_tables()
        logger.info("Database ready")

    return app


app = create_app()
