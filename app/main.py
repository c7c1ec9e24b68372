"""Sandbox auto-repair service -- FastAPI application entry point."""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routers.health import router as health_router
from app.api.routers.sandbox import router as sandbox_router
from app.api.routers.ws import router as ws_router
from app.clients import llm_client
from app.config import VERSION, settings
from app.middleware.exception_handler import setup_exception_handlers
from app.services.repair_service import shutdown_all as _shutdown_repairs
from app.ws_manager import manager as ws_manager

logger = logging.getLogger(__name__)


class _ColorFormatter(logging.Formatter):
    """ANSI-colored log formatter for terminal output."""

    _COLORS = {
        logging.DEBUG:    "\033[36m",     # cyan
        logging.INFO:     "\033[32m",     # green
        logging.WARNING:  "\033[33m",     # yellow
        logging.ERROR:    "\033[31m",     # red
        logging.CRITICAL: "\033[1;31m",   # bold red
    }
    _RESET = "\033[0m"
    _DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self._COLORS.get(record.levelno, "")
        ts = self.formatTime(record, "%H:%M:%S")
        name = record.name.split(".")[-1][:16]
        msg = record.getMessage()
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"
        return (
            f"{self._DIM}{ts}{self._RESET} "
            f"{color}{record.levelname:<8s}{self._RESET} "
            f"{self._DIM}[{name:>16s}]{self._RESET} "
            f"{color}{msg}{self._RESET}"
        )


class _PlainFormatter(logging.Formatter):
    """Plain-text formatter for file logs (no ANSI codes)."""

    def format(self, record: logging.LogRecord) -> str:
        ts = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        name = record.name.split(".")[-1][:16]
        msg = record.getMessage()
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"
        return f"{ts} {record.levelname:<8s} [{name:>16s}] {msg}"


def configure_logging() -> None:
    """Install the stderr colour handler and the optional rotating file log."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_ColorFormatter())
    handlers: list[logging.Handler] = [handler]

    # Set LOG_FILE in .env (e.g. LOG_FILE=logs/autofix.log) to keep a copy on disk.
    if settings.LOG_FILE:
        from logging.handlers import RotatingFileHandler
        from pathlib import Path

        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_path),
            maxBytes=10 * 1024 * 1024,  # 10 MB per file
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setFormatter(_PlainFormatter())
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # Quiet noisy loggers; uvicorn access logs flood the terminal
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Application lifespan: startup and shutdown hooks."""
    if "pytest" not in sys.modules:
        configure_logging()
    logger.info(
        "Sandbox auto-repair %s starting (provider=%s)", VERSION, settings.LLM_PROVIDER,
    )
    await ws_manager.start_heartbeat()
    yield
    # Shutdown sequence, order matters:
    # 1. Stop heartbeat (no more WS pings)
    # 2. Abort running repairs (they hold open LLM streams)
    # 3. Close the shared HTTP client
    await ws_manager.stop_heartbeat()
    await _shutdown_repairs()
    await llm_client.close_client()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="Sandbox Auto-Repair",
        version=VERSION,
        description="Detects sandbox build faults and repairs them with an LLM",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    # Register all global exception handlers (structured JSON responses
    # with request_id tracing, see app/middleware/exception_handler.py).
    setup_exception_handlers(application)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    application.include_router(health_router)
    application.include_router(sandbox_router)
    application.include_router(ws_router)
    return application


app = create_app()
