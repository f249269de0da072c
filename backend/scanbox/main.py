from __future__ import annotations
import argparse
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from scanbox.config import Settings, settings as default_settings
from scanbox.container import build_container
from scanbox.core.ports.storage import IPartWriter
from scanbox.router.health import router as health_router
from scanbox.router.upload import router as upload_router

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(message)s"

logger = logging.getLogger("scanbox.app")


def log_level(verbosity: int) -> int:
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(verbosity: int) -> None:
    level = log_level(verbosity)
    logging.basicConfig(format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S", level=level, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)


# ============================================================
# 🚀 App factory
# ============================================================
def create_app(settings: Optional[Settings] = None, writer: Optional[IPartWriter] = None) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # an unusable root is fatal: the server never starts accepting uploads
        app.state.container = build_container(settings, writer=writer)
        logger.info("🎯 Accepting uploads into %s", app.state.container.root)
        try:
            yield
        finally:
            logger.info("🧹 Shutdown complete")

    app = FastAPI(
        title="scanbox",
        description="Accepts multipart scan uploads and writes them to disk",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(health_router)
    app.include_router(upload_router)
    return app


app = create_app()


# ============================================================
# 🏁 Entrypoint
# ============================================================
def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="scanbox",
        description="Simple HTTP server that accepts file uploads and writes them to disk",
    )
    parser.add_argument("-a", "--address", help=f"bind address (default {default_settings.address})")
    parser.add_argument("-p", "--port", type=int, help=f"bind port (default {default_settings.port})")
    parser.add_argument("-r", "--root", type=Path, help="directory uploads are written to")
    parser.add_argument("-v", "--verbosity", action="count", default=None,
                        help="increase log verbosity (-v info, -vv debug)")
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    base = base or default_settings
    overrides = {
        "address": args.address,
        "port": args.port,
        "root_dir": args.root,
        "verbosity": args.verbosity,
    }
    return base.model_copy(update={k: v for k, v in overrides.items() if v is not None})


def run(argv=None) -> None:
    import uvicorn

    settings = settings_from_args(parse_args(argv))
    configure_logging(settings.verbosity)
    try:
        settings.check_root()
    except RuntimeError as e:
        logger.critical("❌ %s", e)
        raise SystemExit(1) from e

    logger.info("Starting scanbox on %s:%d", settings.address, settings.port)
    uvicorn.run(
        create_app(settings),
        host=settings.address,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
