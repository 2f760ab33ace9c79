import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import ServerConfig
from dataset_loader import load_meta
from dataset_router import router
from tree_cache import Loader, TreeCache

logger = logging.getLogger(__name__)


def create_app(config: Optional[ServerConfig] = None, loader: Loader = load_meta) -> FastAPI:
    config = config or ServerConfig.from_env()

    app = FastAPI(title="points-index")

    # =========================
    # CORS (frontend Angular)
    # =========================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================
    # TREE CACHE
    # =========================
    # One cache per process, shared by every request handler.
    app.state.config = config
    app.state.tree_cache = TreeCache.from_config(config, loader)
    logger.info(
        "🌲 Serving datasets from %r (default dataset %r)",
        config.data_prefix,
        config.default_dataset,
    )

    app.include_router(router)

    @app.get("/")
    def root():
        return {"status": "ok"}

    return app
