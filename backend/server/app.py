"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware and logging
- Initialize shared resources (preference store, session controller)
- Register routes
"""

from __future__ import annotations

import importlib
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from callstate.runtime_context import TransportFactory
from config import AppConfig
from observability import logger
from session.controller import SessionController
from session.preferences import PreferenceStore

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    transport_factory: TransportFactory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with a fake transport and a temporary preference file
    - Environment-specific setup
    - ASGI server compatibility
    """
    if config is None:
        config = AppConfig.load_from_env()

    logger.configure(level=config.log_level, json_output=config.enable_json_logs)

    if transport_factory is None:
        if not config.transport_factory:
            raise RuntimeError("TRANSPORT_FACTORY environment variable not set")
        transport_factory = load_transport_factory(config.transport_factory)

    # One controller per process: this surface drives a single call
    controller = SessionController(
        config=config,
        transport_factory=transport_factory,
        preferences=PreferenceStore(config.preferences_path),
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await controller.shutdown()

    app = FastAPI(title="Voice Call API", lifespan=lifespan)

    app.state.config = config
    app.state.controller = controller

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app


def load_transport_factory(path: str) -> TransportFactory:
    """Resolve a "package.module:attribute" path to a transport factory."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"TRANSPORT_FACTORY must look like 'module:attribute', got {path!r}")

    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    if not callable(factory):
        raise TypeError(f"{path} is not callable")
    return factory
