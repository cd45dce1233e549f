# core/server_factory.py

import logging
from typing import Optional

from fastapi import FastAPI

from core.chaos.random_source import RandomFactory, new_request_rng
from core.metrics_registry import MetricsRegistry
from core.pipeline import PipelineRunner
from core.pipeline_middleware import ChaosPipelineMiddleware
from core.routes import register_routes
from settings.config_loader import ServerSettings

logger = logging.getLogger(__name__)


def create_server(settings: Optional[ServerSettings] = None,
                  metrics: Optional[MetricsRegistry] = None,
                  rng_factory: RandomFactory = new_request_rng) -> FastAPI:
    """
    Creates the echo server app with the chaos/metrics pipeline in front of
    every route.

    The chaos config and the metrics registry are created once here and
    shared by reference with every request.
    """
    settings = settings or ServerSettings()
    metrics = metrics or MetricsRegistry()

    app = FastAPI(title="Rucho", description="HTTP echo server with chaos injection")
    app.state.settings = settings
    app.state.chaos_config = settings.chaos
    app.state.metrics = metrics

    register_routes(app)

    runner = PipelineRunner(config=settings.chaos, metrics=metrics, rng_factory=rng_factory)
    app.add_middleware(ChaosPipelineMiddleware, runner=runner)

    if settings.chaos.is_enabled():
        logger.info(f"Chaos enabled: {', '.join(sorted(m.value for m in settings.chaos.modes))}")
    else:
        logger.info("Chaos disabled")

    return app
