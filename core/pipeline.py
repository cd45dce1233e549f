import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from core.chaos.random_source import RandomFactory, new_request_rng
from core.chaos_engine import CHAOS_HEADER, ChaosEngine
from core.messages import PipelineRequest, PipelineResponse
from core.metrics_registry import MetricsRegistry
from core.path_normalizer import normalize_path
from core.timing import RequestTiming
from settings.chaos_config import ChaosConfig

logger = logging.getLogger(__name__)

HandlerCall = Callable[[PipelineRequest, RequestTiming], Awaitable[PipelineResponse]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class RequestContext:
    """Per-request state handed from stage to stage."""
    request: PipelineRequest
    rng: random.Random
    timing: Optional[RequestTiming] = None
    applied: List[str] = field(default_factory=list)
    response: Optional[PipelineResponse] = None
    short_circuited: bool = False


# Pre-handler stages may set ctx.response to short-circuit the handler.
PreStage = Callable[["PipelineRunner", RequestContext], Awaitable[None]]
# Post-handler stages operate on ctx.response.
PostStage = Callable[["PipelineRunner", RequestContext], Awaitable[None]]


async def start_timing(runner: "PipelineRunner", ctx: RequestContext) -> None:
    ctx.timing = RequestTiming.start()


async def inject_failure_or_delay(runner: "PipelineRunner", ctx: RequestContext) -> None:
    decision = runner.engine.evaluate(ctx.request, runner.config, ctx.rng)
    ctx.applied.extend(decision.applied)

    if decision.short_circuit:
        ctx.response = decision.response
        ctx.short_circuited = True
        return

    if decision.delay_ms > 0:
        await runner.sleep(decision.delay_ms / 1000.0)


async def corrupt_response(runner: "PipelineRunner", ctx: RequestContext) -> None:
    if ctx.short_circuited:
        return
    ctx.response = runner.engine.apply_corruption(ctx.response, runner.config, ctx.rng, ctx.applied)


async def record_metrics(runner: "PipelineRunner", ctx: RequestContext) -> None:
    runner.metrics.record(normalize_path(ctx.request.path), ctx.response.status_code)


async def stamp_chaos_header(runner: "PipelineRunner", ctx: RequestContext) -> None:
    if runner.config.inform_header and ctx.applied:
        ctx.response.set_header(CHAOS_HEADER, ",".join(ctx.applied))


PRE_HANDLER_STAGES: List[PreStage] = [start_timing, inject_failure_or_delay]
POST_HANDLER_STAGES: List[PostStage] = [corrupt_response, record_metrics, stamp_chaos_header]


class PipelineRunner:
    """
    Drives one request through the ordered stage list:

        timing -> failure -> delay -> handler -> corruption -> metrics -> X-Chaos

    A single runner is shared by all requests; per-request state lives in
    RequestContext. The chaos config and the metrics registry are shared by
    reference.
    """

    def __init__(
        self,
        config: ChaosConfig,
        metrics: MetricsRegistry,
        engine: Optional[ChaosEngine] = None,
        rng_factory: RandomFactory = new_request_rng,
        sleep: Sleep = asyncio.sleep,
        pre_stages: Optional[List[PreStage]] = None,
        post_stages: Optional[List[PostStage]] = None,
    ):
        self.config = config
        self.metrics = metrics
        self.engine = engine or ChaosEngine()
        self.rng_factory = rng_factory
        self.sleep = sleep
        self.pre_stages = list(PRE_HANDLER_STAGES if pre_stages is None else pre_stages)
        self.post_stages = list(POST_HANDLER_STAGES if post_stages is None else post_stages)

    def new_context(self, request: PipelineRequest) -> RequestContext:
        return RequestContext(request=request, rng=self.rng_factory())

    async def run(self, request: PipelineRequest, call_handler: HandlerCall) -> PipelineResponse:
        """
        Process one request.

        Args:
            request: Inbound request
            call_handler: Invokes the route handler; skipped on short-circuit

        Returns:
            PipelineResponse: Final, decorated response
        """
        ctx = self.new_context(request)

        for stage in self.pre_stages:
            await stage(self, ctx)
            if ctx.short_circuited:
                break

        if not ctx.short_circuited:
            ctx.response = await call_handler(request, ctx.timing)

        for stage in self.post_stages:
            await stage(self, ctx)

        return ctx.response
