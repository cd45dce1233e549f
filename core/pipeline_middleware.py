import logging
from typing import List

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.messages import Header, PipelineRequest, PipelineResponse
from core.pipeline import PipelineRunner
from core.timing import RequestTiming

logger = logging.getLogger(__name__)

TIMING_STATE_KEY = "timing"
NO_BODY_STATUSES = (204, 304)


class ChaosPipelineMiddleware:
    """
    ASGI middleware that routes every HTTP request through a PipelineRunner.

    The downstream app is invoked as the pipeline's handler hook; its
    response is buffered so the corruption stage can rewrite the body before
    anything reaches the client.
    """

    def __init__(self, app: ASGIApp, runner: PipelineRunner):
        self.app = app
        self.runner = runner

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = PipelineRequest(
            method=scope["method"],
            path=scope["path"],
            headers=[(k.decode("latin-1"), v.decode("latin-1")) for k, v in scope.get("headers", [])],
            query_string=scope.get("query_string", b"").decode("latin-1"),
        )

        async def call_handler(pipeline_request: PipelineRequest, timing: RequestTiming) -> PipelineResponse:
            scope.setdefault("state", {})[TIMING_STATE_KEY] = timing
            return await self._call_app(scope, receive)

        response = await self.runner.run(request, call_handler)
        await self._send_response(request, response, send)

    async def _call_app(self, scope: Scope, receive: Receive) -> PipelineResponse:
        status_code = 500
        headers: List[Header] = []
        chunks: List[bytes] = []

        async def capture(message: Message) -> None:
            nonlocal status_code, headers
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = [(k.decode("latin-1"), v.decode("latin-1")) for k, v in message.get("headers", [])]
            elif message["type"] == "http.response.body":
                chunks.append(message.get("body", b""))

        await self.app(scope, receive, capture)
        return PipelineResponse(status_code=status_code, headers=headers, body=b"".join(chunks))

    async def _send_response(self, request: PipelineRequest, response: PipelineResponse, send: Send) -> None:
        # HEAD, 204 and 304 responses carry no body of their own
        if request.method != "HEAD" and response.status_code not in NO_BODY_STATUSES:
            response.set_header("content-length", str(len(response.body)))

        await send({
            "type": "http.response.start",
            "status": response.status_code,
            "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in response.headers],
        })
        await send({"type": "http.response.body", "body": response.body})
