import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse, Response

logger = logging.getLogger(__name__)

MAX_DELAY_SECONDS = 300
MAX_REDIRECT_HOPS = 20

ANY_METHOD = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]
ALLOWED_METHODS_HEADER = "GET, POST, PUT, PATCH, DELETE, OPTIONS, HEAD"

API_ENDPOINTS = [
    {"path": "/", "method": "GET", "description": "Root welcome message."},
    {"path": "/get", "method": "GET", "description": "Echoes request details for GET."},
    {"path": "/get", "method": "HEAD", "description": "Responds with headers for GET query."},
    {"path": "/post", "method": "POST", "description": "Echoes request details for POST."},
    {"path": "/put", "method": "PUT", "description": "Echoes request details for PUT."},
    {"path": "/patch", "method": "PATCH", "description": "Echoes request details for PATCH."},
    {"path": "/delete", "method": "DELETE", "description": "Echoes request details for DELETE."},
    {"path": "/options", "method": "OPTIONS", "description": "Responds with allowed HTTP methods."},
    {"path": "/status/:code", "method": "ANY", "description": "Returns the specified HTTP status code."},
    {"path": "/anything", "method": "ANY", "description": "Echoes request details for any HTTP method."},
    {"path": "/anything/*path", "method": "ANY", "description": "Echoes request details under any sub-path."},
    {"path": "/delay/:n", "method": "ANY", "description": "Delays the response by 'n' seconds."},
    {"path": "/redirect/:n", "method": "ANY", "description": "Returns a chain of 'n' 302 redirects ending at /get."},
    {"path": "/cookies", "method": "GET", "description": "Returns the cookies sent with the request."},
    {"path": "/cookies/set", "method": "GET", "description": "Sets cookies from query parameters."},
    {"path": "/cookies/delete", "method": "GET", "description": "Expires the named cookies."},
    {"path": "/healthz", "method": "GET", "description": "Performs a health check."},
    {"path": "/metrics", "method": "GET", "description": "Request statistics, all time and last hour."},
    {"path": "/endpoints", "method": "GET", "description": "Lists all available API endpoints."},
]

router = APIRouter()


def timed_json(request: Request, payload: Dict[str, Any], status_code: int = 200) -> Response:
    """
    JSON response carrying the request's elapsed time so far.

    The duration comes from the RequestTiming the pipeline started, so any
    injected chaos delay is included.
    """
    timing = getattr(request.state, "timing", None)
    if timing is not None:
        payload["timing"] = {"duration_ms": round(timing.elapsed_ms(), 3)}

    pretty = request.query_params.get("pretty", "").lower() == "true"
    body = json.dumps(payload, indent=2 if pretty else None) + "\n"
    return Response(content=body, status_code=status_code, media_type="application/json")


async def echo_payload(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    text = raw.decode("utf-8", errors="replace")

    parsed: Optional[Any] = None
    if raw:
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None

    return {
        "method": request.method,
        "path": request.url.path,
        "query": request.url.query,
        "args": dict(request.query_params),
        "headers": dict(request.headers),
        "body": text,
        "json": parsed,
    }


def parse_cookies(cookie_header: str) -> Dict[str, str]:
    cookies = {}
    for pair in cookie_header.split("; "):
        name, _, value = pair.partition("=")
        name = name.strip()
        if name:
            cookies[name] = value.strip()
    return cookies


def _parse_non_negative(raw: str) -> Optional[int]:
    return int(raw) if raw.isdigit() else None


@router.get("/")
async def root_handler():
    return PlainTextResponse("Welcome to Rucho echo server!\n")


@router.get("/get")
@router.post("/post")
@router.put("/put")
@router.patch("/patch")
@router.delete("/delete")
async def echo_handler(request: Request):
    return timed_json(request, await echo_payload(request))


@router.head("/get")
async def head_handler():
    return Response(status_code=200, media_type="application/json")


@router.options("/options")
async def options_handler():
    return Response(status_code=204, headers={"Allow": ALLOWED_METHODS_HEADER})


@router.api_route("/status/{code}", methods=ANY_METHOD)
async def status_handler(code: str):
    status_code = _parse_non_negative(code)
    if status_code is None or not 200 <= status_code <= 599:
        return JSONResponse(status_code=400, content={"error": f"Invalid status code: {code}"})
    return Response(status_code=status_code)


@router.api_route("/anything", methods=ANY_METHOD)
@router.api_route("/anything/{path:path}", methods=ANY_METHOD)
async def anything_handler(request: Request):
    return timed_json(request, await echo_payload(request))


@router.api_route("/delay/{n}", methods=ANY_METHOD)
async def delay_handler(n: str, request: Request):
    seconds = _parse_non_negative(n)
    if seconds is None or seconds > MAX_DELAY_SECONDS:
        return JSONResponse(
            status_code=400,
            content={"error": f"Delay must be an integer between 0 and {MAX_DELAY_SECONDS} seconds"},
        )

    await asyncio.sleep(seconds)
    payload = await echo_payload(request)
    payload["delay_seconds"] = seconds
    return timed_json(request, payload)


@router.api_route("/redirect/{n}", methods=ANY_METHOD)
async def redirect_handler(n: str):
    hops = _parse_non_negative(n)
    if hops is None or hops > MAX_REDIRECT_HOPS:
        return PlainTextResponse(
            f"Redirect count of {n} exceeds maximum allowed value of {MAX_REDIRECT_HOPS}",
            status_code=400,
        )

    if hops == 0:
        return PlainTextResponse("Redirect complete")

    location = "/get" if hops == 1 else f"/redirect/{hops - 1}"
    return RedirectResponse(location, status_code=302)


@router.get("/cookies")
async def cookies_handler(request: Request):
    cookies = parse_cookies(request.headers.get("cookie", ""))
    return timed_json(request, {"cookies": cookies})


@router.get("/cookies/set")
async def set_cookies_handler(request: Request):
    response = RedirectResponse("/cookies", status_code=302)
    for name, value in request.query_params.items():
        response.headers.append("set-cookie", f"{name}={value}; Path=/")
    return response


@router.get("/cookies/delete")
async def delete_cookies_handler(request: Request):
    response = RedirectResponse("/cookies", status_code=302)
    for name in request.query_params.keys():
        response.headers.append("set-cookie", f"{name}=; Max-Age=0; Path=/")
    return response


@router.get("/healthz")
async def healthz_handler():
    return PlainTextResponse("OK")


@router.get("/endpoints")
async def endpoints_handler(request: Request):
    return timed_json(request, {"endpoints": API_ENDPOINTS})


@router.get("/metrics")
async def metrics_handler(request: Request):
    snapshot = request.app.state.metrics.snapshot()
    return JSONResponse(content=snapshot.model_dump())


def register_routes(app: FastAPI) -> None:
    """
    Registers the echo and utility routes on the FastAPI app.
    """
    app.include_router(router)
    logger.debug(f"Registered {len(API_ENDPOINTS)} endpoints")
