"""FastAPI proxy that forwards chat completions to OpenRouter."""

from __future__ import annotations

import argparse
import logging
from typing import Dict, Optional
from urllib.parse import urlparse

import httpx
import openai
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from utils.config import (
    APP_TITLE, PROXY_MODEL, PROXY_PATH,
    load_api_key, get_cors_allow_origin, get_production_domain
)
from utils.providers import create_upstream_client

logger = logging.getLogger(__name__)

app = FastAPI(title=APP_TITLE, version="0.1.0")

LOCAL_MARKERS = ("localhost", "127.0.0.1")


def _is_local(value: str) -> bool:
    return any(marker in value for marker in LOCAL_MARKERS)


def build_cors_headers(request: Request, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """CORS headers; local dev gets a wildcard, deployments the configured origin."""
    origin = request.headers.get("origin", "")
    hostname = request.url.hostname or ""
    is_local = _is_local(origin) or _is_local(hostname)
    allow_origin = "*" if is_local else (get_cors_allow_origin() or "*")

    headers = {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
    }
    if extra:
        headers.update(extra)
    return headers


def is_allowed_request(request: Request) -> bool:
    """Basic origin check. Easily spoofed, it only filters casual use."""
    origin = request.headers.get("origin", "")
    referer = request.headers.get("referer", "")
    domain = get_production_domain()
    return _is_local(origin) or domain in origin or domain in referer


def _request_origin(request: Request) -> str:
    parsed = urlparse(str(request.url))
    return f"{parsed.scheme}://{parsed.netloc}"


@app.options(PROXY_PATH)
async def preflight(request: Request) -> Response:
    return Response(status_code=204, headers=build_cors_headers(request))


@app.post(PROXY_PATH)
async def forward_completion(request: Request) -> Response:
    if not is_allowed_request(request):
        logger.warning(f"Rejected request from origin={request.headers.get('origin', '')!r}")
        return PlainTextResponse("Forbidden", status_code=403, headers=build_cors_headers(request))

    api_key = load_api_key()
    if not api_key:
        logger.error("OPENROUTER_API_KEY is not configured")
        return PlainTextResponse(
            "Missing OPENROUTER_API_KEY", status_code=500, headers=build_cors_headers(request)
        )

    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        return PlainTextResponse("Invalid JSON body", status_code=400, headers=build_cors_headers(request))

    # The proxy always decides which model is billed
    proxy_body = {**body, "model": PROXY_MODEL}

    client = create_upstream_client(api_key, referer=_request_origin(request))
    logger.info(f"[API CALL] Forwarding completion | Model: {PROXY_MODEL}")
    try:
        upstream = await client.post("/chat/completions", cast_to=httpx.Response, body=proxy_body)
        status_code, content = upstream.status_code, upstream.content
    except openai.APIStatusError as e:
        status_code, content = e.status_code, e.response.content
    except openai.APIConnectionError as e:
        logger.error(f"Upstream connection failed: {type(e).__name__}: {str(e)}")
        return PlainTextResponse("Upstream unavailable", status_code=502, headers=build_cors_headers(request))
    finally:
        await client.close()

    logger.info(f"[API RETURN] Upstream status {status_code}")
    return Response(
        content=content,
        status_code=status_code,
        headers=build_cors_headers(request, {"Content-Type": "application/json"}),
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the OpenRouter proxy")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
