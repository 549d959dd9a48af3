"""
YoursAI - API Routes
=====================
Thin HTTP controllers.  Each handler reads the raw body and the
``Authorization`` header, hands them to its orchestrator and serialises
the returned ``EndpointResponse``.  No business logic lives here.

    POST /chat    → ChatOrchestrator
    POST /ingest  → IngestOrchestrator
    GET  /health  → liveness probe
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from yoursai.src.core.responses import CORS_HEADERS, EndpointResponse

router = APIRouter()


def _to_json(response: EndpointResponse) -> JSONResponse:
    return JSONResponse(status_code=response.status_code, content=response.body, headers=response.headers)


@router.post("/chat", tags=["chat"])
async def chat(request: Request) -> JSONResponse:
    services = request.app.state.services
    body = await request.body()
    return _to_json(await services.chat.handle(request.headers.get("Authorization"), body))


@router.post("/ingest", tags=["ingest"])
async def ingest(request: Request) -> JSONResponse:
    services = request.app.state.services
    body = await request.body()
    return _to_json(await services.ingest.handle(request.headers.get("Authorization"), body))


@router.get("/health", tags=["health"])
async def health() -> JSONResponse:
    return JSONResponse(content={"status": "ok"}, headers=CORS_HEADERS)
