"""
FastAPI render server for gfxs-studio.

Serves the live-preview backend used by the editor and by the ``studio``
orchestration client: named filter storage, source image upload, document
rendering, batch rendering and render events over WebSocket.
"""

import os

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse

from api.app_config import get_settings
from api.shared.logger import get_logger, setup_logging

setup_logging(os.environ.get("GFXS_LOG_LEVEL", "INFO"))
logger = get_logger(__name__)

from api.filters import router as filters_router
from api.render import router as render_router
from api.system import log_error
from api.system import router as system_router
from websocket import RENDER_CHANNEL, ws_manager

app = FastAPI(
    title="gfxs-studio API",
    description="Render server for the gfxs live-preview editor",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)


# ============= Exception Handlers for Error Logging =============


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Log HTTP exceptions and return JSON response."""
    # Only log 5xx errors (server errors)
    if exc.status_code >= 500:
        log_error(
            endpoint=str(request.url.path),
            message=str(exc.detail),
            level="error",
            details=f"Status code: {exc.status_code}",
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Log unexpected exceptions and return JSON response."""
    log_error(
        endpoint=str(request.url.path),
        message=str(exc),
        level="critical",
        details=f"Unhandled exception: {type(exc).__name__}",
        exc=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# The editor may be served from another origin during development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)


# Editor routes keep their historical root paths; system routes live under /api
app.include_router(filters_router, tags=["filters"])
app.include_router(render_router, tags=["render"])
app.include_router(system_router, prefix="/api", tags=["system"])


# ============= Startup Events =============


@app.on_event("startup")
async def startup_event():
    """Prepare the data folders."""
    settings = get_settings()
    settings.ensure_dirs()
    logger.info("gfxs-studio render server starting...")
    logger.info("Data directory: %s", settings.data_dir)


# ============= WebSocket Endpoints =============


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, client_id: str = None):
    """
    WebSocket endpoint for render events.

    Connections are subscribed to the ``render`` channel on connect. Message format (JSON):
    {
        "type": "subscribe" | "unsubscribe" | "ping",
        "channel": "channel_name",
        "data": {}
    }
    """
    await ws_manager.connect(websocket, client_id)
    await ws_manager.subscribe(websocket, RENDER_CHANNEL)

    try:
        while True:
            message_text = await websocket.receive_text()
            response = await ws_manager.handle_message(websocket, message_text)
            if response:
                await ws_manager.send_to_connection(websocket, response)

    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        await ws_manager.disconnect(websocket)


@app.get("/api/ws/stats")
async def get_websocket_stats():
    """Get WebSocket connection statistics."""
    return {
        "total_connections": ws_manager.get_connection_count(),
        "render_subscribers": ws_manager.get_channel_subscribers(RENDER_CHANNEL),
    }


if __name__ == "__main__":
    import argparse

    settings = get_settings()
    parser = argparse.ArgumentParser(description="gfxs-studio render server")
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Port to run the server on (default: 8080 or GFXS_PORT env var)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=settings.host,
        help="Host to bind to (default: 127.0.0.1 or GFXS_HOST env var)",
    )
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable auto-reload",
    )
    args = parser.parse_args()

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )
