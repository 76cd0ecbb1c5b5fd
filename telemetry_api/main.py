from __future__ import annotations

import argparse
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from common.config import Settings, get_settings

from .core.errors import FatalTransportError, is_fatal_transport_error
from .hub import TelemetryHub
from .routing import ClientConnection, ConnectionParams
from .scheduler import build_scheduler
from .schemas import HealthOut, SystemsOut, WaveformOut

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    hub: Optional[TelemetryHub] = None,
    run_background_tasks: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    hub = hub or TelemetryHub(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = build_scheduler(hub)
        if run_background_tasks:
            scheduler.start()
        logger.info(
            "[WS] Telemetry service ready: buffer=%d drain=%dms stale=%dms",
            settings.buffer_capacity,
            settings.buffer_drain_interval_ms,
            settings.stale_threshold_ms,
        )
        try:
            yield
        finally:
            await scheduler.stop()
            logger.info("[WS] Telemetry service stopped. %s", hub.stats)

    app = FastAPI(title="Pump Telemetry Service", version="1.0.0", lifespan=lifespan)
    app.state.hub = hub
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthOut)
    def health(request: Request) -> dict:
        return request.app.state.hub.health()

    @app.get("/systems", response_model=SystemsOut)
    def systems(request: Request) -> dict:
        return {"systems": request.app.state.hub.registry.systems()}

    @app.get("/systems/{system_id}/state")
    def system_state(system_id: str, request: Request) -> dict:
        aggregator = request.app.state.hub.get_aggregator(system_id)
        if aggregator is None:
            raise HTTPException(status_code=404, detail=f"Unknown system: {system_id}")
        return aggregator.get_state()

    @app.get("/systems/{system_id}/waveform", response_model=WaveformOut)
    def system_waveform(system_id: str, request: Request) -> WaveformOut:
        aggregator = request.app.state.hub.get_aggregator(system_id)
        if aggregator is None:
            raise HTTPException(status_code=404, detail=f"Unknown system: {system_id}")
        return WaveformOut.from_buffer(system_id, aggregator.streaming_pressure.to_dict())

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await serve_connection(websocket, websocket.app.state.hub)

    return app


async def serve_connection(websocket: WebSocket, hub: TelemetryHub) -> None:
    """Receive loop for one WebSocket, device or viewer.

    Protocol:
    1. Query string → role, system id, label
    2. Server → systems_list + "<label> just connected" to everyone
    3. Client → telemetry / status / system messages / operator messages
    """
    params = ConnectionParams.from_query(
        websocket.query_params,
        org_domain=hub.settings.operator_email_domain,
    )
    await websocket.accept()
    conn = ClientConnection.from_params(websocket, params)
    logger.info("[WS] New connection %r", conn)

    try:
        await hub.connect(conn)
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            await hub.handle_frame(conn, raw)
    except WebSocketDisconnect:
        pass
    except FatalTransportError as e:
        hub.on_fatal_transport(e)
    except Exception as e:
        if is_fatal_transport_error(e):
            hub.on_fatal_transport(FatalTransportError(str(e)))
        else:
            logger.exception("[WS] Error on %r: %s", conn, e)
    finally:
        try:
            await hub.disconnect(conn)
        except FatalTransportError as e:
            hub.on_fatal_transport(e)
        logger.info("[WS] Client disconnected %r", conn)


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = argparse.ArgumentParser(description="Pump telemetry WebSocket service")
    p.add_argument("--host", default=settings.host)
    p.add_argument("--port", type=int, default=settings.port)
    args = p.parse_args()

    app = create_app(settings)
    logger.info("[WS] Listening on %s:%d", args.host, args.port)
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        ws_max_size=settings.ws_max_message_bytes,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
