"""
Operator HTTP API for a running deslack server.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from ..core.exceptions import PolicyRejection
from ..core.types import to_millis
from .engine import ServerEngine

logger = structlog.get_logger()


class SessionInfo(BaseModel):
    address: str
    state: str
    email: Optional[str] = None


class ChannelInfo(BaseModel):
    name: str
    active_users: List[str]
    message_count: int


class ChannelCreate(BaseModel):
    name: str = Field(min_length=1)


class ApproveResponse(BaseModel):
    address: str
    approved: bool
    state: str


def create_app(engine: ServerEngine) -> FastAPI:
    """
    Build the operator API around an engine. If the engine is not already
    running, the app runs it for its own lifetime.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if not engine.running:
            task = asyncio.create_task(engine.run())
            await asyncio.sleep(0)
        yield
        if task is not None:
            engine.stop()
            await task

    app = FastAPI(
        title="deslack operator API",
        version="0.1.0",
        description="Approve sign-ups and manage channels on a deslack server",
        lifespan=lifespan,
    )
    app.state.engine = engine

    @app.get("/sessions", response_model=List[SessionInfo])
    async def list_sessions(request: Request):
        """List every session the server has seen."""
        return request.app.state.engine.list_sessions()

    @app.post("/sessions/{address}/approve", response_model=ApproveResponse)
    async def approve_session(address: str, request: Request):
        """Approve a pending sign-up."""
        engine = request.app.state.engine
        if address not in engine.state.sessions:
            raise HTTPException(status_code=404, detail=f"Unknown address: {address}")

        approved = await engine.submit(engine.approve, address)
        session = next(s for s in engine.list_sessions() if s["address"] == address)
        logger.info("operator_approve", address=address, approved=approved)
        return ApproveResponse(address=address, approved=approved, state=session["state"])

    @app.get("/channels", response_model=List[ChannelInfo])
    async def list_channels(request: Request):
        return request.app.state.engine.list_channels()

    @app.post("/channels", response_model=ChannelInfo, status_code=201)
    async def create_channel(body: ChannelCreate, request: Request):
        """Create an empty channel."""
        engine = request.app.state.engine
        try:
            channel = await engine.submit(engine.create_channel, body.name)
        except PolicyRejection as e:
            raise HTTPException(status_code=409, detail=e.reason)
        return ChannelInfo(name=channel.name, active_users=[], message_count=0)

    @app.get("/channels/{name}/messages")
    async def channel_messages(name: str, request: Request) -> List[Dict[str, Any]]:
        """Channel history, newest first."""
        channel = request.app.state.engine.state.channels.get(name)
        if channel is None:
            raise HTTPException(status_code=404, detail=f"Unknown channel: {name}")
        return [
            {"user": m.author, "content": m.content, "time": to_millis(m.sent_at)}
            for m in channel.messages
        ]

    @app.get("/metrics")
    async def metrics(request: Request):
        """Prometheus metrics endpoint."""
        registry = request.app.state.engine.metrics.registry
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return app


async def start_api_server(engine: ServerEngine, host: str = "127.0.0.1", port: int = 8335):
    """
    Serve the operator API until cancelled.

    Args:
        engine: The running server engine
        host: Interface to bind
        port: Port to bind
    """
    from uvicorn.config import Config
    from uvicorn.server import Server

    logger.info("api_server_starting", host=host, port=port)

    config = Config(app=create_app(engine), host=host, port=port, log_config=None)
    server = Server(config=config)
    await server.serve()
