"""FastAPI application factory for the LNURL server."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response

from lnurlbridge import __version__
from lnurlbridge.application.listeners import FlowAuditListener
from lnurlbridge.application.services import (
    AuthService,
    ChannelService,
    PaymentExecutor,
    WithdrawService,
)
from lnurlbridge.core.events.base import GlobalEventBus, get_global_event_bus
from lnurlbridge.infrastructure.node_rpc import ClnNodeRpc, NodeRpc, load_node_identity
from lnurlbridge.infrastructure.token_store import ChallengeTokenStore
from lnurlbridge.utils.config import Settings, get_settings
from lnurlbridge.utils.logging import clear_correlation_id, get_logger, set_correlation_id

from .errors import register_error_handlers
from .routes import router

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def create_app(
    settings: Settings | None = None,
    node_rpc: NodeRpc | None = None,
    event_bus: GlobalEventBus | None = None,
) -> FastAPI:
    """Build the LNURL server.

    The node identity is fetched once when the application starts and is
    shared, read-only, by every flow handler. All handlers and the payment
    workers share one node adapter and one token store.

    Args:
        settings: Server settings (default: environment)
        node_rpc: Node adapter (default: ``ClnNodeRpc`` on ``settings.rpc_path``)
        event_bus: Bus for flow events (default: global bus)
    """
    settings = settings or get_settings()
    bus = event_bus or get_global_event_bus()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        rpc = node_rpc or ClnNodeRpc(settings.rpc_path)
        identity = await load_node_identity(rpc, settings.node_address)
        token_store = ChallengeTokenStore(
            ttl_seconds=settings.token_ttl_seconds,
            capacity=settings.token_capacity,
        )
        executor = PaymentExecutor(
            rpc,
            workers=settings.payment_workers,
            queue_size=settings.payment_queue_size,
            event_bus=bus,
        )

        audit = FlowAuditListener()
        audit.attach(bus)

        app.state.event_bus = bus
        app.state.identity = identity
        app.state.token_store = token_store
        app.state.payment_executor = executor
        app.state.channel_service = ChannelService(
            rpc,
            token_store,
            identity,
            callback_url=settings.callback_url("open-channel"),
            event_bus=bus,
        )
        app.state.withdraw_service = WithdrawService(
            rpc,
            token_store,
            executor,
            callback_url=settings.callback_url("withdraw"),
            event_bus=bus,
        )
        app.state.auth_service = AuthService(rpc, token_store, event_bus=bus)

        await executor.start()
        logger.info(
            "lnurl_server_started",
            node_uri=identity.uri,
            callback_base_url=settings.callback_base_url,
        )
        try:
            yield
        finally:
            await executor.stop()
            audit.detach()
            logger.info("lnurl_server_stopped")

    app = FastAPI(title="lnurlbridge", version=__version__, lifespan=lifespan)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        correlation_id = set_correlation_id(request.headers.get(CORRELATION_HEADER))
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    register_error_handlers(app)
    app.include_router(router)
    return app


def run_server(settings: Settings | None = None) -> None:
    """Serve the application with uvicorn until interrupted."""
    import uvicorn

    settings = settings or get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)
