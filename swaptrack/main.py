"""
Swap Tracker API
================
Application entry point. Builds the services once at startup, mounts the
operator routers and owns the shutdown order:

    tracker -> enrichment loop -> side effects (drained) -> in-flight enrichment
            -> HTTP client -> pool
"""
from typing import List, Optional

import httpx
from fastapi import FastAPI

from swaptrack.api.deps import Services
from swaptrack.api.routers import tokens, tracker, transactions, wallets
from swaptrack.core import config
from swaptrack.core.db import close_db, init_db
from swaptrack.core.logger import get_logger
from swaptrack.ingestion.decoder import InstructionSchema, TransactionDecoder, load_schemas
from swaptrack.ingestion.dispatcher import SwapDispatcher
from swaptrack.services.clients import HeliusClient, ShyftClient, SolscanClient, new_http_client
from swaptrack.services.skip_tokens import SkipTokenCache
from swaptrack.services.token_queue import TokenQueueService
from swaptrack.services.token_service import TokenService
from swaptrack.services.wallet_tracking import WalletTrackingService
from swaptrack.storage.gateway import PostgresGateway
from swaptrack.stream.tracker import TransactionTracker
from swaptrack.stream.transport import HeliusWebsocketTransport, StreamTransport
from swaptrack.workers.pipeline import SwapPipeline
from swaptrack.workers.side_effects import SideEffectQueue

logger = get_logger("app.main")


def build_services(gateway, transport: StreamTransport, http: httpx.AsyncClient,
                   schemas: Optional[List[InstructionSchema]] = None) -> Services:
    dispatcher = SwapDispatcher(TransactionDecoder(schemas))
    token_service = TokenService(HeliusClient(http), SolscanClient(http), ShyftClient(http))
    skip_cache = SkipTokenCache(gateway)
    token_queue = TokenQueueService(gateway, token_service, skip_cache)
    wallet_tracking = WalletTrackingService(gateway)
    side_effects = SideEffectQueue()
    pipeline = SwapPipeline(gateway, wallet_tracking, token_queue, side_effects)
    tracker_ = TransactionTracker(transport, dispatcher, pipeline.handle,
                                  addresses=config.TRACKED_ADDRESSES)
    return Services(
        gateway=gateway,
        dispatcher=dispatcher,
        tracker=tracker_,
        token_service=token_service,
        token_queue=token_queue,
        skip_cache=skip_cache,
        wallet_tracking=wallet_tracking,
        side_effects=side_effects,
    )


app = FastAPI(title="Swap Tracker API", version="1.0.0")

# ----- Mount Routers -----
# Tracker controls: serves /api/status, /api/addresses, /api/start, /api/stop, /api/queue
app.include_router(tracker.router)

# Stored swaps: serves /api/transactions
app.include_router(transactions.router)

# First buy/sell aggregates: serves /api/wallets/*, /api/tokens/{mint}/wallets
app.include_router(wallets.router)

# Token records and skip list: serves /api/tokens/{mint}, /api/skip-tokens
app.include_router(tokens.router)


# ----- Lifecycle Events -----
@app.on_event("startup")
async def startup():
    missing_optional = config.validate_startup_config()
    for name in missing_optional:
        logger.warning(f"{name} not set; related enrichment will fail")

    schemas = load_schemas(config.DECODER_SCHEMAS)
    if not schemas:
        logger.warning("No decoder schemas configured (DECODER_SCHEMAS); classified transactions will not produce swaps")
    else:
        logger.info(f"Decoder schemas loaded for {len(schemas)} programs")

    await init_db()
    gateway = PostgresGateway()
    await gateway.initialize()

    app.state.http = new_http_client()
    services = build_services(gateway, HeliusWebsocketTransport(config.HELIUS_WS_URL), app.state.http, schemas)
    app.state.services = services

    services.side_effects.start()
    services.token_queue.start()

    if config.TRACKER_AUTOSTART:
        result = await services.tracker.start()
        logger.info(f"Autostart: {result['message']}")

    logger.info("Application startup complete.")


@app.on_event("shutdown")
async def shutdown():
    services = getattr(app.state, "services", None)
    if services is not None:
        if services.tracker.is_running():
            await services.tracker.stop()
        await services.token_queue.stop()
        await services.side_effects.stop(drain=True)
        # In-flight enrichment still uses the HTTP client
        await services.token_queue.wait_idle()

    http = getattr(app.state, "http", None)
    if http is not None:
        await http.aclose()

    await close_db()
    logger.info("Application shutdown complete.")


# ----- Health Check -----
@app.get("/health")
async def health_check():
    services = getattr(app.state, "services", None)
    return {
        "status": "ok",
        "tracker_running": services.tracker.is_running() if services else False,
        "db": services.gateway.pool_stats() if services else {"initialized": False},
    }
