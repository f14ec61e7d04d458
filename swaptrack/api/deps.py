from dataclasses import dataclass

from fastapi import Request

from swaptrack.ingestion.dispatcher import SwapDispatcher
from swaptrack.services.skip_tokens import SkipTokenCache
from swaptrack.services.token_queue import TokenQueueService
from swaptrack.services.token_service import TokenService
from swaptrack.services.wallet_tracking import WalletTrackingService
from swaptrack.stream.tracker import TransactionTracker
from swaptrack.workers.side_effects import SideEffectQueue


@dataclass
class Services:
    """Everything the routers need, built once at startup."""
    gateway: object
    dispatcher: SwapDispatcher
    tracker: TransactionTracker
    token_service: TokenService
    token_queue: TokenQueueService
    skip_cache: SkipTokenCache
    wallet_tracking: WalletTrackingService
    side_effects: SideEffectQueue


def get_services(request: Request) -> Services:
    return request.app.state.services
