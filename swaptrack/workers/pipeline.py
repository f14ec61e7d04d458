from swaptrack.core.constants import QUOTE_MINT
from swaptrack.ingestion.models import SwapEvent, SwapType
from swaptrack.services.token_queue import TokenQueueService
from swaptrack.services.wallet_tracking import WalletTrackingService
from swaptrack.workers.side_effects import SideEffectQueue


class SwapPipeline:
    """Fans a produced swap out to storage, wallet tracking and enrichment."""

    def __init__(self, gateway, wallet_tracking: WalletTrackingService,
                 token_queue: TokenQueueService, side_effects: SideEffectQueue):
        self.gateway = gateway
        self.wallet_tracking = wallet_tracking
        self.token_queue = token_queue
        self.side_effects = side_effects

    def handle(self, swap: SwapEvent):
        self.side_effects.submit(
            f"save_transaction:{swap.signature}",
            lambda: self.gateway.save_transaction(swap),
        )

        if swap.type not in (SwapType.BUY, SwapType.SELL):
            return

        self.side_effects.submit(
            f"track_wallet_token:{swap.signature}",
            lambda: self.wallet_tracking.track_wallet_token(
                swap.fee_payer, swap.mint_from, swap.mint_to,
                swap.in_amount, swap.out_amount, swap.type,
            ),
        )

        token = swap.mint_to if swap.type == SwapType.BUY else swap.mint_from
        if token != QUOTE_MINT:
            self.side_effects.submit(
                f"add_token:{token}",
                lambda: self.token_queue.add_token(token),
            )
