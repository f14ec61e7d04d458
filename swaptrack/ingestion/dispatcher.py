from typing import Any, Dict, Optional

from swaptrack.core.errors import ClassificationMiss, DecodeError
from swaptrack.core.logger import get_logger
from swaptrack.ingestion.classifier import classify_or_raise
from swaptrack.ingestion.decoder import TransactionDecoder, extract_account_keys
from swaptrack.ingestion.models import SwapEvent
from swaptrack.ingestion.normalizers import normalize
from swaptrack.ingestion.registry import NormalizerRegistry

logger = get_logger("ingestion.dispatcher")


class SwapDispatcher:
    """
    Routes one stream message through classifier -> decoder -> normalizer.
    Never raises for a bad transaction: misses and decode failures return None.
    """

    def __init__(self, decoder: TransactionDecoder, registry: Optional[NormalizerRegistry] = None):
        self.decoder = decoder
        self.registry = registry or NormalizerRegistry()
        self.stats = {"dispatched": 0, "swaps": 0, "unclassified": 0, "no_swap": 0, "decode_errors": 0}

    def dispatch(self, message: Dict[str, Any]) -> Optional[SwapEvent]:
        self.stats["dispatched"] += 1
        signature = message.get("signature")

        try:
            platform = classify_or_raise(extract_account_keys(message))
        except ClassificationMiss:
            self.stats["unclassified"] += 1
            logger.debug("No supported platform detected", extra={"signature": signature})
            return None
        except (AttributeError, TypeError) as e:
            self.stats["decode_errors"] += 1
            logger.warning(f"Malformed account keys: {e}", extra={"signature": signature})
            return None

        spec = self.registry.get(platform)
        try:
            tx = self.decoder.decode(message)
            swap = normalize(spec, tx)
        except (DecodeError, AttributeError, IndexError, KeyError, TypeError, ValueError) as e:
            self.stats["decode_errors"] += 1
            logger.warning(f"Decode failed on {platform.value}: {e}",
                           extra={"signature": signature, "platform": platform.value})
            return None

        if swap is None:
            self.stats["no_swap"] += 1
            return None

        self.stats["swaps"] += 1
        logger.info(
            f"{swap.platform.value} {swap.type.value} {swap.mint_from[:8]}... -> {swap.mint_to[:8]}... "
            f"in={swap.in_amount} out={swap.out_amount}",
            extra={"signature": swap.signature, "slot": swap.slot, "platform": swap.platform.value},
        )
        return swap
