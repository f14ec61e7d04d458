"""
Platform Classifier
===================
Maps a transaction to the trading protocol that produced it by looking for a
registered program id among the transaction's account keys.

Precedence is registry order: a transaction touching several protocols is
classified as the first registered one.
"""
from typing import Iterable, List, Optional, Tuple

from swaptrack.core.constants import (
    RAYDIUM_AMM_PROGRAM_ID, RAYDIUM_CPMM_PROGRAM_ID, RAYDIUM_CLMM_PROGRAM_ID,
    RAYDIUM_LAUNCHPAD_PROGRAM_ID, ORCA_WHIRLPOOL_PROGRAM_ID, METEORA_DLMM_PROGRAM_ID,
    METEORA_DAMM_V2_PROGRAM_ID, METEORA_DBC_PROGRAM_ID, PUMP_FUN_PROGRAM_ID,
    PUMP_AMM_PROGRAM_ID,
)
from swaptrack.core.errors import ClassificationMiss
from swaptrack.ingestion.models import Platform

PLATFORM_REGISTRY: List[Tuple[Platform, str]] = [
    (Platform.RAYDIUM_AMM, RAYDIUM_AMM_PROGRAM_ID),
    (Platform.RAYDIUM_CPMM, RAYDIUM_CPMM_PROGRAM_ID),
    (Platform.RAYDIUM_CLMM, RAYDIUM_CLMM_PROGRAM_ID),
    (Platform.RAYDIUM_LAUNCHPAD, RAYDIUM_LAUNCHPAD_PROGRAM_ID),
    (Platform.ORCA, ORCA_WHIRLPOOL_PROGRAM_ID),
    (Platform.METEORA_DLMM, METEORA_DLMM_PROGRAM_ID),
    (Platform.METEORA_DAMM_V2, METEORA_DAMM_V2_PROGRAM_ID),
    (Platform.METEORA_DBC, METEORA_DBC_PROGRAM_ID),
    (Platform.PUMP_FUN, PUMP_FUN_PROGRAM_ID),
    (Platform.PUMP_AMM, PUMP_AMM_PROGRAM_ID),
]

PROGRAM_IDS = {platform: program_id for platform, program_id in PLATFORM_REGISTRY}


def classify(account_keys: Iterable[str],
             registry: Optional[List[Tuple[Platform, str]]] = None) -> Optional[Platform]:
    """
    Return the first registered platform whose program id is in account_keys,
    or None when nothing matches (the transaction is filtered out).
    """
    keys = set(account_keys)
    for platform, program_id in (registry or PLATFORM_REGISTRY):
        if program_id in keys:
            return platform
    return None


def classify_or_raise(account_keys: Iterable[str]) -> Platform:
    platform = classify(account_keys)
    if platform is None:
        raise ClassificationMiss("no supported platform detected")
    return platform
