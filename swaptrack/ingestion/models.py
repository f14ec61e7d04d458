from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any


class Platform(str, Enum):
    RAYDIUM_AMM = "RaydiumAmm"
    RAYDIUM_CPMM = "RaydiumCpmm"
    RAYDIUM_CLMM = "RaydiumClmm"
    RAYDIUM_LAUNCHPAD = "RaydiumLaunchPad"
    ORCA = "Orca"
    METEORA_DLMM = "MeteoraDLMM"
    METEORA_DAMM_V2 = "MeteoraDammV2"
    METEORA_DBC = "MeteoraDBC"
    PUMP_FUN = "PumpFun"
    PUMP_AMM = "PumpAmm"


class SwapType(str, Enum):
    BUY = "Buy"
    SELL = "Sell"
    UNKNOWN = "Unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SwapEvent:
    signature: str
    platform: Platform
    type: SwapType
    mint_from: str
    mint_to: str
    in_amount: str   # native units, decimal string
    out_amount: str  # native units, decimal string
    fee_payer: str
    slot: Optional[int] = None
    observed_at: datetime = field(default_factory=utcnow)

    def as_row(self) -> Dict[str, Any]:
        return {
            "transaction_id": self.signature,
            "platform": self.platform.value,
            "type": self.type.value,
            "mint_from": self.mint_from,
            "mint_to": self.mint_to,
            "in_amount": self.in_amount,
            "out_amount": self.out_amount,
            "fee_payer": self.fee_payer,
            "slot": self.slot,
        }


@dataclass
class StreamCursor:
    last_slot: Optional[int] = None
    retry_count: int = 0
    has_received_message: bool = False

    def advance(self, slot: Optional[int]):
        # Transport delivers slots ascending within a session; never step back
        if slot is not None and (self.last_slot is None or slot > self.last_slot):
            self.last_slot = slot


# ==============================================================================
# DECODED TRANSACTION (output of the decoder capability)
# ==============================================================================

@dataclass
class DecodedInstruction:
    program_id: str
    name: Optional[str] = None
    args: Dict[str, Any] = field(default_factory=dict)
    accounts: Dict[str, str] = field(default_factory=dict)
    account_list: List[str] = field(default_factory=list)
    inner: bool = False
    index: int = 0


@dataclass
class DecodedEvent:
    name: str
    data: Dict[str, Any]
    program_id: Optional[str] = None


@dataclass
class TokenTransfer:
    source: str
    destination: str
    authority: Optional[str]
    amount: int
    mint: Optional[str] = None
    inner: bool = True


@dataclass
class DecodedTransaction:
    signature: str
    slot: Optional[int]
    account_keys: List[str]
    fee_payer: Optional[str]
    instructions: List[DecodedInstruction] = field(default_factory=list)
    events: List[DecodedEvent] = field(default_factory=list)
    transfers: List[TokenTransfer] = field(default_factory=list)
    log_messages: List[str] = field(default_factory=list)
    token_account_mints: Dict[str, str] = field(default_factory=dict)
    token_account_owners: Dict[str, str] = field(default_factory=dict)
    failed: bool = False

    def owner_of(self, token_account: str) -> Optional[str]:
        return self.token_account_owners.get(token_account)

    def mint_of(self, token_account: str) -> Optional[str]:
        return self.token_account_mints.get(token_account)


# ==============================================================================
# AGGREGATES & ENRICHMENT
# ==============================================================================

@dataclass
class WalletTokenRecord:
    wallet_address: str
    token_address: str
    first_buy_at: Optional[datetime] = None
    first_buy_amount: Optional[str] = None
    first_sell_at: Optional[datetime] = None
    first_sell_amount: Optional[str] = None


@dataclass
class CreatorInfo:
    creator: str
    dev_buy_amount: str
    dev_buy_amount_decimal: Optional[int]
    dev_buy_used_token: str
    dev_buy_token_amount: str
    dev_buy_token_amount_decimal: Optional[int]


@dataclass
class TokenRecord:
    mint_address: str
    token_name: Optional[str] = None
    symbol: Optional[str] = None
    image: Optional[str] = None
    creator: Optional[str] = None
    dev_buy_amount: Optional[str] = None
    dev_buy_amount_decimal: Optional[int] = None
    dev_buy_used_token: Optional[str] = None
    dev_buy_token_amount: Optional[str] = None
    dev_buy_token_amount_decimal: Optional[int] = None

    def merge(self, newer: "TokenRecord") -> "TokenRecord":
        """Null-coalescing merge: newer non-null values win, nulls never erase."""
        merged = {}
        for name in self.__dataclass_fields__:
            value = getattr(newer, name)
            merged[name] = value if value is not None else getattr(self, name)
        return TokenRecord(**merged)


@dataclass
class SkipToken:
    mint_address: str
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
