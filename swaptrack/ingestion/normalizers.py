"""
Protocol Normalizers
====================
One table-driven registry entry per supported protocol. Every entry shares the
same shape:

    filter   -> which decoded instructions belong to the protocol
                (its program id, plus the token program for protocols whose
                executed amounts only show up as inner transfers)
    detect   -> instruction / event names that mark a swap
    extract  -> SwapLeg (user, mint in, mint out, amount in, amount out)

canonicalize() then turns a leg into a SwapEvent with Buy/Sell defined against
the quote asset.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from swaptrack.core.constants import (
    MAX_AMOUNT, QUOTE_MINT, SOL_MINT, TOKEN_PROGRAM_IDS,
    RAYDIUM_AMM_PROGRAM_ID, RAYDIUM_CPMM_PROGRAM_ID, RAYDIUM_CLMM_PROGRAM_ID,
    RAYDIUM_LAUNCHPAD_PROGRAM_ID, ORCA_WHIRLPOOL_PROGRAM_ID, METEORA_DLMM_PROGRAM_ID,
    METEORA_DAMM_V2_PROGRAM_ID, METEORA_DBC_PROGRAM_ID, PUMP_FUN_PROGRAM_ID,
    PUMP_AMM_PROGRAM_ID,
)
from swaptrack.core.errors import DecodeError
from swaptrack.ingestion.models import (
    DecodedEvent, DecodedInstruction, DecodedTransaction, Platform, SwapEvent, SwapType,
)


@dataclass
class SwapLeg:
    user: Optional[str]
    mint_in: str
    mint_out: str
    amount_in: Any
    amount_out: Any


Extractor = Callable[[DecodedTransaction, List[DecodedInstruction]], Optional[SwapLeg]]


@dataclass(frozen=True)
class NormalizerSpec:
    platform: Platform
    program_id: str
    extract: Extractor
    swap_instructions: FrozenSet[str] = frozenset()
    swap_events: FrozenSet[str] = frozenset()
    include_token_program: bool = False

    def filter_instructions(self, instructions: List[DecodedInstruction]) -> List[DecodedInstruction]:
        return [
            ix for ix in instructions
            if ix.program_id == self.program_id
            or (self.include_token_program and ix.program_id in TOKEN_PROGRAM_IDS)
        ]

    def has_swap(self, tx: DecodedTransaction, instructions: List[DecodedInstruction]) -> bool:
        if any(ix.program_id == self.program_id and ix.name in self.swap_instructions
               for ix in instructions):
            return True
        return any(ev.name in self.swap_events and ev.program_id in (None, self.program_id)
                   for ev in tx.events)


# ==============================================================================
# HELPERS
# ==============================================================================

def to_amount(value: Any) -> str:
    """Native-unit amount as a decimal string; unsigned, at most 128 bits."""
    if isinstance(value, bool) or value is None:
        raise DecodeError(f"invalid amount: {value!r}")
    try:
        amount = int(value, 0) if isinstance(value, str) and value.startswith("0x") else int(value)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"invalid amount: {value!r}") from e
    if amount < 0 or amount > MAX_AMOUNT:
        raise DecodeError(f"amount out of range: {amount}")
    return str(amount)


def _field(data: Dict[str, Any], path: str) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _require(data: Dict[str, Any], *paths: str) -> Any:
    """First non-null value among paths; DecodeError if none is present."""
    for path in paths:
        value = _field(data, path)
        if value is not None:
            return value
    raise DecodeError(f"missing field(s): {', '.join(paths)}")


def _event(tx: DecodedTransaction, names: FrozenSet[str], program_id: str) -> Optional[DecodedEvent]:
    for ev in tx.events:
        if ev.name in names and ev.program_id in (None, program_id):
            return ev
    return None


def _account(instructions: List[DecodedInstruction], program_id: str, *names: str) -> Optional[str]:
    for ix in instructions:
        if ix.program_id != program_id:
            continue
        for name in names:
            if ix.accounts.get(name):
                return ix.accounts[name]
    return None


def _direction_is(value: Any, code: int, label: str) -> bool:
    """Anchor enums arrive either as an int or as {"Variant": {}}."""
    if isinstance(value, dict):
        return any(k.lower() == label.lower() for k in value)
    if isinstance(value, str):
        return value.lower() == label.lower()
    return value == code


def _transfer_leg(tx: DecodedTransaction, user: Optional[str]) -> Optional[SwapLeg]:
    """
    Swap leg from token-program transfers: input is the transfer the user
    signed for, output is the transfer landing in an account the user owns.
    """
    if not user:
        return None
    sent = None
    received = None
    for transfer in tx.transfers:
        if sent is None and transfer.authority == user:
            sent = transfer
        elif received is None and transfer.authority != user and tx.owner_of(transfer.destination) == user:
            received = transfer
    if sent is None or received is None:
        return None
    mint_in = sent.mint or tx.mint_of(sent.source)
    mint_out = received.mint or tx.mint_of(received.destination)
    if not mint_in or not mint_out:
        return None
    return SwapLeg(user, mint_in, mint_out, sent.amount, received.amount)


# ==============================================================================
# EXTRACTORS
# ==============================================================================

def extract_pump_fun(tx, instructions):
    ev = _event(tx, frozenset({"TradeEvent"}), PUMP_FUN_PROGRAM_ID)
    if ev is None:
        return None
    mint = _require(ev.data, "mint")
    sol_amount = _require(ev.data, "sol_amount", "solAmount")
    token_amount = _require(ev.data, "token_amount", "tokenAmount")
    user = ev.data.get("user")
    if _require(ev.data, "is_buy", "isBuy"):
        return SwapLeg(user, SOL_MINT, mint, sol_amount, token_amount)
    return SwapLeg(user, mint, SOL_MINT, token_amount, sol_amount)


def extract_pump_amm(tx, instructions):
    base_mint = _account(instructions, PUMP_AMM_PROGRAM_ID, "base_mint")
    quote_mint = _account(instructions, PUMP_AMM_PROGRAM_ID, "quote_mint") or SOL_MINT
    buy = _event(tx, frozenset({"BuyEvent"}), PUMP_AMM_PROGRAM_ID)
    if buy is not None and base_mint:
        return SwapLeg(
            buy.data.get("user"), quote_mint, base_mint,
            _require(buy.data, "user_quote_amount_in", "quote_amount_in"),
            _require(buy.data, "base_amount_out"),
        )
    sell = _event(tx, frozenset({"SellEvent"}), PUMP_AMM_PROGRAM_ID)
    if sell is not None and base_mint:
        return SwapLeg(
            sell.data.get("user"), base_mint, quote_mint,
            _require(sell.data, "base_amount_in"),
            _require(sell.data, "user_quote_amount_out", "quote_amount_out"),
        )
    return None


def extract_raydium_launchpad(tx, instructions):
    ev = _event(tx, frozenset({"TradeEvent"}), RAYDIUM_LAUNCHPAD_PROGRAM_ID)
    base_mint = _account(instructions, RAYDIUM_LAUNCHPAD_PROGRAM_ID, "base_token_mint")
    quote_mint = _account(instructions, RAYDIUM_LAUNCHPAD_PROGRAM_ID, "quote_token_mint") or SOL_MINT
    if ev is None or not base_mint:
        return None
    user = _account(instructions, RAYDIUM_LAUNCHPAD_PROGRAM_ID, "payer") or tx.fee_payer
    amount_in = _require(ev.data, "amount_in")
    amount_out = _require(ev.data, "amount_out")
    if _direction_is(_require(ev.data, "trade_direction"), 0, "buy"):
        return SwapLeg(user, quote_mint, base_mint, amount_in, amount_out)
    return SwapLeg(user, base_mint, quote_mint, amount_in, amount_out)


def extract_meteora_dlmm(tx, instructions):
    ev = _event(tx, frozenset({"Swap"}), METEORA_DLMM_PROGRAM_ID)
    mint_x = _account(instructions, METEORA_DLMM_PROGRAM_ID, "token_x_mint")
    mint_y = _account(instructions, METEORA_DLMM_PROGRAM_ID, "token_y_mint")
    if ev is None or not mint_x or not mint_y:
        return None
    user = ev.data.get("from") or tx.fee_payer
    amount_in = _require(ev.data, "amount_in")
    amount_out = _require(ev.data, "amount_out")
    if _require(ev.data, "swap_for_y"):
        return SwapLeg(user, mint_x, mint_y, amount_in, amount_out)
    return SwapLeg(user, mint_y, mint_x, amount_in, amount_out)


def extract_meteora_damm_v2(tx, instructions):
    ev = _event(tx, frozenset({"EvtSwap", "EvtSwap2"}), METEORA_DAMM_V2_PROGRAM_ID)
    mint_a = _account(instructions, METEORA_DAMM_V2_PROGRAM_ID, "token_a_mint")
    mint_b = _account(instructions, METEORA_DAMM_V2_PROGRAM_ID, "token_b_mint")
    user = _account(instructions, METEORA_DAMM_V2_PROGRAM_ID, "payer") or tx.fee_payer
    if ev is None or not mint_a or not mint_b:
        return _transfer_leg(tx, user)
    amount_in = _require(ev.data, "actual_amount_in", "params.amount_in")
    amount_out = _require(ev.data, "swap_result.output_amount")
    if _direction_is(_require(ev.data, "trade_direction"), 0, "atob"):
        return SwapLeg(user, mint_a, mint_b, amount_in, amount_out)
    return SwapLeg(user, mint_b, mint_a, amount_in, amount_out)


def extract_meteora_dbc(tx, instructions):
    ev = _event(tx, frozenset({"EvtSwap", "EvtSwap2"}), METEORA_DBC_PROGRAM_ID)
    base_mint = _account(instructions, METEORA_DBC_PROGRAM_ID, "base_mint")
    quote_mint = _account(instructions, METEORA_DBC_PROGRAM_ID, "quote_mint") or SOL_MINT
    user = _account(instructions, METEORA_DBC_PROGRAM_ID, "payer") or tx.fee_payer
    if ev is None or not base_mint:
        return _transfer_leg(tx, user)
    amount_in = _require(ev.data, "swap_result.actual_input_amount", "amount_in", "params.amount_in")
    amount_out = _require(ev.data, "swap_result.output_amount")
    if _direction_is(_require(ev.data, "trade_direction"), 0, "basetoquote"):
        return SwapLeg(user, base_mint, quote_mint, amount_in, amount_out)
    return SwapLeg(user, quote_mint, base_mint, amount_in, amount_out)


def extract_raydium_clmm(tx, instructions):
    ev = _event(tx, frozenset({"SwapEvent"}), RAYDIUM_CLMM_PROGRAM_ID)
    user = _account(instructions, RAYDIUM_CLMM_PROGRAM_ID, "payer") or tx.fee_payer
    if ev is None:
        return _transfer_leg(tx, user)
    user = ev.data.get("sender") or user
    mint_0 = tx.mint_of(ev.data.get("token_account_0") or "")
    mint_1 = tx.mint_of(ev.data.get("token_account_1") or "")
    zero_for_one = _require(ev.data, "zero_for_one")
    if not mint_0 or not mint_1:
        mint_in = _account(instructions, RAYDIUM_CLMM_PROGRAM_ID, "input_vault_mint")
        mint_out = _account(instructions, RAYDIUM_CLMM_PROGRAM_ID, "output_vault_mint")
        if not mint_in or not mint_out:
            return _transfer_leg(tx, user)
        mint_0, mint_1 = (mint_in, mint_out) if zero_for_one else (mint_out, mint_in)
    amount_0 = _require(ev.data, "amount_0")
    amount_1 = _require(ev.data, "amount_1")
    if zero_for_one:
        return SwapLeg(user, mint_0, mint_1, amount_0, amount_1)
    return SwapLeg(user, mint_1, mint_0, amount_1, amount_0)


def extract_raydium_amm(tx, instructions):
    user = _account(instructions, RAYDIUM_AMM_PROGRAM_ID, "user_source_owner") or tx.fee_payer
    leg = _transfer_leg(tx, user)
    if leg is None:
        return None
    # Executed amounts live in the ray_log line, not in the instruction args
    ray_log = _event(tx, frozenset({"SwapBaseIn", "SwapBaseOut"}), RAYDIUM_AMM_PROGRAM_ID)
    if ray_log is not None:
        if ray_log.name == "SwapBaseIn":
            leg.amount_in = _require(ray_log.data, "amount_in")
            leg.amount_out = _require(ray_log.data, "out_amount")
        else:
            leg.amount_in = _require(ray_log.data, "deduct_in")
            leg.amount_out = _require(ray_log.data, "amount_out")
    return leg


def extract_raydium_cpmm(tx, instructions):
    user = _account(instructions, RAYDIUM_CPMM_PROGRAM_ID, "payer") or tx.fee_payer
    leg = _transfer_leg(tx, user)
    if leg is None:
        return None
    mint_in = _account(instructions, RAYDIUM_CPMM_PROGRAM_ID, "input_token_mint")
    mint_out = _account(instructions, RAYDIUM_CPMM_PROGRAM_ID, "output_token_mint")
    if mint_in and mint_out:
        leg.mint_in, leg.mint_out = mint_in, mint_out
    return leg


def extract_orca(tx, instructions):
    user = _account(instructions, ORCA_WHIRLPOOL_PROGRAM_ID, "token_authority") or tx.fee_payer
    return _transfer_leg(tx, user)


# ==============================================================================
# REGISTRY TABLE
# ==============================================================================

NORMALIZERS: Dict[Platform, NormalizerSpec] = {spec.platform: spec for spec in [
    NormalizerSpec(
        Platform.RAYDIUM_AMM, RAYDIUM_AMM_PROGRAM_ID, extract_raydium_amm,
        swap_instructions=frozenset({"swapBaseIn", "swapBaseOut", "swap_base_in", "swap_base_out"}),
        swap_events=frozenset({"SwapBaseIn", "SwapBaseOut"}),
        include_token_program=True,
    ),
    NormalizerSpec(
        Platform.RAYDIUM_CPMM, RAYDIUM_CPMM_PROGRAM_ID, extract_raydium_cpmm,
        swap_instructions=frozenset({"swap_base_input", "swap_base_output"}),
        include_token_program=True,
    ),
    NormalizerSpec(
        Platform.RAYDIUM_CLMM, RAYDIUM_CLMM_PROGRAM_ID, extract_raydium_clmm,
        swap_instructions=frozenset({"swap", "swap_v2", "swap_router_base_in"}),
        swap_events=frozenset({"SwapEvent"}),
        include_token_program=True,
    ),
    NormalizerSpec(
        Platform.RAYDIUM_LAUNCHPAD, RAYDIUM_LAUNCHPAD_PROGRAM_ID, extract_raydium_launchpad,
        swap_instructions=frozenset({"buy_exact_in", "buy_exact_out", "sell_exact_in", "sell_exact_out"}),
        swap_events=frozenset({"TradeEvent"}),
    ),
    NormalizerSpec(
        Platform.ORCA, ORCA_WHIRLPOOL_PROGRAM_ID, extract_orca,
        swap_instructions=frozenset({"swap", "swapV2", "swap_v2"}),
        include_token_program=True,
    ),
    NormalizerSpec(
        Platform.METEORA_DLMM, METEORA_DLMM_PROGRAM_ID, extract_meteora_dlmm,
        swap_instructions=frozenset({"swap", "swap2", "swapExactOut", "swap_exact_out",
                                     "swapWithPriceImpact", "swap_with_price_impact"}),
        swap_events=frozenset({"Swap"}),
    ),
    NormalizerSpec(
        Platform.METEORA_DAMM_V2, METEORA_DAMM_V2_PROGRAM_ID, extract_meteora_damm_v2,
        swap_instructions=frozenset({"swap", "swap2"}),
        swap_events=frozenset({"EvtSwap", "EvtSwap2"}),
        include_token_program=True,
    ),
    NormalizerSpec(
        Platform.METEORA_DBC, METEORA_DBC_PROGRAM_ID, extract_meteora_dbc,
        swap_instructions=frozenset({"swap", "swap2"}),
        swap_events=frozenset({"EvtSwap", "EvtSwap2"}),
        include_token_program=True,
    ),
    NormalizerSpec(
        Platform.PUMP_FUN, PUMP_FUN_PROGRAM_ID, extract_pump_fun,
        swap_instructions=frozenset({"buy", "sell"}),
        swap_events=frozenset({"TradeEvent"}),
    ),
    NormalizerSpec(
        Platform.PUMP_AMM, PUMP_AMM_PROGRAM_ID, extract_pump_amm,
        swap_instructions=frozenset({"buy", "sell"}),
        swap_events=frozenset({"BuyEvent", "SellEvent"}),
    ),
]}


def canonicalize(platform: Platform, tx: DecodedTransaction, leg: SwapLeg) -> SwapEvent:
    if leg.mint_in == leg.mint_out:
        raise DecodeError(f"swap with identical mints: {leg.mint_in}")

    if leg.mint_in == QUOTE_MINT:
        swap_type = SwapType.BUY
    elif leg.mint_out == QUOTE_MINT:
        swap_type = SwapType.SELL
    else:
        swap_type = SwapType.UNKNOWN

    fee_payer = leg.user or tx.fee_payer
    if not fee_payer:
        raise DecodeError("swap without a fee payer")

    return SwapEvent(
        signature=tx.signature,
        platform=platform,
        type=swap_type,
        mint_from=leg.mint_in,
        mint_to=leg.mint_out,
        in_amount=to_amount(leg.amount_in),
        out_amount=to_amount(leg.amount_out),
        fee_payer=fee_payer,
        slot=tx.slot,
    )


def normalize(spec: NormalizerSpec, tx: DecodedTransaction) -> Optional[SwapEvent]:
    """Pure: decoded transaction -> SwapEvent, or None if it holds no swap."""
    if tx.failed:
        return None
    instructions = spec.filter_instructions(tx.instructions)
    if not instructions or not spec.has_swap(tx, instructions):
        return None
    leg = spec.extract(tx, instructions)
    if leg is None:
        return None
    return canonicalize(spec.platform, tx, leg)
