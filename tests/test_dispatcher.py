"""
Decoder walk + dispatcher routing over jsonParsed stream messages.
"""
import pytest

from conftest import stream_message
from swaptrack.core.constants import (
    PUMP_FUN_PROGRAM_ID, RAYDIUM_AMM_PROGRAM_ID, SOL_MINT, TOKEN_PROGRAM_ID,
)
from swaptrack.core.errors import DecodeError
from swaptrack.ingestion.decoder import InstructionSchema, TransactionDecoder
from swaptrack.ingestion.dispatcher import SwapDispatcher
from swaptrack.ingestion.models import DecodedEvent, Platform, SwapType

USER = "UserWa11et111111111111111111111111111111111"
TOKEN = "TokenMint1111111111111111111111111111111pump"


class PumpFunSchema(InstructionSchema):
    program_id = PUMP_FUN_PROGRAM_ID

    def decode_instruction(self, data, accounts):
        if data == "buy-ix":
            return "buy", {"amount": 35000, "max_sol_cost": 2000}, {"mint": accounts[2], "user": accounts[6]}
        if data == "broken":
            raise ValueError("unexpected discriminator")
        return None

    def decode_cpi_event(self, data):
        if data == "trade-evt":
            return DecodedEvent("TradeEvent", {
                "mint": TOKEN, "sol_amount": 1000, "token_amount": 35000, "is_buy": True, "user": USER,
            })
        return None


class RaydiumAmmLogSchema(InstructionSchema):
    program_id = RAYDIUM_AMM_PROGRAM_ID

    def decode_instruction(self, data, accounts):
        return ("swapBaseIn", {}, {"user_source_owner": USER}) if data == "swap-ix" else None

    def decode_log(self, line):
        if line.startswith("Program log: ray_log: "):
            return DecodedEvent("SwapBaseIn", {"amount_in": 1000, "out_amount": 2000})
        return None


def pump_buy_message(signature="sig-pump", ix_data="buy-ix"):
    keys = [USER, PUMP_FUN_PROGRAM_ID, TOKEN, "bondingCurve", "curveAta", "userAta", USER, TOKEN_PROGRAM_ID]
    instructions = [{
        "programId": PUMP_FUN_PROGRAM_ID,
        "accounts": [keys[1], keys[3], TOKEN, keys[3], keys[4], keys[5], USER],
        "data": ix_data,
    }]
    meta = {
        "err": None,
        "logMessages": [],
        "innerInstructions": [{
            "index": 0,
            "instructions": [
                {
                    "programId": TOKEN_PROGRAM_ID,
                    "parsed": {"type": "transfer", "info": {
                        "source": "curveAta", "destination": "userAta",
                        "authority": "bondingCurve", "amount": "35000",
                    }},
                },
                {"programId": PUMP_FUN_PROGRAM_ID, "accounts": [], "data": "trade-evt"},
            ],
        }],
        "preTokenBalances": [
            {"accountIndex": 4, "mint": TOKEN, "owner": "bondingCurve"},
        ],
        "postTokenBalances": [
            {"accountIndex": 4, "mint": TOKEN, "owner": "bondingCurve"},
            {"accountIndex": 5, "mint": TOKEN, "owner": USER},
        ],
    }
    return stream_message(signature, 777, keys, instructions, meta)


def test_decoder_walks_instructions_events_and_transfers():
    decoded = TransactionDecoder([PumpFunSchema()]).decode(pump_buy_message())

    assert decoded.signature == "sig-pump"
    assert decoded.slot == 777
    assert decoded.fee_payer == USER
    assert [(ix.program_id, ix.name, ix.inner) for ix in decoded.instructions] == [
        (PUMP_FUN_PROGRAM_ID, "buy", False),
        (TOKEN_PROGRAM_ID, "transfer", True),
    ]
    assert decoded.instructions[0].accounts == {"mint": TOKEN, "user": USER}
    assert [ev.name for ev in decoded.events] == ["TradeEvent"]
    assert decoded.events[0].program_id == PUMP_FUN_PROGRAM_ID

    transfer = decoded.transfers[0]
    assert (transfer.amount, transfer.mint, transfer.authority) == (35000, TOKEN, "bondingCurve")
    assert decoded.owner_of("userAta") == USER


def test_decoder_attributes_log_events_to_the_executing_program():
    keys = [USER, RAYDIUM_AMM_PROGRAM_ID]
    meta = {
        "err": None,
        "logMessages": [
            "Program log: ray_log: ignored-outside-invoke",
            f"Program {RAYDIUM_AMM_PROGRAM_ID} invoke [1]",
            "Program log: ray_log: A0AAAA==",
            f"Program {RAYDIUM_AMM_PROGRAM_ID} consumed 30000 of 200000 compute units",
            f"Program {RAYDIUM_AMM_PROGRAM_ID} success",
        ],
        "innerInstructions": [],
        "preTokenBalances": [],
        "postTokenBalances": [],
    }
    message = stream_message("sig-ray", 5, keys,
                             [{"programId": RAYDIUM_AMM_PROGRAM_ID, "accounts": [], "data": "swap-ix"}], meta)
    decoded = TransactionDecoder([RaydiumAmmLogSchema()]).decode(message)

    assert len(decoded.events) == 1
    assert decoded.events[0].name == "SwapBaseIn"
    assert decoded.events[0].program_id == RAYDIUM_AMM_PROGRAM_ID


def test_dispatch_produces_canonical_swap():
    dispatcher = SwapDispatcher(TransactionDecoder([PumpFunSchema()]))
    swap = dispatcher.dispatch(pump_buy_message())

    assert swap.platform == Platform.PUMP_FUN
    assert swap.type == SwapType.BUY
    assert (swap.mint_from, swap.mint_to) == (SOL_MINT, TOKEN)
    assert (swap.in_amount, swap.out_amount) == ("1000", "35000")
    assert swap.signature == "sig-pump"
    assert dispatcher.stats["swaps"] == 1


def test_dispatch_unclassified_returns_none():
    dispatcher = SwapDispatcher(TransactionDecoder())
    assert dispatcher.dispatch(stream_message("sig-x", 1, [USER, "SomeOtherProgram"])) is None
    assert dispatcher.stats["unclassified"] == 1


def test_dispatch_decode_failure_returns_none_and_continues():
    dispatcher = SwapDispatcher(TransactionDecoder([PumpFunSchema()]))

    assert dispatcher.dispatch(pump_buy_message("sig-bad", ix_data="broken")) is None
    assert dispatcher.stats["decode_errors"] == 1

    assert dispatcher.dispatch(pump_buy_message("sig-good")) is not None


def test_decode_without_signature_raises():
    message = stream_message(None, 1, [USER, PUMP_FUN_PROGRAM_ID])
    with pytest.raises(DecodeError):
        TransactionDecoder().decode(message)


@pytest.mark.parametrize("instruction", [
    {"programIdIndex": 9, "accounts": [], "data": "x"},
    {"programId": RAYDIUM_AMM_PROGRAM_ID, "accounts": [0, 7], "data": "x"},
    "not-an-instruction",
])
def test_malformed_instruction_is_a_decode_error(instruction):
    message = stream_message("sig-bad", 1, [USER, RAYDIUM_AMM_PROGRAM_ID], [instruction])
    with pytest.raises(DecodeError):
        TransactionDecoder().decode(message)

    dispatcher = SwapDispatcher(TransactionDecoder())
    assert dispatcher.dispatch(message) is None
    assert dispatcher.stats["decode_errors"] == 1


def test_null_account_keys_are_unclassified():
    message = stream_message("sig-null", 1)
    message["transaction"]["transaction"]["message"]["accountKeys"] = None

    dispatcher = SwapDispatcher(TransactionDecoder())
    assert dispatcher.dispatch(message) is None
    assert dispatcher.stats["unclassified"] == 1
