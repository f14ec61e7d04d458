"""
Transaction Decoder
===================
Walks a jsonParsed transaction (as delivered by the stream) into a
DecodedTransaction: top-level and inner instructions, token-program transfers,
log-derived events and the token-account -> mint/owner tables from the token
balances.

Byte-level decoding of protocol instructions is NOT done here. Each protocol's
layout is an external capability plugged in as an InstructionSchema keyed by
program id; without a schema an instruction is kept with name=None.
"""
import importlib
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from swaptrack.core.constants import TOKEN_PROGRAM_IDS
from swaptrack.core.errors import ConfigError, DecodeError
from swaptrack.ingestion.models import (
    DecodedEvent, DecodedInstruction, DecodedTransaction, TokenTransfer,
)

TRANSFER_TYPES = {"transfer", "transferChecked"}

_INVOKE_RE = re.compile(r"^Program (\S+) invoke \[\d+\]$")
_EXIT_RE = re.compile(r"^Program (\S+) (success|failed)")


class InstructionSchema(ABC):
    """
    Decoder schema for one program (an IDL-driven decoder in practice).
    """
    program_id: str

    @abstractmethod
    def decode_instruction(self, data: str, accounts: List[str]) -> Optional[Tuple[str, Dict[str, Any], Dict[str, str]]]:
        """Return (name, args, named_accounts) or None if the data is not recognised."""

    def decode_cpi_event(self, data: str) -> Optional[DecodedEvent]:
        """Decode a self-invoked event instruction (Anchor emit_cpi!)."""
        return None

    def decode_log(self, line: str) -> Optional[DecodedEvent]:
        """Decode a log line emitted while this program was executing."""
        return None


def _pubkey(entry) -> str:
    if isinstance(entry, dict):
        return entry.get("pubkey")
    return entry


def extract_account_keys(message: Dict[str, Any]) -> List[str]:
    """Account keys of a stream message without decoding anything else."""
    envelope = message.get("transaction") or {}
    msg = (envelope.get("transaction") or {}).get("message") or {}
    return [_pubkey(k) for k in msg.get("accountKeys") or []]


def _account_at(account_keys: List[str], idx) -> str:
    if not isinstance(idx, int) or not 0 <= idx < len(account_keys):
        raise DecodeError(f"account index {idx!r} out of range ({len(account_keys)} keys)")
    return account_keys[idx]


def _parse_slot(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def load_schemas(paths: List[str]) -> List[InstructionSchema]:
    """
    Resolve "package.module:Name" entries into schema instances. Name may be an
    InstructionSchema subclass, an instance, or a callable returning a list.
    """
    schemas: List[InstructionSchema] = []
    for path in paths:
        module_name, _, attr = path.partition(":")
        if not module_name or not attr:
            raise ConfigError(f"Invalid decoder schema path: {path!r} (expected module:Name)")
        try:
            target = getattr(importlib.import_module(module_name), attr)
        except (ImportError, AttributeError) as e:
            raise ConfigError(f"Cannot load decoder schema {path!r}: {e}") from e

        if isinstance(target, type) and issubclass(target, InstructionSchema):
            loaded = [target()]
        elif isinstance(target, InstructionSchema):
            loaded = [target]
        elif callable(target):
            loaded = list(target())
        else:
            raise ConfigError(f"Decoder schema {path!r} is not a schema or factory")

        for schema in loaded:
            if not isinstance(schema, InstructionSchema):
                raise ConfigError(f"{path!r} produced {type(schema).__name__}, not an InstructionSchema")
        schemas.extend(loaded)
    return schemas


class TransactionDecoder:
    def __init__(self, schemas: Optional[List[InstructionSchema]] = None):
        self._schemas: Dict[str, InstructionSchema] = {}
        for schema in schemas or []:
            self.register(schema)

    def register(self, schema: InstructionSchema):
        self._schemas[schema.program_id] = schema

    def schema_for(self, program_id: str) -> Optional[InstructionSchema]:
        return self._schemas.get(program_id)

    @property
    def program_ids(self) -> List[str]:
        return list(self._schemas)

    def decode(self, message: Dict[str, Any]) -> DecodedTransaction:
        """
        message: {"signature", "slot", "transaction": {"transaction": {...}, "meta": {...}}}
        """
        envelope = message.get("transaction") or {}
        tx = envelope.get("transaction") or {}
        meta = envelope.get("meta") or {}
        msg = tx.get("message") or {}

        signatures = tx.get("signatures") or []
        signature = message.get("signature") or (signatures[0] if signatures else None)
        if not signature:
            raise DecodeError("transaction has no signature")

        account_keys = extract_account_keys(message)
        decoded = DecodedTransaction(
            signature=signature,
            slot=_parse_slot(message.get("slot")),
            account_keys=account_keys,
            fee_payer=account_keys[0] if account_keys else None,
            log_messages=list(meta.get("logMessages") or []),
            failed=meta.get("err") is not None,
        )

        for balance in (meta.get("preTokenBalances") or []) + (meta.get("postTokenBalances") or []):
            idx = balance.get("accountIndex")
            if idx is None or idx >= len(account_keys):
                continue
            token_account = account_keys[idx]
            if balance.get("mint"):
                decoded.token_account_mints[token_account] = balance["mint"]
            if balance.get("owner"):
                decoded.token_account_owners[token_account] = balance["owner"]

        inner_by_index: Dict[int, List[Dict[str, Any]]] = {}
        for group in meta.get("innerInstructions") or []:
            inner_by_index.setdefault(group.get("index"), []).extend(group.get("instructions") or [])

        for i, raw_ix in enumerate(msg.get("instructions") or []):
            self._add_instruction(decoded, raw_ix, account_keys, index=i, inner=False)
            for raw_inner in inner_by_index.get(i, []):
                self._add_instruction(decoded, raw_inner, account_keys, index=i, inner=True)

        decoded.events.extend(self._decode_logs(decoded.log_messages))
        return decoded

    def _add_instruction(self, decoded: DecodedTransaction, raw_ix: Dict[str, Any],
                         account_keys: List[str], index: int, inner: bool):
        if not isinstance(raw_ix, dict):
            raise DecodeError(f"instruction {index} is not an object")

        program_id = raw_ix.get("programId")
        if program_id is None and "programIdIndex" in raw_ix:
            program_id = _account_at(account_keys, raw_ix["programIdIndex"])

        accounts = [
            _account_at(account_keys, a) if isinstance(a, int) else a
            for a in raw_ix.get("accounts") or []
        ]

        parsed = raw_ix.get("parsed")
        if program_id in TOKEN_PROGRAM_IDS and isinstance(parsed, dict):
            info = parsed.get("info") or {}
            ix_type = parsed.get("type")
            decoded.instructions.append(DecodedInstruction(
                program_id=program_id, name=ix_type, args=info,
                account_list=accounts, inner=inner, index=index,
            ))
            if ix_type in TRANSFER_TYPES:
                decoded.transfers.append(self._transfer(decoded, info, inner))
            return

        ix = DecodedInstruction(program_id=program_id, account_list=accounts, inner=inner, index=index)
        schema = self._schemas.get(program_id)
        data = raw_ix.get("data")
        if schema is not None and data is not None:
            try:
                if inner:
                    event = schema.decode_cpi_event(data)
                    if event is not None:
                        event.program_id = event.program_id or program_id
                        decoded.events.append(event)
                        return
                result = schema.decode_instruction(data, accounts)
            except DecodeError:
                raise
            except Exception as e:
                raise DecodeError(f"{program_id} instruction decode failed: {e}") from e
            if result is not None:
                ix.name, ix.args, ix.accounts = result
        decoded.instructions.append(ix)

    @staticmethod
    def _transfer(decoded: DecodedTransaction, info: Dict[str, Any], inner: bool) -> TokenTransfer:
        token_amount = info.get("tokenAmount")
        raw_amount = token_amount.get("amount") if isinstance(token_amount, dict) else info.get("amount")
        try:
            amount = int(raw_amount)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"bad transfer amount: {raw_amount!r}") from e

        source = info.get("source")
        destination = info.get("destination")
        mint = info.get("mint") or decoded.mint_of(source) or decoded.mint_of(destination)
        return TokenTransfer(
            source=source,
            destination=destination,
            authority=info.get("authority") or info.get("multisigAuthority"),
            amount=amount,
            mint=mint,
            inner=inner,
        )

    def _decode_logs(self, log_messages: List[str]) -> List[DecodedEvent]:
        events = []
        stack: List[str] = []
        for line in log_messages:
            invoke = _INVOKE_RE.match(line)
            if invoke:
                stack.append(invoke.group(1))
                continue
            exit_ = _EXIT_RE.match(line)
            if exit_:
                if stack and stack[-1] == exit_.group(1):
                    stack.pop()
                continue
            if not stack:
                continue
            schema = self._schemas.get(stack[-1])
            if schema is None:
                continue
            try:
                event = schema.decode_log(line)
            except Exception as e:
                raise DecodeError(f"{stack[-1]} log decode failed: {e}") from e
            if event is not None:
                event.program_id = event.program_id or stack[-1]
                events.append(event)
        return events
