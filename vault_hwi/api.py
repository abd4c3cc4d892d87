"""
Network-signer message shapes.

Requests are told apart by which keys they carry. Instead of guessing, every
document is matched against the closed set of shapes below and rejected if it
matches none or more than one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, FrozenSet, List, Sequence, Tuple, Type, Union

from embit.psbt import PSBT

from .errors import ProtocolError
from .models import CANCEL_TXS_COUNT, RevocationTransactions, Utxo
from .psbt import decode_psbt, encode_psbt

REVOCATION_KEYS: FrozenSet[str] = frozenset({"cancel_txs", "emergency_tx", "emergency_unvault_tx"})


def _encode_revocation(txs: RevocationTransactions) -> Dict[str, Any]:
    return {
        "cancel_txs": [encode_psbt(p) for p in txs.cancel_txs],
        "emergency_tx": encode_psbt(txs.emergency_tx),
        "emergency_unvault_tx": encode_psbt(txs.emergency_unvault_tx),
    }


def _decode_revocation(doc: Dict[str, Any]) -> RevocationTransactions:
    cancel = doc.get("cancel_txs")
    if not isinstance(cancel, list) or len(cancel) != CANCEL_TXS_COUNT:
        raise ProtocolError(
            f"cancel_txs must be a list of {CANCEL_TXS_COUNT} PSBTs",
            {"received": len(cancel) if isinstance(cancel, list) else type(cancel).__name__},
        )
    return RevocationTransactions(
        cancel_txs=tuple(decode_psbt(c) for c in cancel),
        emergency_tx=decode_psbt(doc.get("emergency_tx")),  # type: ignore[arg-type]
        emergency_unvault_tx=decode_psbt(doc.get("emergency_unvault_tx")),  # type: ignore[arg-type]
    )


def _decode_utxos(items: Any, key: str) -> Tuple[Utxo, ...]:
    if not isinstance(items, list):
        raise ProtocolError(f"{key} must be a list", {"type": type(items).__name__})
    out: List[Utxo] = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ProtocolError(f"{key}[{i}] must be an object", {})
        try:
            out.append(Utxo.from_dict(item))
        except ValueError as e:
            raise ProtocolError(f"{key}[{i}]: {e}", {}) from e
    return tuple(out)


@dataclass(frozen=True)
class RevocationTransactionsRequest:
    keys: ClassVar[FrozenSet[str]] = REVOCATION_KEYS

    transactions: RevocationTransactions

    def to_dict(self) -> Dict[str, Any]:
        return _encode_revocation(self.transactions)

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "RevocationTransactionsRequest":
        return cls(_decode_revocation(doc))


@dataclass(frozen=True)
class UnvaultRequest:
    keys: ClassVar[FrozenSet[str]] = frozenset({"unvault_tx"})

    unvault_tx: PSBT

    def to_dict(self) -> Dict[str, Any]:
        return {"unvault_tx": encode_psbt(self.unvault_tx)}

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "UnvaultRequest":
        return cls(decode_psbt(doc["unvault_tx"]))


@dataclass(frozen=True)
class SpendRequest:
    keys: ClassVar[FrozenSet[str]] = frozenset({"spend_tx"})

    spend_tx: PSBT

    def to_dict(self) -> Dict[str, Any]:
        return {"spend_tx": encode_psbt(self.spend_tx)}

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "SpendRequest":
        return cls(decode_psbt(doc["spend_tx"]))


@dataclass(frozen=True)
class DepositsRequest:
    keys: ClassVar[FrozenSet[str]] = frozenset({"deposits"})

    deposits: Tuple[Utxo, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"deposits": [u.to_dict() for u in self.deposits]}

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "DepositsRequest":
        return cls(_decode_utxos(doc["deposits"], "deposits"))


@dataclass(frozen=True)
class VaultsRequest:
    keys: ClassVar[FrozenSet[str]] = frozenset({"vaults"})

    vaults: Tuple[Utxo, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"vaults": [u.to_dict() for u in self.vaults]}

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "VaultsRequest":
        return cls(_decode_utxos(doc["vaults"], "vaults"))


@dataclass(frozen=True)
class PingRequest:
    keys: ClassVar[FrozenSet[str]] = frozenset({"request"})

    def to_dict(self) -> Dict[str, Any]:
        return {"request": "ping"}

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "PingRequest":
        if doc.get("request") != "ping":
            raise ProtocolError("unknown request", {"request": str(doc.get("request"))[:32]})
        return cls()


Request = Union[
    RevocationTransactionsRequest,
    UnvaultRequest,
    SpendRequest,
    DepositsRequest,
    VaultsRequest,
    PingRequest,
]

REQUEST_TYPES: Tuple[Type[Any], ...] = (
    RevocationTransactionsRequest,
    UnvaultRequest,
    SpendRequest,
    DepositsRequest,
    VaultsRequest,
    PingRequest,
)


def match_request_shape(doc: Dict[str, Any]) -> Type[Any]:
    """
    Return the single request type whose keys `doc` carries.

    A type matches when all of its keys are present. Zero matches, several
    matches, or keys that belong to no shape at all are rejected.
    """
    if not isinstance(doc, dict):
        raise ProtocolError("request must be a JSON object", {"type": type(doc).__name__})
    present = set(doc.keys())
    matches = [t for t in REQUEST_TYPES if t.keys <= present]
    partial = [t.__name__ for t in REQUEST_TYPES if (t.keys & present) and not t.keys <= present]
    if partial:
        raise ProtocolError("request carries an incomplete shape", {"incomplete": partial})
    if len(matches) != 1:
        raise ProtocolError(
            "request does not match exactly one known shape",
            {"matches": [t.__name__ for t in matches], "keys": sorted(present)},
        )
    extra = present - matches[0].keys
    if extra:
        raise ProtocolError("request carries unknown keys", {"keys": sorted(extra)})
    return matches[0]


def parse_request(doc: Dict[str, Any]) -> Request:
    return match_request_shape(doc).from_dict(doc)


def _check_remote_error(doc: Dict[str, Any]) -> None:
    err = doc.get("error")
    if err is not None:
        raise ProtocolError(f"signer refused the request: {err}", {"remote_error": str(err)})


def parse_revocation_response(doc: Dict[str, Any]) -> RevocationTransactions:
    _check_remote_error(doc)
    missing = REVOCATION_KEYS - set(doc.keys())
    if missing:
        raise ProtocolError("revocation response is missing keys", {"missing": sorted(missing)})
    return _decode_revocation(doc)


def _parse_single(doc: Dict[str, Any], key: str) -> PSBT:
    _check_remote_error(doc)
    if key not in doc:
        raise ProtocolError(f"response is missing {key}", {"keys": sorted(doc.keys())})
    return decode_psbt(doc[key])


def parse_unvault_response(doc: Dict[str, Any]) -> PSBT:
    return _parse_single(doc, "unvault_tx")


def parse_spend_response(doc: Dict[str, Any]) -> PSBT:
    return _parse_single(doc, "spend_tx")


def _batch_items(doc: Dict[str, Any], expected: int) -> List[Dict[str, Any]]:
    _check_remote_error(doc)
    items = doc.get("transactions")
    if not isinstance(items, list):
        raise ProtocolError("batch response is missing the transactions list", {"keys": sorted(doc.keys())})
    if len(items) != expected:
        raise ProtocolError(
            "batch response does not have one result per utxo",
            {"expected": expected, "received": len(items)},
        )
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ProtocolError(f"transactions[{i}] must be an object", {})
    return items


def parse_deposits_response(doc: Dict[str, Any], expected: int) -> List[RevocationTransactions]:
    return [parse_revocation_response(item) for item in _batch_items(doc, expected)]


def parse_vaults_response(doc: Dict[str, Any], expected: int) -> List[PSBT]:
    return [parse_unvault_response(item) for item in _batch_items(doc, expected)]


def build_deposits_request(deposits: Sequence[Utxo]) -> DepositsRequest:
    return DepositsRequest(tuple(deposits))


def build_vaults_request(vaults: Sequence[Utxo]) -> VaultsRequest:
    return VaultsRequest(tuple(vaults))
