from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple

from embit.psbt import PSBT

CANCEL_TXS_COUNT = 5

HARDENED_INDEX = 0x80000000
MAX_AMOUNT_SAT = 2**64 - 1


def check_derivation_index(index: Any) -> int:
    """Accept only a non-hardened BIP32 child index."""
    if isinstance(index, bool) or not isinstance(index, int):
        raise ValueError(f"derivation index must be an integer, got {type(index).__name__}")
    if index < 0:
        raise ValueError(f"derivation index must be non-negative, got {index}")
    if index >= HARDENED_INDEX:
        raise ValueError(f"derivation index {index} is hardened")
    return index


def parse_outpoint(outpoint: str) -> Tuple[str, int]:
    """Split "<txid>:<vout>" into (lowercase txid hex, vout)."""
    if not isinstance(outpoint, str):
        raise ValueError(f"outpoint must be a string, got {type(outpoint).__name__}")
    txid, sep, vout_s = outpoint.partition(":")
    if not sep or len(txid) != 64:
        raise ValueError(f"malformed outpoint {outpoint!r}")
    try:
        bytes.fromhex(txid)
    except ValueError:
        raise ValueError(f"outpoint txid is not hex: {outpoint!r}") from None
    if not vout_s.isdigit():
        raise ValueError(f"outpoint vout is not a number: {outpoint!r}")
    vout = int(vout_s)
    if vout > 0xFFFFFFFF:
        raise ValueError(f"outpoint vout out of range: {outpoint!r}")
    return txid.lower(), vout


@dataclass(frozen=True)
class Utxo:
    """
    A deposit or vault coin handed to a device that derives its own
    transactions from descriptors it holds.
    """

    outpoint: str
    amount: int
    derivation_index: int

    def __post_init__(self) -> None:
        txid, vout = parse_outpoint(self.outpoint)
        object.__setattr__(self, "outpoint", f"{txid}:{vout}")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise ValueError(f"amount must be an integer number of satoshis, got {type(self.amount).__name__}")
        if not (0 <= self.amount <= MAX_AMOUNT_SAT):
            raise ValueError(f"amount out of range: {self.amount}")
        check_derivation_index(self.derivation_index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outpoint": self.outpoint,
            "amount": self.amount,
            "derivation_index": self.derivation_index,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Utxo":
        return cls(
            outpoint=d.get("outpoint"),  # type: ignore[arg-type]
            amount=d.get("amount"),  # type: ignore[arg-type]
            derivation_index=d.get("derivation_index"),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class RevocationTransactions:
    """
    The pre-signed transactions that allow unwinding a vault.

    `cancel_txs` is ordered and always has exactly five entries; position
    carries meaning for the caller and is preserved end to end.
    """

    cancel_txs: Tuple[PSBT, ...]
    emergency_tx: PSBT
    emergency_unvault_tx: PSBT

    def __post_init__(self) -> None:
        txs = tuple(self.cancel_txs)
        if len(txs) != CANCEL_TXS_COUNT:
            raise ValueError(f"expected {CANCEL_TXS_COUNT} cancel transactions, got {len(txs)}")
        object.__setattr__(self, "cancel_txs", txs)

    def all_psbts(self) -> Tuple[PSBT, ...]:
        """Cancel txs in order, then emergency, then emergency-unvault."""
        return (*self.cancel_txs, self.emergency_tx, self.emergency_unvault_tx)

    @classmethod
    def from_psbts(cls, psbts: Sequence[PSBT]) -> "RevocationTransactions":
        """Inverse of `all_psbts`."""
        if len(psbts) != CANCEL_TXS_COUNT + 2:
            raise ValueError(f"expected {CANCEL_TXS_COUNT + 2} transactions, got {len(psbts)}")
        return cls(
            cancel_txs=tuple(psbts[:CANCEL_TXS_COUNT]),
            emergency_tx=psbts[CANCEL_TXS_COUNT],
            emergency_unvault_tx=psbts[CANCEL_TXS_COUNT + 1],
        )
