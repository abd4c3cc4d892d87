from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Sequence

from embit.psbt import PSBT

from .errors import HWIError
from .models import RevocationTransactions, Utxo


class DeviceKind(Enum):
    """Closed set of backends a Channel can hold."""

    NETWORK_SIGNER = "network_signer"
    SIMULATOR = "simulator"
    SERIAL = "serial"


class SigningDevice(ABC):
    """
    One signing capability over every backend.

    A device instance owns one live transport. It is not safe to call from
    several tasks at once; callers serialize access themselves.
    """

    kind: DeviceKind

    @property
    def supports_batch(self) -> bool:
        """
        True if the device holds the vault descriptors and can derive and
        sign revocation/unvault transactions for raw utxos itself.
        """
        return False

    @abstractmethod
    async def ping(self) -> None:
        raise NotImplementedError

    async def is_connected(self) -> bool:
        try:
            await self.ping()
        except HWIError:
            return False
        return True

    @abstractmethod
    async def sign_revocation_txs(self, txs: RevocationTransactions) -> RevocationTransactions:
        raise NotImplementedError

    @abstractmethod
    async def sign_unvault_tx(self, unvault_tx: PSBT) -> PSBT:
        raise NotImplementedError

    @abstractmethod
    async def sign_spend_tx(self, spend_tx: PSBT) -> PSBT:
        raise NotImplementedError

    @abstractmethod
    async def secure_batch(self, deposits: Sequence[Utxo]) -> List[RevocationTransactions]:
        raise NotImplementedError

    @abstractmethod
    async def delegate_batch(self, vaults: Sequence[Utxo]) -> List[PSBT]:
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError
