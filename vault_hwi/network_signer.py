from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Sequence

from embit.psbt import PSBT

from observability import build_log_context, log_event

from .api import (
    PingRequest,
    RevocationTransactionsRequest,
    SpendRequest,
    UnvaultRequest,
    build_deposits_request,
    build_vaults_request,
    parse_deposits_response,
    parse_revocation_response,
    parse_spend_response,
    parse_unvault_response,
    parse_vaults_response,
)
from .base import DeviceKind, SigningDevice
from .errors import classify_exception
from .framing import close_writer, read_frame, write_frame
from .models import RevocationTransactions, Utxo
from .psbt import ensure_signed
from .settings import DEFAULT_NETWORK_SIGNER_ADDRESS, parse_address


class NetworkSigner(SigningDevice):
    """
    Software test signer reachable over TCP.

    Protocol: one length-prefixed JSON request frame per call, answered by
    exactly one JSON response frame. The signer returns complete PSBTs, so
    no merge step is applied.
    """

    kind = DeviceKind.NETWORK_SIGNER

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, *, address: str = "") -> None:
        self._reader = reader
        self._writer = writer
        self._address = address
        self._ctx = build_log_context(device=self.kind.value, address=address or None)

    @classmethod
    async def connect(cls, address: str = DEFAULT_NETWORK_SIGNER_ADDRESS) -> "NetworkSigner":
        host, port = parse_address(address)
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except (ConnectionError, OSError) as e:
            raise classify_exception(e) from e
        return cls(reader, writer, address=address)

    @property
    def address(self) -> str:
        return self._address

    @property
    def supports_batch(self) -> bool:
        return True

    async def send(self, request: Dict[str, Any]) -> Dict[str, Any]:
        log_event("hw_request", ctx=self._ctx, data={"keys": sorted(request.keys())}, level="debug")
        await write_frame(self._writer, request)
        response = await read_frame(self._reader)
        log_event("hw_response", ctx=self._ctx, data={"keys": sorted(response.keys())}, level="debug")
        return response

    async def ping(self) -> None:
        await self.send(PingRequest().to_dict())

    async def sign_revocation_txs(self, txs: RevocationTransactions) -> RevocationTransactions:
        res = await self.send(RevocationTransactionsRequest(txs).to_dict())
        return parse_revocation_response(res)

    async def sign_unvault_tx(self, unvault_tx: PSBT) -> PSBT:
        res = await self.send(UnvaultRequest(unvault_tx).to_dict())
        return parse_unvault_response(res)

    async def sign_spend_tx(self, spend_tx: PSBT) -> PSBT:
        res = await self.send(SpendRequest(spend_tx).to_dict())
        signed = parse_spend_response(res)
        ensure_signed(spend_tx, signed)
        return signed

    async def secure_batch(self, deposits: Sequence[Utxo]) -> List[RevocationTransactions]:
        request = build_deposits_request(deposits)
        res = await self.send(request.to_dict())
        return parse_deposits_response(res, expected=len(request.deposits))

    async def delegate_batch(self, vaults: Sequence[Utxo]) -> List[PSBT]:
        request = build_vaults_request(vaults)
        res = await self.send(request.to_dict())
        return parse_vaults_response(res, expected=len(request.vaults))

    async def close(self) -> None:
        await close_writer(self._writer)

    def __repr__(self) -> str:
        return f"NetworkSigner(address={self._address!r})"
