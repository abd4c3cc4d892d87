from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence

import serial_asyncio
from embit.psbt import PSBT
from serial.tools import list_ports

from observability import build_log_context, log_event

from .base import DeviceKind, SigningDevice
from .errors import DeviceNotFound, TransportError, UnimplementedMethod, classify_exception
from .framing import close_writer, read_line_response, write_line_request
from .models import RevocationTransactions, Utxo
from .psbt import decode_psbt, encode_psbt, merge_partial_sigs
from .settings import (
    DEFAULT_SERIAL_BAUD_RATE,
    DEFAULT_SERIAL_PID,
    DEFAULT_SERIAL_VID,
    DEFAULT_SIMULATOR_ADDRESS,
    parse_address,
)

# Base64 PSBTs travel on a single line; the asyncio default of 64 KiB is too small.
STREAM_LIMIT = 16 * 1024 * 1024


def find_serial_port(vid: int = DEFAULT_SERIAL_VID, pid: int = DEFAULT_SERIAL_PID) -> str:
    """
    Return the device path of the first USB serial port with the given
    vendor/product id.
    """
    try:
        ports = list_ports.comports()
    except OSError as e:
        raise TransportError(f"error listing serial ports: {e}", {}) from e
    for port in ports:
        if port.vid == vid and port.pid == pid:
            return port.device
    raise DeviceNotFound("no serial device with matching USB id", {"vid": vid, "pid": pid})


class LineProtocolDevice(SigningDevice):
    """
    Hardware wallet (or its simulator) speaking the ACK line protocol.

    The device signs with keys and descriptors it holds and answers with a
    pruned PSBT: the global transaction plus the partial signatures it added.
    Every answer is merged back into the caller's PSBT before it is returned.

    Use `connect_simulator()` or `connect_serial()`; both yield the same
    request/response logic over an asyncio stream pair.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        kind: DeviceKind = DeviceKind.SIMULATOR,
        port: str = "",
        vid: int = DEFAULT_SERIAL_VID,
        pid: int = DEFAULT_SERIAL_PID,
    ) -> None:
        if kind not in (DeviceKind.SIMULATOR, DeviceKind.SERIAL):
            raise ValueError(f"not a line-protocol device kind: {kind}")
        self.kind = kind
        self._reader = reader
        self._writer = writer
        self._port = port
        self._vid = vid
        self._pid = pid
        self._ctx = build_log_context(device=kind.value, port=port or None)

    @classmethod
    async def connect_simulator(cls, address: str = DEFAULT_SIMULATOR_ADDRESS) -> "LineProtocolDevice":
        host, port = parse_address(address)
        try:
            reader, writer = await asyncio.open_connection(host, port, limit=STREAM_LIMIT)
        except (ConnectionError, OSError) as e:
            raise classify_exception(e) from e
        return cls(reader, writer, kind=DeviceKind.SIMULATOR, port=address)

    @classmethod
    async def connect_serial(
        cls,
        *,
        vid: int = DEFAULT_SERIAL_VID,
        pid: int = DEFAULT_SERIAL_PID,
        baudrate: int = DEFAULT_SERIAL_BAUD_RATE,
    ) -> "LineProtocolDevice":
        tty = find_serial_port(vid, pid)
        try:
            reader, writer = await serial_asyncio.open_serial_connection(
                url=tty, baudrate=baudrate, limit=STREAM_LIMIT
            )
        except (ConnectionError, OSError) as e:
            raise classify_exception(e) from e
        return cls(reader, writer, kind=DeviceKind.SERIAL, port=tty, vid=vid, pid=pid)

    @property
    def port(self) -> str:
        return self._port

    async def request(self, command: str, argument: Optional[str] = None) -> str:
        log_event("hw_request", ctx=self._ctx, data={"command": command}, level="debug")
        await write_line_request(self._writer, command, argument)
        payload = await read_line_response(self._reader)
        log_event("hw_response", ctx=self._ctx, data={"command": command, "length": len(payload)}, level="debug")
        return payload

    async def fingerprint(self) -> str:
        return await self.request("fingerprint")

    async def sign(self, psbt: PSBT) -> PSBT:
        """Sign one PSBT and merge the device's signatures into a copy of it."""
        payload = await self.request("sign", encode_psbt(psbt))
        pruned = decode_psbt(payload)
        return merge_partial_sigs(psbt, pruned)

    async def ping(self) -> None:
        await self.fingerprint()

    async def is_connected(self) -> bool:
        if self.kind is DeviceKind.SERIAL:
            # Probing the port list does not touch the (possibly busy) stream.
            try:
                return find_serial_port(self._vid, self._pid) == self._port
            except (DeviceNotFound, TransportError):
                return False
        return await super().is_connected()

    async def sign_revocation_txs(self, txs: RevocationTransactions) -> RevocationTransactions:
        signed: List[PSBT] = []
        for psbt in txs.all_psbts():
            signed.append(await self.sign(psbt))
        return RevocationTransactions.from_psbts(signed)

    async def sign_unvault_tx(self, unvault_tx: PSBT) -> PSBT:
        return await self.sign(unvault_tx)

    async def sign_spend_tx(self, spend_tx: PSBT) -> PSBT:
        return await self.sign(spend_tx)

    async def secure_batch(self, deposits: Sequence[Utxo]) -> List[RevocationTransactions]:
        raise UnimplementedMethod("batch securing is not implemented by this device", {"device": self.kind.value})

    async def delegate_batch(self, vaults: Sequence[Utxo]) -> List[PSBT]:
        raise UnimplementedMethod("batch delegation is not implemented by this device", {"device": self.kind.value})

    async def close(self) -> None:
        await close_writer(self._writer)

    def __repr__(self) -> str:
        return f"LineProtocolDevice(kind={self.kind.value!r}, port={self._port!r})"
