"""
PSBT builders and in-process mock backends shared by the test modules.
"""

import asyncio
import hashlib
import socket
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

from embit.ec import PrivateKey
from embit.psbt import PSBT
from embit.script import Script
from embit.transaction import Transaction, TransactionInput, TransactionOutput

from vault_hwi.framing import read_frame, write_frame
from vault_hwi.line_protocol import STREAM_LIMIT
from vault_hwi.psbt import clone_psbt


def make_key(n: int) -> PrivateKey:
    return PrivateKey(hashlib.sha256(f"test-key-{n}".encode()).digest())


def make_psbt(n_inputs: int = 1, seed: int = 0) -> PSBT:
    """Unsigned PSBT whose inputs carry witness utxo and witness script metadata."""
    vin = [
        TransactionInput(hashlib.sha256(f"prevout-{seed}-{i}".encode()).digest(), i)
        for i in range(n_inputs)
    ]
    vout = [TransactionOutput(10_000 + seed, Script(b"\x00\x14" + bytes(20)))]
    psbt = PSBT(Transaction(version=2, vin=vin, vout=vout, locktime=0))
    for i, inp in enumerate(psbt.inputs):
        inp.witness_utxo = TransactionOutput(50_000 + i, Script(b"\x00\x20" + bytes([i]) * 32))
        inp.witness_script = Script(b"\x51\x21" + make_key(100 + i).get_public_key().sec() + b"\x51\xae")
    return psbt


def add_sig(psbt: PSBT, index: int, key: PrivateKey) -> PSBT:
    digest = hashlib.sha256(f"sighash-{index}".encode()).digest()
    psbt.inputs[index].partial_sigs[key.get_public_key()] = key.sign(digest).serialize() + b"\x01"
    return psbt


def prune(psbt: PSBT) -> PSBT:
    """What a line-protocol device sends back: skeleton only, no signatures yet."""
    out = clone_psbt(psbt)
    for inp in out.inputs:
        inp.witness_utxo = None
        inp.witness_script = None
        inp.partial_sigs.clear()
    return out


def sigs(psbt: PSBT, index: int) -> Dict[bytes, bytes]:
    return {pub.sec(): sig for pub, sig in psbt.inputs[index].partial_sigs.items()}


def free_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


@asynccontextmanager
async def frame_server(handler: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]):
    """
    Mock network signer. `handler` maps each request document to a response
    document; returning None closes the connection without answering.
    """
    received: List[Dict[str, Any]] = []
    writers: List[asyncio.StreamWriter] = []

    async def on_conn(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writers.append(writer)
        try:
            while True:
                doc = await read_frame(reader)
                received.append(doc)
                resp = handler(doc)
                if resp is None:
                    break
                await write_frame(writer, resp)
        except Exception:
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(on_conn, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"127.0.0.1:{port}", received
    finally:
        for w in writers:
            w.close()
        server.close()
        await server.wait_closed()


@asynccontextmanager
async def line_server(handler: Callable[[str, Optional[str]], bytes]):
    """
    Mock line-protocol device. `handler(command, argument)` returns the raw
    bytes to answer with.
    """
    received: List[str] = []
    writers: List[asyncio.StreamWriter] = []

    async def on_conn(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        writers.append(writer)
        try:
            while True:
                raw = await reader.readline()
                if not raw:
                    break
                line = raw.decode("ascii").strip()
                if not line:
                    continue
                received.append(line)
                command, _, argument = line.partition(" ")
                writer.write(handler(command, argument or None))
                await writer.drain()
        except Exception:
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(on_conn, "127.0.0.1", 0, limit=STREAM_LIMIT)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"127.0.0.1:{port}", received
    finally:
        for w in writers:
            w.close()
        server.close()
        await server.wait_closed()
