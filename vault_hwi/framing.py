"""
Wire framing for both backend families.

Network signer: every message is a 4-byte big-endian length followed by that
many bytes of UTF-8 JSON.

Line protocol: a request is "\\r\\n\\r\\n<command>[ <argument>]\\r\\n"; the
answer is two lines, the literal "ACK" then the payload.

Both sides work on asyncio (StreamReader, StreamWriter) pairs so the TCP and
serial transports share this code.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

from observability import build_log_context, log_event

from .errors import FramingError, ProtocolError, classify_exception

_CTX = build_log_context(component="framing")
LENGTH_PREFIX_SIZE = 4
# Same ceiling as the network signer's own codec.
MAX_FRAME_LENGTH = 8 * 1024 * 1024

LINE_REQUEST_PREFIX = b"\r\n\r\n"
LINE_TERMINATOR = b"\r\n"
ACK = "ACK"


def encode_frame(doc: Dict[str, Any]) -> bytes:
    payload = json.dumps(doc, separators=(",", ":")).encode("utf-8")
    if len(payload) > MAX_FRAME_LENGTH:
        raise ProtocolError("request exceeds the maximum frame length", {"length": len(payload)})
    return len(payload).to_bytes(LENGTH_PREFIX_SIZE, "big") + payload


def decode_frame_payload(payload: bytes) -> Dict[str, Any]:
    try:
        doc = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise classify_exception(e) from e
    if not isinstance(doc, dict):
        raise ProtocolError("expected a JSON object", {"type": type(doc).__name__})
    return doc


async def _drain(writer: asyncio.StreamWriter, data: bytes) -> None:
    try:
        writer.write(data)
        await writer.drain()
    except (ConnectionError, OSError) as e:
        raise classify_exception(e) from e


async def write_frame(writer: asyncio.StreamWriter, doc: Dict[str, Any]) -> None:
    await _drain(writer, encode_frame(doc))


async def read_frame(reader: asyncio.StreamReader) -> Dict[str, Any]:
    """
    Read exactly one frame. EOF before a complete frame is a FramingError.
    """
    try:
        header = await reader.readexactly(LENGTH_PREFIX_SIZE)
        length = int.from_bytes(header, "big")
        if length > MAX_FRAME_LENGTH:
            raise FramingError("response frame exceeds the maximum frame length", {"length": length})
        payload = await reader.readexactly(length)
    except (asyncio.IncompleteReadError, ConnectionError, OSError) as e:
        raise classify_exception(e) from e
    return decode_frame_payload(payload)


def encode_line_request(command: str, argument: Optional[str] = None) -> bytes:
    if not command or any(c.isspace() for c in command):
        raise ValueError(f"invalid line-protocol command {command!r}")
    line = command if argument is None else f"{command} {argument}"
    if "\r" in line or "\n" in line:
        raise ValueError("line-protocol requests cannot contain line breaks")
    try:
        return LINE_REQUEST_PREFIX + line.encode("ascii") + LINE_TERMINATOR
    except UnicodeEncodeError:
        raise ValueError("line-protocol requests must be ASCII") from None


async def read_line(reader: asyncio.StreamReader) -> str:
    try:
        raw = await reader.readline()
    except ValueError as e:
        # StreamReader.readline reports buffer overruns as ValueError.
        raise FramingError(f"response line too long: {e}", {}) from e
    except (ConnectionError, OSError) as e:
        raise classify_exception(e) from e
    if not raw.endswith(b"\n"):
        raise FramingError("device closed the connection mid-response", {"received": len(raw)})
    line = raw[:-2] if raw.endswith(b"\r\n") else raw[:-1]
    try:
        return line.decode("ascii")
    except UnicodeDecodeError as e:
        raise FramingError("device sent a non-ASCII line", {}) from e


async def read_line_response(reader: asyncio.StreamReader) -> str:
    """
    Read the two-line answer and return the payload line.

    The first line must be exactly "ACK"; otherwise the payload is never
    parsed.
    """
    ack = await read_line(reader)
    if ack != ACK:
        raise FramingError("device did not acknowledge the request", {"first_line": ack[:32]})
    return await read_line(reader)


async def write_line_request(writer: asyncio.StreamWriter, command: str, argument: Optional[str] = None) -> None:
    await _drain(writer, encode_line_request(command, argument))


async def close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionError, OSError) as e:
        # Peer already gone; the transport is closed regardless.
        log_event("transport_close_error", ctx=_CTX, data={"error": str(e)}, level="debug")
