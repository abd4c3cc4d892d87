from __future__ import annotations

import asyncio
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict

import serial
from embit.base import EmbitError


@dataclass(eq=False)
class HWIError(Exception):
    """
    Base error for every failure surfaced by a signing backend.

    `code` is a stable identifier callers can branch on; `data` carries
    structured context (never PSBT payloads).
    """

    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    code: ClassVar[str] = "hwi_error"

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class TransportError(HWIError):
    """Socket or serial I/O failure: the backend is unreachable."""

    code: ClassVar[str] = "transport_error"


@dataclass(eq=False)
class DeviceDisconnected(TransportError):
    code: ClassVar[str] = "device_disconnected"


@dataclass(eq=False)
class ProtocolError(HWIError):
    """The backend is reachable but answered something we cannot use."""

    code: ClassVar[str] = "protocol_error"


@dataclass(eq=False)
class FramingError(ProtocolError):
    """
    The byte stream itself is broken (truncated frame, missing ACK, EOF).

    The handle that produced it is out of sync and must not be reused.
    """

    code: ClassVar[str] = "framing_error"


@dataclass(eq=False)
class InputCountMismatch(ProtocolError):
    code: ClassVar[str] = "input_count_mismatch"


@dataclass(eq=False)
class DeviceDidNotSign(ProtocolError):
    code: ClassVar[str] = "device_did_not_sign"


@dataclass(eq=False)
class DeviceNotFound(HWIError):
    code: ClassVar[str] = "device_not_found"


@dataclass(eq=False)
class UnimplementedMethod(HWIError):
    code: ClassVar[str] = "unimplemented_method"


def is_stream_fatal(e: BaseException) -> bool:
    """True when the handle that raised `e` can no longer be trusted."""
    return isinstance(e, (TransportError, FramingError, asyncio.TimeoutError, asyncio.CancelledError))


def classify_exception(e: Exception) -> HWIError:
    """
    Map raw I/O, framing and codec failures into the HWI taxonomy.
    """
    if isinstance(e, HWIError):
        return e
    if isinstance(e, asyncio.IncompleteReadError):
        return FramingError("connection closed before a complete response", {"received": len(e.partial)})
    if isinstance(e, asyncio.LimitOverrunError):
        return FramingError("response line exceeds the read buffer", {})
    if isinstance(e, asyncio.TimeoutError):
        return TransportError("device did not answer before the deadline", {})
    if isinstance(e, serial.SerialException):
        return TransportError(f"serial error: {e}", {})
    if isinstance(e, (ConnectionError, OSError)):
        return TransportError(f"transport error: {e}", {"errno": getattr(e, "errno", None)})
    if isinstance(e, json.JSONDecodeError):
        return ProtocolError(f"invalid JSON from device: {e.msg}", {"pos": e.pos})
    if isinstance(e, UnicodeDecodeError):
        return ProtocolError("device sent non-text bytes", {})
    if isinstance(e, (binascii.Error, EmbitError)):
        return ProtocolError(f"invalid PSBT from device: {e}", {})

    return ProtocolError(str(e) or type(e).__name__, {"exception": type(e).__name__})
