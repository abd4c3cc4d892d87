from __future__ import annotations

import base64
import binascii

from embit.base import EmbitError
from embit.psbt import PSBT

from .errors import DeviceDidNotSign, InputCountMismatch, ProtocolError


def encode_psbt(psbt: PSBT) -> str:
    """Consensus-serialize a PSBT and base64 it."""
    return base64.b64encode(psbt.serialize()).decode("ascii")


def decode_psbt(b64: str) -> PSBT:
    """
    Parse a base64 PSBT received from a device.

    Anything that is not a well-formed PSBT is a ProtocolError: the device
    answered, but with something we cannot use.
    """
    if not isinstance(b64, str) or not b64.strip():
        raise ProtocolError("expected a base64 PSBT string", {"type": type(b64).__name__})
    try:
        raw = base64.b64decode(b64.strip(), validate=True)
        return PSBT.parse(raw)
    except (binascii.Error, ValueError, EmbitError) as e:
        raise ProtocolError(f"invalid PSBT: {e}", {}) from e


def clone_psbt(psbt: PSBT) -> PSBT:
    return PSBT.parse(psbt.serialize())


def merge_partial_sigs(original: PSBT, device_response: PSBT) -> PSBT:
    """
    Add the partial signatures of a pruned device response to a copy of the
    caller's PSBT.

    Line-protocol devices strip everything but the global transaction and the
    signatures they added. Only `partial_sigs` is read from the response;
    every other field of `original` is kept as is. `original` is not mutated.
    """
    if len(original.inputs) != len(device_response.inputs):
        raise InputCountMismatch(
            "device answered for a different transaction",
            {"expected_inputs": len(original.inputs), "received_inputs": len(device_response.inputs)},
        )
    merged = clone_psbt(original)
    for merged_in, resp_in in zip(merged.inputs, device_response.inputs):
        merged_in.partial_sigs.update(resp_in.partial_sigs)
    return merged


def ensure_signed(request: PSBT, response: PSBT) -> None:
    """Raise DeviceDidNotSign unless some input gained a partial signature."""
    if len(request.inputs) != len(response.inputs):
        raise InputCountMismatch(
            "device answered for a different transaction",
            {"expected_inputs": len(request.inputs), "received_inputs": len(response.inputs)},
        )
    for before, after in zip(request.inputs, response.inputs):
        if len(after.partial_sigs) > len(before.partial_sigs):
            return
    raise DeviceDidNotSign("device returned the PSBT without adding a signature", {})
