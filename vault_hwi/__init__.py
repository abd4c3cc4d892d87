from .api import (
    DepositsRequest,
    PingRequest,
    Request,
    RevocationTransactionsRequest,
    SpendRequest,
    UnvaultRequest,
    VaultsRequest,
    parse_request,
)
from .base import DeviceKind, SigningDevice
from .discovery import Channel, default_probes, discover, try_connect
from .errors import (
    DeviceDidNotSign,
    DeviceDisconnected,
    DeviceNotFound,
    FramingError,
    HWIError,
    InputCountMismatch,
    ProtocolError,
    TransportError,
    UnimplementedMethod,
    classify_exception,
)
from .line_protocol import LineProtocolDevice, find_serial_port
from .models import CANCEL_TXS_COUNT, RevocationTransactions, Utxo
from .network_signer import NetworkSigner
from .psbt import clone_psbt, decode_psbt, encode_psbt, merge_partial_sigs
from .settings import Settings, SettingsValidationError

__all__ = [
    "CANCEL_TXS_COUNT",
    "Channel",
    "DepositsRequest",
    "DeviceDidNotSign",
    "DeviceDisconnected",
    "DeviceKind",
    "DeviceNotFound",
    "FramingError",
    "HWIError",
    "InputCountMismatch",
    "LineProtocolDevice",
    "NetworkSigner",
    "PingRequest",
    "ProtocolError",
    "Request",
    "RevocationTransactions",
    "RevocationTransactionsRequest",
    "Settings",
    "SettingsValidationError",
    "SigningDevice",
    "SpendRequest",
    "TransportError",
    "UnimplementedMethod",
    "UnvaultRequest",
    "Utxo",
    "VaultsRequest",
    "classify_exception",
    "clone_psbt",
    "decode_psbt",
    "default_probes",
    "discover",
    "encode_psbt",
    "find_serial_port",
    "merge_partial_sigs",
    "parse_request",
    "try_connect",
]
