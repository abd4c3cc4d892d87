from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from embit.psbt import PSBT

from observability import build_log_context, log_event

from .base import DeviceKind, SigningDevice
from .errors import DeviceDisconnected, DeviceNotFound, HWIError, TransportError, UnimplementedMethod, is_stream_fatal
from .line_protocol import LineProtocolDevice
from .models import RevocationTransactions, Utxo
from .network_signer import NetworkSigner
from .settings import PROBE_NETWORK_SIGNER, PROBE_SERIAL, PROBE_SIMULATOR, Settings

T = TypeVar("T")

Probe = Tuple[str, Callable[[], Awaitable[SigningDevice]]]

_CTX = build_log_context(component="discovery")


def default_probes(settings: Settings) -> List[Probe]:
    """
    Probes in `HWI_DISCOVERY_ORDER`; by default network signer, then
    simulator, then USB serial device.
    """
    factories = {
        PROBE_NETWORK_SIGNER: lambda: NetworkSigner.connect(settings.NETWORK_SIGNER_ADDRESS),
        PROBE_SIMULATOR: lambda: LineProtocolDevice.connect_simulator(settings.SIMULATOR_ADDRESS),
        PROBE_SERIAL: lambda: LineProtocolDevice.connect_serial(
            vid=settings.SERIAL_VID,
            pid=settings.SERIAL_PID,
            baudrate=settings.SERIAL_BAUD_RATE,
        ),
    }
    return [(name, factories[name]) for name in settings.HWI_DISCOVERY_ORDER]


async def discover(probes: Sequence[Probe]) -> SigningDevice:
    """
    Run probes in order and return the first device that connects.

    Later probes are never attempted once one succeeds.
    """
    failures: dict[str, str] = {}
    for name, probe in probes:
        try:
            device = await probe()
        except (TransportError, DeviceNotFound) as e:
            failures[name] = f"{e.code}: {e}"
            log_event("probe_failed", ctx=_CTX, data={"probe": name, "error": e.code}, level="debug")
            continue
        log_event("device_connected", ctx=_CTX, data={"probe": name, "device": device.kind.value})
        return device
    log_event("device_not_found", ctx=_CTX, data={"probes": list(failures)}, level="warning")
    raise DeviceNotFound("no signing device accepted a connection", {"failures": failures})


async def try_connect(settings: Optional[Settings] = None, *, probes: Optional[Sequence[Probe]] = None) -> "Channel":
    settings = settings or Settings()
    if probes is None:
        probes = default_probes(settings)
    device = await discover(probes)
    return Channel(device, probes=probes, call_timeout=settings.HWI_CALL_TIMEOUT_SEC)


class Channel:
    """
    The single active signing device of an application.

    Holds at most one device handle. A handle that fails at the transport or
    framing level, is cancelled mid-call, or misses `call_timeout` is closed
    and dropped; later calls raise DeviceDisconnected until
    `ensure_connected()` (or a fresh `try_connect()`) finds a device again.

    There is no internal locking: callers must not issue concurrent calls on
    the same Channel.
    """

    def __init__(
        self,
        device: SigningDevice,
        *,
        probes: Optional[Sequence[Probe]] = None,
        call_timeout: Optional[float] = None,
    ) -> None:
        self._device: Optional[SigningDevice] = device
        self._probes = list(probes) if probes is not None else None
        self._call_timeout = call_timeout

    @property
    def device(self) -> SigningDevice:
        if self._device is None:
            raise DeviceDisconnected("no signing device is connected", {})
        return self._device

    @property
    def kind(self) -> Optional[DeviceKind]:
        return self._device.kind if self._device is not None else None

    @property
    def connected(self) -> bool:
        return self._device is not None

    async def _discard(self, reason: str) -> None:
        device, self._device = self._device, None
        if device is None:
            return
        log_event("device_discarded", ctx=_CTX, data={"device": device.kind.value, "reason": reason}, level="warning")
        await device.close()

    async def _call(self, name: str, fn: Callable[[SigningDevice], Awaitable[T]]) -> T:
        device = self.device
        try:
            if self._call_timeout is None:
                return await fn(device)
            return await asyncio.wait_for(fn(device), timeout=self._call_timeout)
        except asyncio.TimeoutError as e:
            await self._discard(f"{name}: deadline expired")
            raise TransportError(
                "device did not answer before the deadline",
                {"operation": name, "timeout_sec": self._call_timeout},
            ) from e
        except asyncio.CancelledError:
            await asyncio.shield(self._discard(f"{name}: cancelled"))
            raise
        except HWIError as e:
            if is_stream_fatal(e):
                await self._discard(f"{name}: {e.code}")
            raise

    def _require_batch(self, name: str) -> None:
        device = self.device
        if not device.supports_batch:
            raise UnimplementedMethod(f"{name} is not implemented by this device", {"device": device.kind.value})

    async def ping(self) -> None:
        await self._call("ping", lambda d: d.ping())

    async def is_connected(self) -> bool:
        if self._device is None:
            return False
        return await self._device.is_connected()

    async def ensure_connected(self) -> SigningDevice:
        """
        Rerun discovery if there is no handle or the handle reports it lost
        its device. Returns the live device.
        """
        if self._device is not None and await self._device.is_connected():
            return self._device
        await self._discard("reported disconnected")
        if self._probes is None:
            raise DeviceNotFound("channel has no probes to rediscover with", {})
        self._device = await discover(self._probes)
        return self._device

    async def sign_revocation_txs(self, txs: RevocationTransactions) -> RevocationTransactions:
        return await self._call("sign_revocation_txs", lambda d: d.sign_revocation_txs(txs))

    async def sign_unvault_tx(self, unvault_tx: PSBT) -> PSBT:
        return await self._call("sign_unvault_tx", lambda d: d.sign_unvault_tx(unvault_tx))

    async def sign_spend_tx(self, spend_tx: PSBT) -> PSBT:
        return await self._call("sign_spend_tx", lambda d: d.sign_spend_tx(spend_tx))

    async def secure_batch(self, deposits: Sequence[Utxo]) -> List[RevocationTransactions]:
        self._require_batch("secure_batch")
        return await self._call("secure_batch", lambda d: d.secure_batch(deposits))

    async def delegate_batch(self, vaults: Sequence[Utxo]) -> List[PSBT]:
        self._require_batch("delegate_batch")
        return await self._call("delegate_batch", lambda d: d.delegate_batch(vaults))

    async def close(self) -> None:
        device, self._device = self._device, None
        if device is not None:
            await device.close()

    async def __aenter__(self) -> "Channel":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"Channel(device={self._device!r})"
