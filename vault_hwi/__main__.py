"""
Probe for a signing device: `python -m vault_hwi`.

Runs discovery with the configured probe order, pings the device that
answers and prints the outcome as one JSON line. Exit status is 0 when a
device answered, 1 otherwise.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Dict

from observability import configure_logging

from .discovery import try_connect
from .errors import HWIError
from .line_protocol import LineProtocolDevice
from .settings import Settings


async def probe(settings: Settings) -> Dict[str, Any]:
    try:
        async with await try_connect(settings) as channel:
            await channel.ping()
            out: Dict[str, Any] = {"ok": True, "device": channel.device.kind.value}
            if isinstance(channel.device, LineProtocolDevice):
                out["fingerprint"] = await channel.device.fingerprint()
            return out
    except HWIError as e:
        return {"ok": False, "error": {"code": e.code, "message": str(e), "data": e.data}}


def main() -> None:
    settings = Settings()
    configure_logging(settings.HWI_LOG_LEVEL)
    result = asyncio.run(probe(settings))
    print(json.dumps(result, default=str))
    sys.exit(0 if result["ok"] else 1)


if __name__ == "__main__":
    main()
