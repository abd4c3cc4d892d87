import os
import sys

import pytest

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from vault_hwi.settings import Settings
from support import make_psbt


@pytest.fixture
def psbt():
    return make_psbt(n_inputs=2)


@pytest.fixture
def settings(monkeypatch):
    for k in list(os.environ.keys()):
        if k.startswith(("HWI_", "SERIAL_", "NETWORK_SIGNER_", "SIMULATOR_")):
            monkeypatch.delenv(k, raising=False)
    return Settings()
