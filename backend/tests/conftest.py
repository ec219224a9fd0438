"""
Pytest configuration and fixtures
"""
import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Test defaults: never touch a real node, keep confirmation polling fast
os.environ.setdefault("RPC_URL", "http://ledger.test")
os.environ.setdefault("CONFIDENCE_ENDPOINT_URL", "http://scoring.test/api/calculate-confidence")
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("CONFIRMATION_TIMEOUT_SECONDS", "2")
os.environ.setdefault("CONFIRMATION_POLL_INTERVAL_SECONDS", "0.01")

from solders.keypair import Keypair

from dineledger.core.config import get_settings
from dineledger.core.logging_config import LoggingConfig
from dineledger.core.program import create_program_context
from dineledger.core.signer import KeypairSigner
from fake_ledger import FakeLedger


@pytest.fixture(autouse=True)
def fresh_settings():
    """Re-read settings for every test so monkeypatched env vars apply"""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    LoggingConfig.clear_context()


@pytest.fixture
def program_id():
    return get_settings().program_pubkey


@pytest.fixture
def ledger(program_id) -> FakeLedger:
    """In-memory ledger node"""
    return FakeLedger(program_id)


@pytest.fixture
def user_keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def signer(user_keypair) -> KeypairSigner:
    return KeypairSigner(user_keypair)


@pytest_asyncio.fixture
async def context(ledger, signer):
    """Program context for a funded user talking to the fake ledger"""
    ledger.fund(signer.public_key, 5_000_000_000)
    ctx = create_program_context(signer=signer, transport=ledger.transport())
    yield ctx
    await ctx.close()


@pytest_asyncio.fixture
async def readonly_context(ledger):
    """Program context without a signer"""
    ctx = create_program_context(transport=ledger.transport())
    yield ctx
    await ctx.close()
