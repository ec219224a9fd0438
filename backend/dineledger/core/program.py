"""
Program context - the capability object shared by every component
"""
from typing import Optional

import httpx
from solders.pubkey import Pubkey

from dineledger.core.config import Settings, get_settings
from dineledger.core.error_types import ClassifiedError, ErrorKind
from dineledger.core.ledger_client import LedgerClient
from dineledger.core.logging_config import LoggingConfig
from dineledger.core.signer import WalletSigner

logger = LoggingConfig.get_logger(__name__)


class ProgramContext:
    """
    Everything needed to talk to the booking program for one (signer, endpoint) pair

    Contains:
    - client: LedgerClient - JSON-RPC client bound to the endpoint
    - signer: Optional[WalletSigner] - external signer of the acting user
    - program_id: Pubkey - address of the booking program
    - settings: Settings - configuration snapshot
    """

    def __init__(
        self,
        client: LedgerClient,
        signer: Optional[WalletSigner] = None,
        program_id: Optional[Pubkey] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.signer = signer
        self.program_id = program_id or self.settings.program_pubkey

    @property
    def has_signer(self) -> bool:
        return self.signer is not None

    def require_signer(self) -> WalletSigner:
        """Signer of the acting user; SignerUnavailable when none is connected"""
        if self.signer is None:
            raise ClassifiedError(ErrorKind.SIGNER_UNAVAILABLE, "Wallet not connected")
        return self.signer

    @property
    def user(self) -> Pubkey:
        """Identity of the acting user"""
        return self.require_signer().public_key

    async def close(self):
        await self.client.close()

    async def __aenter__(self) -> "ProgramContext":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


def create_program_context(
    signer: Optional[WalletSigner] = None,
    rpc_url: Optional[str] = None,
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProgramContext:
    """
    Build a program context for a signer and endpoint

    Args:
        signer: Signer of the acting user (None for read-only use)
        rpc_url: Ledger endpoint (defaults to settings.rpc_url)
        settings: Settings override
        transport: Optional httpx transport (used to inject a mock node)

    Returns:
        ProgramContext bound to the endpoint
    """
    settings = settings or get_settings()
    client = LedgerClient(
        rpc_url=rpc_url or settings.rpc_url,
        timeout=settings.rpc_timeout_seconds,
        commitment=settings.commitment,
        transport=transport,
    )
    context = ProgramContext(client=client, signer=signer, settings=settings)
    logger.debug(
        f"Created program context for program {context.program_id} at {client.rpc_url} "
        f"(signer: {signer.public_key if signer else 'none'})"
    )
    return context
