"""
Account existence probe
"""
from solders.pubkey import Pubkey

from dineledger.core.error_types import classify_error
from dineledger.core.ledger_client import LedgerClient, LedgerTransportError
from dineledger.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)


class AccountProber:
    """Answers whether a derived address already holds an account"""

    def __init__(self, client: LedgerClient):
        self.client = client

    async def exists(self, address: Pubkey) -> bool:
        """
        Check whether an account exists at the address.

        Not-found is a normal answer (False). An account that exists but
        holds no data still counts as existing.

        Raises:
            ClassifiedError: RemoteUnavailable when the node cannot be reached
        """
        try:
            account = await self.client.get_account_info(address)
        except LedgerTransportError as e:
            logger.warning(f"Existence probe for {address} failed: {e}")
            raise classify_error(e, {"operation": "probe", "address": str(address)}) from e

        exists = account is not None
        logger.debug(f"Probe {address}: {'exists' if exists else 'not found'}")
        return exists
