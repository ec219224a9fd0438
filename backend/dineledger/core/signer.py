"""
Signer collaborator contract

Signing is delegated to an external wallet. ``KeypairSigner`` adapts a
local solders keypair to the same contract (scripts, tests, server wallets).
"""
from abc import ABC, abstractmethod

from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction


class SignerError(Exception):
    """Raised when the signer is unavailable or refuses to sign"""
    pass


class WalletSigner(ABC):
    """External signer holding the acting user's key"""

    @property
    @abstractmethod
    def public_key(self) -> Pubkey:
        """Identity of the acting user"""

    @abstractmethod
    async def sign_transaction(self, transaction: Transaction) -> Transaction:
        """Return the transaction carrying the user's signature"""


class KeypairSigner(WalletSigner):
    """Signs with an in-memory keypair"""

    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @property
    def public_key(self) -> Pubkey:
        return self._keypair.pubkey()

    async def sign_transaction(self, transaction: Transaction) -> Transaction:
        try:
            transaction.sign([self._keypair], transaction.message.recent_blockhash)
        except Exception as e:
            raise SignerError(f"Failed to sign transaction: {e}") from e
        return transaction
