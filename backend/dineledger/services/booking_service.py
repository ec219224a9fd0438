"""
Booking service - payment, dish tracking and visit counting in one transaction
"""
from typing import List, Optional, Sequence, Union

from solders.pubkey import Pubkey

from dineledger.core.addressing import restaurant_identity, to_pubkey
from dineledger.core.error_types import (ClassifiedError, ErrorKind,
                                         classify_error)
from dineledger.core.ledger_client import LedgerError
from dineledger.core.logging_config import LoggingConfig
from dineledger.core.program import ProgramContext
from dineledger.models.intents import BookingIntent, DishSelection
from dineledger.services.dish_registry import DishIdentityRegistry
from dineledger.services.instruction_composer import InstructionComposer
from dineledger.services.transaction_submitter import (SubmissionResult,
                                                       TransactionSubmitter)

logger = LoggingConfig.get_logger(__name__)


def parse_destination(destination: Union[str, Pubkey, None]) -> Optional[Pubkey]:
    """
    Parse a payment destination

    Raises:
        ClassifiedError: InvalidDestination for malformed addresses
    """
    if destination is None:
        return None
    try:
        return to_pubkey(destination)
    except ValueError as e:
        raise classify_error(e, {"destination": str(destination)}) from e


class BookingService:
    """Books a table: checks funds, composes and submits the transaction"""

    def __init__(
        self,
        context: ProgramContext,
        composer: Optional[InstructionComposer] = None,
        submitter: Optional[TransactionSubmitter] = None,
        dish_registry: Optional[DishIdentityRegistry] = None,
    ):
        self.context = context
        self.composer = composer or InstructionComposer(context)
        self.submitter = submitter or TransactionSubmitter(context)
        self.dish_registry = dish_registry or DishIdentityRegistry(
            catalog_id=context.settings.dish_catalog_id,
            mode=context.settings.dish_identity_mode,
        )

    def build_intent(
        self,
        restaurant_id: int,
        dish_names: Sequence[str] = (),
        payment_lamports: int = 0,
        destination: Union[str, Pubkey, None] = None,
    ) -> BookingIntent:
        """Intent for the acting user from catalog IDs and dish names"""
        user = self.context.user
        if destination is None and payment_lamports > 0:
            destination = self.context.settings.default_payment_destination
        dishes: List[DishSelection] = [
            DishSelection(dish_id=self.dish_registry.identity_for(name), name=name)
            for name in dish_names
        ]
        return BookingIntent(
            user=user,
            restaurant=restaurant_identity(restaurant_id),
            dishes=dishes,
            payment_lamports=payment_lamports,
            payment_destination=parse_destination(destination),
        )

    async def book(self, intent: BookingIntent) -> SubmissionResult:
        """
        Book a table for the acting user

        Returns:
            SubmissionResult carrying the tracking signature

        Raises:
            ClassifiedError: SignerUnavailable, InvalidDestination,
                InsufficientFunds, RemoteUnavailable or any submission failure
        """
        signer = self.context.require_signer()
        if intent.user != signer.public_key:
            raise ClassifiedError(
                ErrorKind.SIGNER_UNAVAILABLE,
                f"Connected wallet {signer.public_key} does not match booking user {intent.user}",
            )

        LoggingConfig.set_context(user=str(intent.user), restaurant=str(intent.restaurant))

        if intent.payment_lamports > 0:
            try:
                balance = await self.context.client.get_balance(intent.user)
            except LedgerError as e:
                raise classify_error(e, {"stage": "balance"}) from e
            if balance < intent.payment_lamports:
                raise ClassifiedError(
                    ErrorKind.INSUFFICIENT_FUNDS,
                    f"Insufficient funds for payment: balance {balance}, required {intent.payment_lamports} lamports",
                    details={"balance": balance, "required": intent.payment_lamports},
                )

        operations = await self.composer.compose(intent)
        result = await self.submitter.submit(operations)
        logger.info(f"Booking at {intent.restaurant} finished: {result.status.value} ({result.signature})")
        return result

    async def book_restaurant(
        self,
        restaurant_id: int,
        dish_names: Sequence[str] = (),
        payment_lamports: int = 0,
        destination: Union[str, Pubkey, None] = None,
    ) -> SubmissionResult:
        """Convenience wrapper around build_intent and book"""
        intent = self.build_intent(restaurant_id, dish_names, payment_lamports, destination)
        return await self.book(intent)
