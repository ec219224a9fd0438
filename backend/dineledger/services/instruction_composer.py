"""
Instruction composer - turns a booking intent into an ordered operation list
"""
from typing import List, Optional, Tuple

from solders.pubkey import Pubkey

from dineledger.core.addressing import dish_stats_address, user_stats_address
from dineledger.core.error_types import ClassifiedError, ErrorKind
from dineledger.core.logging_config import LoggingConfig
from dineledger.core.program import ProgramContext
from dineledger.models.intents import BookingIntent
from dineledger.models.operations import (BookTableOperation,
                                          InitializeDishStatsOperation,
                                          InitializeUserStatsOperation,
                                          Operation, TransferOperation)
from dineledger.services.account_prober import AccountProber

logger = LoggingConfig.get_logger(__name__)


class InstructionComposer:
    """
    Builds the operations of one booking transaction.

    Order is fixed:
    1. transfer (only when a payment is due), always first
    2. one "initialize dish stats" per dish whose record does not exist yet
    3. exactly one "book table", always last

    Probing and then initializing is not atomic: two concurrent bookings of
    the same unseen dish may both include the initialization, and the
    later one fails with "already in use".
    """

    def __init__(
        self,
        context: ProgramContext,
        prober: Optional[AccountProber] = None,
        ensure_subject_record: Optional[bool] = None,
    ):
        self.context = context
        self.prober = prober or AccountProber(context.client)
        if ensure_subject_record is None:
            ensure_subject_record = context.settings.ensure_subject_record
        self.ensure_subject_record = ensure_subject_record

    async def compose(self, intent: BookingIntent) -> List[Operation]:
        """
        Compose the operations for a booking

        Args:
            intent: Booking intent

        Returns:
            Non-empty list of operations, book table last

        Raises:
            ClassifiedError: InvalidDestination when a payment has no payee,
                RemoteUnavailable when a probe cannot reach the node
        """
        program_id = self.context.program_id
        operations: List[Operation] = []

        if intent.payment_lamports > 0:
            if intent.payment_destination is None:
                raise ClassifiedError(
                    ErrorKind.INVALID_DESTINATION,
                    "A payment destination is required when a payment is due",
                )
            operations.append(TransferOperation(
                payer=intent.user,
                payee=intent.payment_destination,
                lamports=intent.payment_lamports,
            ))

        dish_accounts: List[Tuple[Pubkey, Pubkey]] = []
        for dish in intent.dishes:
            stats_address = dish_stats_address(intent.user, dish.dish_id, program_id)
            if await self.prober.exists(stats_address):
                logger.debug(f"Dish stats for {dish.name!r} already exist at {stats_address}")
            else:
                operations.append(InitializeDishStatsOperation(
                    address=stats_address,
                    user=intent.user,
                    dish=dish.dish_id,
                    dish_name=dish.name,
                ))
            dish_accounts.append((stats_address, dish.dish_id))

        subject_address = user_stats_address(intent.user, intent.restaurant, program_id)
        if self.ensure_subject_record and not await self.prober.exists(subject_address):
            operations.append(InitializeUserStatsOperation(
                address=subject_address,
                user=intent.user,
                restaurant=intent.restaurant,
            ))

        operations.append(BookTableOperation(
            user_stats_address=subject_address,
            user=intent.user,
            restaurant=intent.restaurant,
            dish_accounts=dish_accounts,
        ))

        logger.info(
            f"Composed {len(operations)} operation(s) for booking at {intent.restaurant}: "
            f"{', '.join(op.kind for op in operations)}"
        )
        return operations
