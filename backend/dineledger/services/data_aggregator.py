"""
Data aggregator - rebuilds a user's dashboard from their records
"""
from typing import Optional

from solders.pubkey import Pubkey

from dineledger.core import metrics
from dineledger.core.addressing import user_stats_address
from dineledger.core.codec import RecordDecodeError
from dineledger.core.ledger_client import LedgerError, MemcmpFilter
from dineledger.core.logging_config import LoggingConfig
from dineledger.core.program import ProgramContext
from dineledger.models.dashboard import (DishAggregate, SubjectSummary,
                                         UserDashboard)
from dineledger.models.dish_stats import DISH_STATS_DISCRIMINATOR, DishStats
from dineledger.models.user_stats import USER_STATS_DISCRIMINATOR, UserStats

logger = LoggingConfig.get_logger(__name__)

# Every record type stores its owner right after the discriminator
OWNER_OFFSET = 8


class DataAggregator:
    """
    Fetches a user's visit and dish records and reduces them for display.

    Dish records are grouped by their decoded name, not by dish identity:
    two identities with the same display name collapse into one entry.
    """

    def __init__(self, context: ProgramContext):
        self.context = context

    def _owner_filters(self, discriminator: bytes, user: Pubkey):
        return [
            MemcmpFilter.for_raw(0, discriminator),
            MemcmpFilter.for_pubkey(OWNER_OFFSET, user),
        ]

    async def aggregate(self, user: Pubkey) -> UserDashboard:
        """
        Build the dashboard for a user

        Args:
            user: Identity of the user

        Returns:
            UserDashboard; empty when the node cannot be reached
        """
        dashboard = UserDashboard(user=str(user))
        client = self.context.client
        program_id = self.context.program_id

        try:
            subject_accounts = await client.get_program_accounts(
                program_id, self._owner_filters(USER_STATS_DISCRIMINATOR, user)
            )
            dish_accounts = await client.get_program_accounts(
                program_id, self._owner_filters(DISH_STATS_DISCRIMINATOR, user)
            )
        except LedgerError as e:
            logger.error(f"Fetching records for {user} failed, returning an empty dashboard: {e}")
            return UserDashboard(user=str(user))

        logger.debug(
            f"Found {len(subject_accounts)} UserStats and {len(dish_accounts)} DishStats accounts for {user}"
        )

        for keyed in subject_accounts:
            try:
                stats = UserStats.from_account_data(keyed.account.data)
            except RecordDecodeError as e:
                logger.warning(f"Skipping malformed UserStats account {keyed.pubkey}: {e}")
                metrics.record_skipped_record("user_stats")
                continue
            dashboard.subjects[str(stats.restaurant)] = SubjectSummary(
                visit_count=stats.visit_count,
                subject_address=str(keyed.pubkey),
            )

        for keyed in dish_accounts:
            try:
                stats = DishStats.from_account_data(keyed.account.data)
            except RecordDecodeError as e:
                logger.warning(f"Skipping malformed DishStats account {keyed.pubkey}: {e}")
                metrics.record_skipped_record("dish_stats")
                continue

            entry = dashboard.dishes_by_name.get(stats.name)
            if entry is None:
                entry = DishAggregate(name=stats.name)
                dashboard.dishes_by_name[stats.name] = entry
            entry.count += stats.count
            entry.contributing_addresses.append(str(keyed.pubkey))
            dish_id = str(stats.dish)
            if dish_id not in entry.contributing_dish_ids:
                entry.contributing_dish_ids.append(dish_id)

        logger.info(
            f"Dashboard for {user}: {len(dashboard.subjects)} restaurant(s), "
            f"{len(dashboard.dishes_by_name)} dish name(s)"
        )
        return dashboard

    async def visit_count(self, user: Pubkey, restaurant: Pubkey) -> Optional[int]:
        """
        Visits of a user to one restaurant

        Returns:
            The counter, 0 when no record exists, None when the node cannot
            be reached or the record is malformed
        """
        address = user_stats_address(user, restaurant, self.context.program_id)
        try:
            account = await self.context.client.get_account_info(address)
        except LedgerError as e:
            logger.error(f"Fetching visit count at {address} failed: {e}")
            return None

        if account is None:
            logger.debug(f"No UserStats account for {user} at {restaurant}; assuming 0 visits")
            return 0
        try:
            return UserStats.from_account_data(account.data).visit_count
        except RecordDecodeError as e:
            logger.warning(f"Malformed UserStats account {address}: {e}")
            metrics.record_skipped_record("user_stats")
            return None
