"""
Review service - confidence scoring, duplicate checks and review reads
"""
from typing import List, Optional

from solders.pubkey import Pubkey

from dineledger.core import metrics
from dineledger.core.addressing import review_address
from dineledger.core.codec import RecordDecodeError
from dineledger.core.error_types import ClassifiedError, ErrorKind
from dineledger.core.ledger_client import LedgerError, MemcmpFilter
from dineledger.core.logging_config import LoggingConfig
from dineledger.core.program import ProgramContext
from dineledger.models.dashboard import ProcessedReview
from dineledger.models.intents import ReviewIntent
from dineledger.models.operations import SubmitReviewOperation
from dineledger.models.review import (MAX_RATING, MIN_RATING,
                                      REVIEW_DISCRIMINATOR,
                                      REVIEW_RESTAURANT_OFFSET, Review)
from dineledger.services.confidence_service import ConfidenceService
from dineledger.services.data_aggregator import DataAggregator
from dineledger.services.transaction_submitter import (SubmissionResult,
                                                       TransactionSubmitter)

logger = LoggingConfig.get_logger(__name__)


def _to_processed(address: Pubkey, review: Review) -> ProcessedReview:
    return ProcessedReview(
        address=str(address),
        user=str(review.user),
        restaurant=str(review.restaurant),
        rating=review.rating,
        review_text=review.text,
        confidence_level=review.confidence_level,
    )


class ReviewService:
    """Publishes reviews and reads them back"""

    def __init__(
        self,
        context: ProgramContext,
        confidence_service: Optional[ConfidenceService] = None,
        submitter: Optional[TransactionSubmitter] = None,
        aggregator: Optional[DataAggregator] = None,
    ):
        self.context = context
        self.confidence_service = confidence_service or ConfidenceService(settings=context.settings)
        self.submitter = submitter or TransactionSubmitter(context)
        self.aggregator = aggregator or DataAggregator(context)

    async def submit_review(self, intent: ReviewIntent) -> SubmissionResult:
        """
        Score and publish a review

        Args:
            intent: Restaurant, star rating and text

        Returns:
            SubmissionResult of the review transaction

        Raises:
            ClassifiedError: SignerUnavailable, InvalidRating, EmptyReview, DuplicateReview,
                RemoteUnavailable (scoring without fallback) or any submission failure
        """
        user = self.context.user
        if not MIN_RATING <= intent.rating <= MAX_RATING:
            raise ClassifiedError(
                ErrorKind.INVALID_RATING,
                f"Rating {intent.rating} is outside {MIN_RATING}-{MAX_RATING}",
            )
        if not intent.text.strip():
            raise ClassifiedError(ErrorKind.EMPTY_REVIEW, "Review text must not be empty")

        LoggingConfig.set_context(user=str(user), restaurant=str(intent.restaurant))

        existing = await self.fetch_user_review(user, intent.restaurant)
        if existing is not None:
            metrics.record_classified_error(ErrorKind.DUPLICATE_REVIEW.value)
            raise ClassifiedError(
                ErrorKind.DUPLICATE_REVIEW,
                f"{user} already reviewed {intent.restaurant}",
                details={"review_address": existing.address},
            )

        visit_count = await self.aggregator.visit_count(user, intent.restaurant)
        if visit_count is None:
            logger.warning("Visit count unavailable; scoring the review as a first visit")
            visit_count = 0

        confidence_level = await self.confidence_service.score(intent.text, intent.rating, visit_count)

        operation = SubmitReviewOperation(
            address=review_address(user, intent.restaurant, self.context.program_id),
            user=user,
            restaurant=intent.restaurant,
            rating=intent.rating,
            text=intent.text,
            confidence_level=confidence_level,
        )
        logger.info(
            f"Submitting review of {intent.restaurant}: rating={intent.rating}, "
            f"confidence={confidence_level}, visits={visit_count}"
        )
        return await self.submitter.submit([operation])

    async def fetch_user_review(self, user: Pubkey, restaurant: Pubkey) -> Optional[ProcessedReview]:
        """
        The review a user wrote for a restaurant

        Returns:
            ProcessedReview, or None when absent or unwritten

        Raises:
            ClassifiedError: RemoteUnavailable when the node cannot be reached
        """
        address = review_address(user, restaurant, self.context.program_id)
        try:
            account = await self.context.client.get_account_info(address)
        except LedgerError as e:
            raise ClassifiedError(
                ErrorKind.REMOTE_UNAVAILABLE,
                f"Could not check for an existing review: {e}",
                details={"address": str(address)},
            ) from e
        if account is None:
            logger.debug(f"No existing review for {user} at {restaurant}")
            return None

        try:
            review = Review.from_account_data(account.data)
        except RecordDecodeError as e:
            logger.warning(f"Malformed Review account {address}: {e}")
            metrics.record_skipped_record("review")
            return None
        return _to_processed(address, review) if review.is_written else None

    async def fetch_reviews_for_restaurant(self, restaurant: Pubkey) -> List[ProcessedReview]:
        """All reviews of a restaurant; empty when the node cannot be reached"""
        filters = [
            MemcmpFilter.for_raw(0, REVIEW_DISCRIMINATOR),
            MemcmpFilter.for_pubkey(REVIEW_RESTAURANT_OFFSET, restaurant),
        ]
        try:
            accounts = await self.context.client.get_program_accounts(self.context.program_id, filters)
        except LedgerError as e:
            logger.error(f"Fetching reviews for {restaurant} failed: {e}")
            return []

        reviews = []
        for keyed in accounts:
            try:
                review = Review.from_account_data(keyed.account.data)
            except RecordDecodeError as e:
                logger.warning(f"Skipping malformed Review account {keyed.pubkey}: {e}")
                metrics.record_skipped_record("review")
                continue
            if review.is_written:
                reviews.append(_to_processed(keyed.pubkey, review))

        logger.info(f"Fetched {len(reviews)} review(s) for restaurant {restaurant}")
        return reviews
