"""
Confidence scoring for reviews
"""
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from dineledger.core import metrics
from dineledger.core.config import Settings, get_settings
from dineledger.core.error_types import ClassifiedError, ErrorKind
from dineledger.core.logging_config import LoggingConfig
from dineledger.models.review import MAX_CONFIDENCE, MIN_CONFIDENCE

logger = LoggingConfig.get_logger(__name__)


class ConfidenceResponse(BaseModel):
    calculatedConfidenceLevel: Optional[int] = None
    error: Optional[str] = None


def clamp_confidence(value: float) -> int:
    return int(round(max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, value))))


def visit_frequency_contribution(visit_count: int) -> int:
    """0-2 points for how often the reviewer visited"""
    if visit_count >= 10:
        return 2
    if visit_count >= 3:
        return 1
    return 0


def text_length_contribution(review_text: str) -> int:
    """0-3 points for how detailed the review is"""
    length = len(review_text.strip())
    if length > 200:
        return 3
    if length > 100:
        return 2
    if length > 20:
        return 1
    return 0


def fallback_confidence_level(review_text: str, star_rating: int, visit_count: int) -> int:
    """Deterministic score: rating plus visit and length buckets, clamped to 1-10"""
    score = star_rating + visit_frequency_contribution(visit_count) + text_length_contribution(review_text)
    return clamp_confidence(score)


class ConfidenceService:
    """
    Client for the confidence-scoring endpoint

    The endpoint must answer before a review is submitted. When it fails
    the review does not proceed, unless the deterministic fallback is
    enabled.
    """

    def __init__(
        self,
        endpoint_url: Optional[str] = None,
        fallback_enabled: Optional[bool] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.endpoint_url = endpoint_url or self.settings.confidence_endpoint_url
        self.fallback_enabled = (
            self.settings.confidence_fallback_enabled if fallback_enabled is None else fallback_enabled
        )
        self._transport = transport

    async def _request_score(self, review_text: str, star_rating: int, visit_count: int) -> int:
        payload = {"reviewText": review_text, "starRating": star_rating, "visitCount": visit_count}
        async with httpx.AsyncClient(
            timeout=self.settings.confidence_timeout_seconds,
            transport=self._transport,
        ) as client:
            response = await client.post(self.endpoint_url, json=payload)

        try:
            body = ConfidenceResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ValueError(f"Unreadable confidence response (HTTP {response.status_code}): {e}") from e

        if body.error or response.status_code >= 400:
            raise ValueError(f"Confidence endpoint error (HTTP {response.status_code}): {body.error}")
        if body.calculatedConfidenceLevel is None:
            raise ValueError("Confidence endpoint returned no score")
        return clamp_confidence(body.calculatedConfidenceLevel)

    async def score(self, review_text: str, star_rating: int, visit_count: int) -> int:
        """
        Confidence level (1-10) for a review

        Raises:
            ClassifiedError: RemoteUnavailable when the endpoint fails and the fallback is disabled
        """
        try:
            level = await self._request_score(review_text, star_rating, visit_count)
        except (httpx.HTTPError, ValueError) as e:
            if not self.fallback_enabled:
                logger.error(f"Confidence endpoint failed and fallback is disabled: {e}")
                metrics.record_classified_error(ErrorKind.REMOTE_UNAVAILABLE.value)
                raise ClassifiedError(
                    ErrorKind.REMOTE_UNAVAILABLE,
                    f"Confidence scoring unavailable: {e}",
                    details={"endpoint": self.endpoint_url},
                ) from e
            level = fallback_confidence_level(review_text, star_rating, visit_count)
            logger.warning(f"Confidence endpoint failed ({e}); using fallback score {level}")
            metrics.record_confidence_score("fallback")
            return level

        logger.debug(f"Confidence endpoint scored review at {level}")
        metrics.record_confidence_score("endpoint")
        return level
