"""
Review record - one review per (user, restaurant)
"""
from pydantic import BaseModel, ConfigDict
from solders.pubkey import Pubkey

from dineledger.core.codec import (RecordDecodeError, account_discriminator,
                                   decode_fixed_text, expect_discriminator,
                                   pack_fixed_bytes, pack_u8, pack_u32)

REVIEW_DISCRIMINATOR = account_discriminator("Review")
MAX_REVIEW_BYTES = 200
# [8 discriminator][32 user][32 restaurant][1 rating][4 review_len][200 review_data][1 confidence_level]
REVIEW_SIZE = 8 + 32 + 32 + 1 + 4 + MAX_REVIEW_BYTES + 1
# The restaurant identity follows the user identity
REVIEW_RESTAURANT_OFFSET = 8 + 32

MIN_RATING, MAX_RATING = 1, 5
MIN_CONFIDENCE, MAX_CONFIDENCE = 1, 10


class Review(BaseModel):
    """Decoded review"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    user: Pubkey
    restaurant: Pubkey
    rating: int
    text: str = ""
    confidence_level: int

    @property
    def is_written(self) -> bool:
        """A zero-filled account exists before the first review lands"""
        return bool(self.text) or self.rating > 0

    @classmethod
    def from_account_data(cls, data: bytes) -> "Review":
        """
        Decode account data

        Raises:
            RecordDecodeError: if the data is not a Review record
        """
        if len(data) < REVIEW_SIZE:
            raise RecordDecodeError(f"Review record needs {REVIEW_SIZE} bytes, got {len(data)}")
        reader = expect_discriminator(data, REVIEW_DISCRIMINATOR, "Review")
        user = reader.read_pubkey()
        restaurant = reader.read_pubkey()
        rating = reader.read_u8()
        review_len = reader.read_u32()
        review_data = reader.read_bytes(MAX_REVIEW_BYTES)
        confidence_level = reader.read_u8()
        return cls(
            user=user,
            restaurant=restaurant,
            rating=rating,
            text=decode_fixed_text(review_data, review_len, MAX_REVIEW_BYTES, "Review text"),
            confidence_level=confidence_level,
        )

    def to_account_data(self) -> bytes:
        text_bytes = self.text.encode("utf-8")[:MAX_REVIEW_BYTES]
        return (
            REVIEW_DISCRIMINATOR
            + bytes(self.user)
            + bytes(self.restaurant)
            + pack_u8(self.rating)
            + pack_u32(len(text_bytes))
            + pack_fixed_bytes(text_bytes, MAX_REVIEW_BYTES)
            + pack_u8(self.confidence_level)
        )
