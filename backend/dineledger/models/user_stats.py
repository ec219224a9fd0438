"""
UserStats record - a user's visit counter for one restaurant
"""
from pydantic import BaseModel, ConfigDict, Field
from solders.pubkey import Pubkey

from dineledger.core.codec import (RecordDecodeError, account_discriminator,
                                   expect_discriminator, pack_u64)

USER_STATS_DISCRIMINATOR = account_discriminator("UserStats")
# [8 discriminator][32 user][32 restaurant][8 visit_count]
USER_STATS_SIZE = 8 + 32 + 32 + 8


class UserStats(BaseModel):
    """Decoded visit counter"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    user: Pubkey
    restaurant: Pubkey
    visit_count: int = Field(default=0, ge=0)

    @classmethod
    def from_account_data(cls, data: bytes) -> "UserStats":
        """
        Decode account data

        Raises:
            RecordDecodeError: if the data is not a UserStats record
        """
        if len(data) < USER_STATS_SIZE:
            raise RecordDecodeError(f"UserStats record needs {USER_STATS_SIZE} bytes, got {len(data)}")
        reader = expect_discriminator(data, USER_STATS_DISCRIMINATOR, "UserStats")
        return cls(
            user=reader.read_pubkey(),
            restaurant=reader.read_pubkey(),
            visit_count=reader.read_u64(),
        )

    def to_account_data(self) -> bytes:
        return (
            USER_STATS_DISCRIMINATOR
            + bytes(self.user)
            + bytes(self.restaurant)
            + pack_u64(self.visit_count)
        )
