"""
DishStats record - how often a user ordered one dish
"""
from pydantic import BaseModel, ConfigDict, Field
from solders.pubkey import Pubkey

from dineledger.core.codec import (RecordDecodeError, account_discriminator,
                                   decode_fixed_text, expect_discriminator,
                                   pack_fixed_bytes, pack_u32, pack_u64)

DISH_STATS_DISCRIMINATOR = account_discriminator("DishStats")
MAX_DISH_NAME_BYTES = 50
# [8 discriminator][32 user][32 dish][8 count][4 name_len][50 name_data]
DISH_STATS_SIZE = 8 + 32 + 32 + 8 + 4 + MAX_DISH_NAME_BYTES


def truncate_dish_name(name: str) -> bytes:
    """Name bytes as the program stores them"""
    return name.encode("utf-8")[:MAX_DISH_NAME_BYTES]


class DishStats(BaseModel):
    """Decoded dish order counter"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    user: Pubkey
    dish: Pubkey
    count: int = Field(default=0, ge=0)
    name: str = ""

    @classmethod
    def from_account_data(cls, data: bytes) -> "DishStats":
        """
        Decode account data

        Raises:
            RecordDecodeError: if the data is not a DishStats record
        """
        if len(data) < DISH_STATS_SIZE:
            raise RecordDecodeError(f"DishStats record needs {DISH_STATS_SIZE} bytes, got {len(data)}")
        reader = expect_discriminator(data, DISH_STATS_DISCRIMINATOR, "DishStats")
        user = reader.read_pubkey()
        dish = reader.read_pubkey()
        count = reader.read_u64()
        name_len = reader.read_u32()
        name_data = reader.read_bytes(MAX_DISH_NAME_BYTES)
        return cls(
            user=user,
            dish=dish,
            count=count,
            name=decode_fixed_text(name_data, name_len, MAX_DISH_NAME_BYTES, "Dish name"),
        )

    def to_account_data(self) -> bytes:
        name_bytes = truncate_dish_name(self.name)
        return (
            DISH_STATS_DISCRIMINATOR
            + bytes(self.user)
            + bytes(self.dish)
            + pack_u64(self.count)
            + pack_u32(len(name_bytes))
            + pack_fixed_bytes(name_bytes, MAX_DISH_NAME_BYTES)
        )
