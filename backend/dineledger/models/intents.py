"""
User intents accepted by the booking and review flows
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from solders.pubkey import Pubkey

from dineledger.core.addressing import to_pubkey


class DishSelection(BaseModel):
    """A dish to pre-order: its identity and display name"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    dish_id: Pubkey
    name: str = Field(..., min_length=1)

    @field_validator("dish_id", mode="before")
    @classmethod
    def parse_dish_id(cls, v):
        return to_pubkey(v)


class BookingIntent(BaseModel):
    """What the user asked for when booking a table"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user: Pubkey
    restaurant: Pubkey
    dishes: List[DishSelection] = Field(default_factory=list)
    payment_lamports: int = Field(default=0, ge=0)
    payment_destination: Optional[Pubkey] = None

    @field_validator("user", "restaurant", mode="before")
    @classmethod
    def parse_identity(cls, v):
        return to_pubkey(v)


class ReviewIntent(BaseModel):
    """A review the user wants to publish"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    restaurant: Pubkey
    rating: int
    text: str

    @field_validator("restaurant", mode="before")
    @classmethod
    def parse_restaurant(cls, v):
        return to_pubkey(v)
