"""
Deterministic identities and program-derived addresses

Nothing in this module performs I/O or uses randomness.
"""
import hashlib
from typing import Union

from solders.pubkey import Pubkey

USER_STATS_TAG = "user-stats"
DISH_STATS_TAG = "dish-stats"
REVIEW_TAG = "review"

IDENTITY_SIZE = 32

IdentityLike = Union[Pubkey, str, bytes]


def to_pubkey(value: IdentityLike) -> Pubkey:
    """
    Coerce a base58 string, 32 raw bytes or a Pubkey into a Pubkey.

    Raises:
        ValueError: if the value is not a valid identity
    """
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) != IDENTITY_SIZE:
            raise ValueError(f"Identity must be {IDENTITY_SIZE} bytes, got {len(value)}")
        return Pubkey(bytes(value))
    if isinstance(value, str):
        try:
            return Pubkey.from_string(value.strip())
        except Exception as e:
            raise ValueError(f"Invalid public key {value!r}: {e}") from e
    raise ValueError(f"Unsupported identity type: {type(value).__name__}")


def derive(tag: str, *owner_components: IdentityLike, program_id: Pubkey) -> Pubkey:
    """
    Derive a program address from a role tag followed by identity bytes.

    Args:
        tag: Role tag, used as the first seed
        *owner_components: Identities appended as seeds in the given order
        program_id: Program that owns the derived address

    Returns:
        The derived address (the bump seed is discarded)
    """
    seeds = [tag.encode("utf-8")]
    seeds.extend(bytes(to_pubkey(component)) for component in owner_components)
    address, _bump = Pubkey.find_program_address(seeds, program_id)
    return address


def user_stats_address(user: IdentityLike, restaurant: IdentityLike, program_id: Pubkey) -> Pubkey:
    """Address of the visit counter for (user, restaurant)"""
    return derive(USER_STATS_TAG, user, restaurant, program_id=program_id)


def dish_stats_address(user: IdentityLike, dish: IdentityLike, program_id: Pubkey) -> Pubkey:
    """Address of the order counter for (user, dish)"""
    return derive(DISH_STATS_TAG, user, dish, program_id=program_id)


def review_address(user: IdentityLike, restaurant: IdentityLike, program_id: Pubkey) -> Pubkey:
    """Address of the review written by user for restaurant"""
    return derive(REVIEW_TAG, user, restaurant, program_id=program_id)


def restaurant_identity(restaurant_id: int) -> Pubkey:
    """
    Identity of a restaurant from its catalog integer ID.

    The ASCII text ``restaurant-<id>`` is read as a big-endian number and
    left-padded with zero bytes to 32 bytes. This is not a secure scheme;
    it exists so that every client agrees on the same restaurant keys.
    """
    if restaurant_id < 0:
        raise ValueError(f"Restaurant ID must be non-negative, got {restaurant_id}")
    raw = f"restaurant-{restaurant_id}".encode("ascii")
    if len(raw) > IDENTITY_SIZE:
        raise ValueError(f"Restaurant ID {restaurant_id} is too large to encode as an identity")
    return Pubkey(raw.rjust(IDENTITY_SIZE, b"\x00"))


def dish_identity(catalog_id: int, name: str) -> Pubkey:
    """Stable identity for a dish name within a catalog"""
    digest = hashlib.sha256(f"dish:{catalog_id}:{name}".encode("utf-8")).digest()
    return Pubkey(digest)
