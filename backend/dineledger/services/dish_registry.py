"""
Dish identity registry
"""
from typing import Dict, Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from dineledger.core.addressing import dish_identity
from dineledger.core.config import get_settings
from dineledger.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)


class DishIdentityRegistry:
    """
    Maps dish names to dish identities.

    In ``derived`` mode the identity is a pure function of (catalog, name),
    so every session and every device agrees on it. In ``session`` mode a
    fresh random identity is generated per name and kept only for the
    lifetime of the registry; records written in one session are not found
    again by the next one.
    """

    def __init__(self, catalog_id: Optional[int] = None, mode: Optional[str] = None):
        settings = get_settings()
        self.catalog_id = settings.dish_catalog_id if catalog_id is None else catalog_id
        self.mode = (mode or settings.dish_identity_mode).lower()
        if self.mode not in ("derived", "session"):
            raise ValueError(f"Unknown dish identity mode: {self.mode}")
        self._session_ids: Dict[str, Pubkey] = {}

    def identity_for(self, name: str) -> Pubkey:
        """Identity of the dish with this display name"""
        if self.mode == "derived":
            return dish_identity(self.catalog_id, name)

        if name not in self._session_ids:
            self._session_ids[name] = Keypair().pubkey()
            logger.debug(f"Generated session identity for dish {name!r}: {self._session_ids[name]}")
        return self._session_ids[name]
