"""
Configuration Service for centralized environment variable management.

Provides validated configuration objects for the likes ledger and the
profile store backing it.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from common.config import config as env

logger = logging.getLogger(__name__)


@dataclass
class LikesConfig:
    """Likes ledger and its HTTP surface."""

    cap_per_category: int
    read_rate_limit: int
    write_rate_limit: int
    rate_window_seconds: float
    lock_timeout_seconds: float
    fresh_when_empty: bool = False
    allowed_origins: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate numeric limits."""
        if self.cap_per_category < 1:
            raise ValueError("LIKES_CAP_PER_CATEGORY must be at least 1")
        if self.read_rate_limit < 1 or self.write_rate_limit < 1:
            raise ValueError("LIKES_READ_RATE_LIMIT and LIKES_WRITE_RATE_LIMIT must be at least 1")
        if self.rate_window_seconds <= 0:
            raise ValueError("LIKES_RATE_WINDOW_SECONDS must be positive")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("LIKES_LOCK_TIMEOUT_SECONDS must be positive")


@dataclass
class ProfileStoreConfig:
    """Identity provider profile store. An empty url selects the in-memory store."""

    url: str = ""
    api_token: str = ""

    @property
    def in_memory(self) -> bool:
        return not self.url


class ConfigService:
    """
    Service for loading and managing application configuration.

    Provides validated configuration objects with helpful error messages.
    Caches configuration objects after first load.
    """

    def __init__(self):
        """Initialize configuration service with empty cache."""
        self._likes_config: Optional[LikesConfig] = None
        self._profile_store_config: Optional[ProfileStoreConfig] = None

    def get_likes_config(self) -> LikesConfig:
        """
        Get likes ledger configuration.

        Returns:
            LikesConfig: Validated likes configuration

        Raises:
            ValueError: If a limit is out of range

        Example:
            >>> config_service = ConfigService()
            >>> likes_config = config_service.get_likes_config()
            >>> print(likes_config.write_rate_limit)
        """
        if self._likes_config is None:
            self._likes_config = LikesConfig(
                cap_per_category=env.LIKES_CAP_PER_CATEGORY,
                read_rate_limit=env.LIKES_READ_RATE_LIMIT,
                write_rate_limit=env.LIKES_WRITE_RATE_LIMIT,
                rate_window_seconds=env.LIKES_RATE_WINDOW_SECONDS,
                lock_timeout_seconds=env.LIKES_LOCK_TIMEOUT_SECONDS,
                allowed_origins=list(env.LIKES_ALLOWED_ORIGINS),
                fresh_when_empty=env.LIKES_FRESH_WHEN_EMPTY,
            )
            logger.debug(
                f"Loaded likes configuration: cap={self._likes_config.cap_per_category}, "
                f"{len(self._likes_config.allowed_origins)} allowed origins"
            )

        return self._likes_config

    def get_profile_store_config(self) -> ProfileStoreConfig:
        if self._profile_store_config is None:
            self._profile_store_config = ProfileStoreConfig(
                url=env.PROFILE_STORE_URL, api_token=env.PROFILE_STORE_TOKEN
            )
        return self._profile_store_config


# Singleton instance for application-wide use
_config_service_instance: Optional[ConfigService] = None


def get_config_service() -> ConfigService:
    """
    Get singleton ConfigService instance.

    Returns:
        ConfigService: Shared configuration service instance

    Example:
        >>> from application.services.config_service import get_config_service
        >>> config = get_config_service()
        >>> likes_config = config.get_likes_config()
    """
    global _config_service_instance
    if _config_service_instance is None:
        _config_service_instance = ConfigService()
    return _config_service_instance
