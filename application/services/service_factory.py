"""
Service Factory for centralized service initialization.

Implements the Factory pattern for creating and managing service instances.
Provides singleton access to services across the application.
"""

import logging
from typing import Optional

from application.services.config_service import ConfigService, get_config_service
from application.services.likes.ledger_service import LikesLedgerService
from application.services.likes.rate_limiter import (
    OPERATION_READ,
    OPERATION_WRITE,
    FixedWindowRateLimiter,
    RateLimitRule,
)
from common.service.profile_store import (
    HttpProfileStore,
    InMemoryProfileStore,
    ProfileStore,
)

logger = logging.getLogger(__name__)


class ServiceFactory:
    """
    Factory for creating and managing service instances.

    Implements singleton pattern for services to ensure single instance
    across the application. Manages dependencies between services.
    """

    _instance: Optional["ServiceFactory"] = None

    # Service instances (lazy-loaded)
    _config_service: Optional[ConfigService] = None
    _profile_store: Optional[ProfileStore] = None
    _likes_service: Optional[LikesLedgerService] = None
    _likes_rate_limiter: Optional[FixedWindowRateLimiter] = None

    def __new__(cls):
        """Ensure only one instance exists (Singleton pattern)."""
        if cls._instance is None:
            cls._instance = super(ServiceFactory, cls).__new__(cls)
            logger.debug("ServiceFactory instance created")
        return cls._instance

    @property
    def config_service(self) -> ConfigService:
        """
        Get ConfigService instance.

        Returns:
            ConfigService: Configuration service singleton
        """
        if self._config_service is None:
            self._config_service = get_config_service()
            logger.debug("ConfigService initialized")
        return self._config_service

    @property
    def profile_store(self) -> ProfileStore:
        """
        Get the profile store backing the likes ledger.

        Uses the HTTP store when PROFILE_STORE_URL is set, otherwise a
        process-local in-memory store.
        """
        if self._profile_store is None:
            store_config = self.config_service.get_profile_store_config()
            if store_config.in_memory:
                logger.warning("PROFILE_STORE_URL not set, likes are kept in memory only")
                self._profile_store = InMemoryProfileStore()
            else:
                self._profile_store = HttpProfileStore(store_config.url, store_config.api_token)
            logger.debug(f"ProfileStore initialized: {type(self._profile_store).__name__}")
        return self._profile_store

    @property
    def likes_service(self) -> LikesLedgerService:
        """
        Get LikesLedgerService instance.

        Example:
            >>> factory = ServiceFactory()
            >>> result = await factory.likes_service.toggle(user_id, "ghazlen", "rec1")
        """
        if self._likes_service is None:
            likes_config = self.config_service.get_likes_config()
            self._likes_service = LikesLedgerService(
                profile_store=self.profile_store,
                cap=likes_config.cap_per_category,
                lock_timeout=likes_config.lock_timeout_seconds,
                fresh_when_empty=likes_config.fresh_when_empty,
            )
            logger.debug("LikesLedgerService initialized")
        return self._likes_service

    @property
    def likes_rate_limiter(self) -> FixedWindowRateLimiter:
        if self._likes_rate_limiter is None:
            likes_config = self.config_service.get_likes_config()
            window = likes_config.rate_window_seconds
            self._likes_rate_limiter = FixedWindowRateLimiter(
                {
                    OPERATION_READ: RateLimitRule(likes_config.read_rate_limit, window),
                    OPERATION_WRITE: RateLimitRule(likes_config.write_rate_limit, window),
                }
            )
            logger.debug("Likes rate limiter initialized")
        return self._likes_rate_limiter


# Global factory instance
_factory_instance: Optional[ServiceFactory] = None


def get_service_factory() -> ServiceFactory:
    """
    Get global ServiceFactory instance.

    Returns:
        ServiceFactory: Singleton factory instance

    Example:
        >>> from application.services.service_factory import get_service_factory
        >>> factory = get_service_factory()
        >>> likes_service = factory.likes_service
    """
    global _factory_instance
    if _factory_instance is None:
        _factory_instance = ServiceFactory()
    return _factory_instance


def get_likes_service() -> LikesLedgerService:
    return get_service_factory().likes_service


def get_likes_rate_limiter() -> FixedWindowRateLimiter:
    return get_service_factory().likes_rate_limiter
