# core/config.py
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    MONGO_DETAILS: str = "mongodb://localhost:27017"
    DB_NAME: str = "skyblock_leaderboards"
    LOG_LEVEL: str = "INFO"

    # Upstream API
    HYPIXEL_API_KEY: Optional[str] = None
    HYPIXEL_API_BASE: str = "https://api.hypixel.net/v2"
    HYPIXEL_TIMEOUT_SECONDS: float = 10.0

    # Redis backs the debounce markers and rate limiting when configured,
    # otherwise both stay in process memory
    REDIS_URL: Optional[str] = None

    # Leaderboards
    LEADERBOARD_MAX: int = 100
    MEMBER_UPDATE_DEBOUNCE_SECONDS: int = 60 * 3
    DISPATCH_CONCURRENCY: int = 10
    DISPATCH_INTERVAL_SECONDS: float = 0.5
    CACHE_WARM_INTERVAL_SECONDS: int = 4 * 60 * 60
    CACHE_WARM_PAUSE_SECONDS: float = 2
    PRUNE_PAUSE_SECONDS: float = 10

    # Auctions
    AUCTION_HISTORY_MAX: int = 100
    AUCTION_PERSIST_WORKERS: int = 5
    ENDED_AUCTIONS_REFRESH_SECONDS: int = 60
    ENDED_AUCTIONS_MARGIN_SECONDS: int = 10
    AUCTION_SYNC_ERROR_RETRY_SECONDS: int = 60

    # Singleton upstream resources
    ELECTION_TTL_SECONDS: int = 10 * 60
    ITEM_LIST_TTL_SECONDS: int = 60 * 60
    AUCTION_ITEMS_TTL_SECONDS: int = 10 * 60

    # Rate limiting for the read API
    API_RATE_LIMIT: str = "120/minute"

    @property
    def REDIS_ENABLED(self) -> bool:
        return bool(self.REDIS_URL)

    class Config:
        env_file = ".env"

settings = Settings()
