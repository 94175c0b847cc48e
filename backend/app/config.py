"""Configuration settings for the StableLink backend."""

from functools import lru_cache

from pydantic_settings import BaseSettings

# USDC on Base mainnet
DEFAULT_USDC_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
ALCHEMY_BASE_URL = "https://base-mainnet.g.alchemy.com/v2/"


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    supabase_secret_key: str | None = None  # Backend/admin access
    supabase_service_role_key: str | None = None  # Legacy key

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 1 week

    # Chain
    alchemy_api_key: str | None = None
    base_rpc_url: str | None = None  # Explicit override, wins over the Alchemy key
    usdc_contract_address: str = DEFAULT_USDC_ADDRESS
    rpc_timeout_seconds: float = 15.0
    payment_min_confirmations: int = 1

    # App
    base_url: str = "http://localhost:3000"
    debug: bool = False
    log_level: str = "INFO"
    log_dir: str | None = None
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "https://stablelink.xyz",
        "https://www.stablelink.xyz",
    ]
    # Comma-separated CIDRs allowed to set X-Forwarded-For
    trusted_proxy_cidrs: str | None = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    @property
    def rpc_url(self) -> str | None:
        """Effective node RPC endpoint, or None when no credential is configured."""
        if self.base_rpc_url:
            return self.base_rpc_url
        if self.alchemy_api_key:
            return ALCHEMY_BASE_URL + self.alchemy_api_key
        return None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
