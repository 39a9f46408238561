"""
Configuration management for the SafeGig registry mirror.
Handles environment variables and settings for the chain sync engine and read API.
"""

from typing import Any, Dict, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "SafeGig Registry Mirror"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Database - MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "safegig_mirror"
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[str] = None

    # MongoDB Environment Variables (from .env)
    MONGO_URI: Optional[str] = None
    MONGO_DB_NAME: Optional[str] = None

    # Redis for resolved profile metadata
    REDIS_URI: str = "redis://localhost:6379"
    PROFILE_CACHE_TTL_SECONDS: int = 3600

    # Blockchain Configuration
    EVM_RPC_URL: str = "http://localhost:8545"
    EVM_CHAIN_ID: int = 11155111
    REGISTRY_CONTRACT_ADDRESS: Optional[str] = None
    RPC_TIMEOUT_SECONDS: float = 15.0
    RPC_RETRY_ATTEMPTS: int = 3

    # Sync engine
    DEPLOYMENT_BLOCK: int = 0
    BATCH_SIZE: int = 10  # blocks per window (free-tier providers cap eth_getLogs at 10)
    MAX_RANGE: int = 1000  # blocks per invocation
    INTER_BATCH_DELAY_SECONDS: float = 0.1
    CONFIRMATION_BLOCKS: int = 1
    SYNC_INTERVAL_SECONDS: int = 300  # 0 disables the periodic run

    # IPFS Configuration
    IPFS_GATEWAY_URL_GET: str = "https://gateway.pinata.cloud/ipfs"
    IPFS_FETCH_TIMEOUT_SECONDS: float = 20.0

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment setting."""
        allowed_envs = ["development", "staging", "production", "test"]
        if v not in allowed_envs:
            raise ValueError(f"Environment must be one of {allowed_envs}")
        return v

    @field_validator("BATCH_SIZE", "MAX_RANGE", "RPC_RETRY_ATTEMPTS")
    @classmethod
    def validate_positive(cls, v):
        """Window sizes and retry counts must be at least 1."""
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator(
        "DEPLOYMENT_BLOCK",
        "CONFIRMATION_BLOCKS",
        "SYNC_INTERVAL_SECONDS",
    )
    @classmethod
    def validate_non_negative(cls, v):
        """Block numbers and intervals cannot be negative."""
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("INTER_BATCH_DELAY_SECONDS", "RPC_TIMEOUT_SECONDS")
    @classmethod
    def validate_delay(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    def get_sync_config(self) -> Dict[str, Any]:
        """Get the sync engine configuration as a plain dict (for logs and /status)."""
        return {
            "rpc_url": self.EVM_RPC_URL,
            "chain_id": self.EVM_CHAIN_ID,
            "registry_address": self.REGISTRY_CONTRACT_ADDRESS,
            "deployment_block": self.DEPLOYMENT_BLOCK,
            "batch_size": self.BATCH_SIZE,
            "max_range": self.MAX_RANGE,
            "inter_batch_delay": self.INTER_BATCH_DELAY_SECONDS,
            "confirmation_blocks": self.CONFIRMATION_BLOCKS,
        }

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Create global settings instance
settings = Settings()


def get_mongodb_url() -> str:
    """
    Get MongoDB connection URL with authentication if credentials are provided.

    Returns:
        str: MongoDB connection URL
    """
    if settings.MONGO_URI:
        return settings.MONGO_URI

    if settings.MONGODB_USERNAME and settings.MONGODB_PASSWORD:
        base_url = settings.MONGODB_URL.replace("mongodb://", "")
        if "@" not in base_url:  # No existing auth in URL
            return f"mongodb://{settings.MONGODB_USERNAME}:{settings.MONGODB_PASSWORD}@{base_url}"

    return settings.MONGODB_URL


def get_mongodb_database_name() -> str:
    """
    Get MongoDB database name.

    Returns:
        str: MongoDB database name
    """
    if settings.MONGO_DB_NAME:
        return settings.MONGO_DB_NAME

    return settings.MONGODB_DATABASE


def is_production() -> bool:
    """Check if running in production environment."""
    return settings.ENVIRONMENT == "production"
