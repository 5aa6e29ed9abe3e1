"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class WalletConfig(BaseSettings):
    """Wallet core configuration"""

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "wallet.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Security configuration
    auth_enabled: bool = True
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_public_key: Optional[str] = None  # PEM key for RS256/ES256 issuers
    jwt_audience: Optional[str] = None
    jwt_issuer: Optional[str] = None
    jwt_leeway_seconds: int = 30

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration
    currency: str = "KES"
    savings_minimum_deposit: str = "500.00"
    early_withdrawal_penalty_rate: str = "0.05"
    transaction_history_limit: int = 50
    profile_recent_limit: int = 10

    model_config = SettingsConfigDict(env_prefix="WALLET_", env_file=".env", case_sensitive=False)


# Global configuration instance
config = WalletConfig()


def get_config() -> WalletConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> WalletConfig:
    """Reload configuration from environment"""
    global config
    config = WalletConfig()
    return config
