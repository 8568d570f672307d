"""Configuration management using Pydantic settings."""

import os
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application configuration with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Keys
    helius_api_key: str = Field(default="", description="Helius API key")
    solana_tracker_api_key: str = Field(default="", description="SolanaTracker data API key")
    jupiter_api_key: str = Field(default="", description="Jupiter API key (optional)")
    solana_rpc_url: str = Field(default="", description="Solana RPC endpoint override")

    # HTTP Configuration
    http_timeout: int = Field(default=15, description="HTTP request timeout in seconds")

    # Database
    database_path: str = Field(default="data/whalewatch.db", description="SQLite database path")

    # Alert Configuration
    telegram_bot_token: str = Field(default="", description="Telegram bot token")
    telegram_chat_id: str = Field(default="", description="Default Telegram chat ID")
    telegram_enabled: bool = Field(default=False, description="Enable Telegram alerts")

    webhook_url: str = Field(default="", description="Generic webhook URL")
    webhook_enabled: bool = Field(default=False, description="Enable generic webhook")
    webhook_secret: str = Field(default="", description="Webhook secret key")

    # Whale frenzy defaults (used when a user saves a config without values)
    frenzy_min_whales: int = Field(default=3, description="Distinct whales needed for a frenzy")
    frenzy_time_window_seconds: int = Field(default=300, description="Frenzy sliding window")
    frenzy_cooldown_seconds: int = Field(default=600, description="Cooldown per user and token")
    frenzy_buy_amount_sol: float = Field(default=0.1, description="Default auto-buy size in SOL")
    frenzy_max_slippage_bps: int = Field(default=500, description="Default auto-buy slippage")

    # Rejected reviewer
    reviewer_batch_limit: int = Field(default=50, description="Soft rejects reviewed per run")
    reviewer_request_delay_ms: int = Field(default=50, description="Delay between metric fetches")
    default_sol_price_usd: float = Field(default=200.0, description="SOL price when no source answers")

    # Backcheck
    backcheck_request_delay_ms: int = Field(default=300, description="Delay between DexScreener calls")

    # Mint monitor
    mint_scan_max_age_hours: int = Field(default=168, description="Lookback for manual wallet scans")
    mint_cron_max_age_hours: int = Field(default=1, description="Lookback for scheduled wallet scans")

    # Scheduler
    scheduler_enabled: bool = Field(default=True, description="Run background jobs in the web app")
    reviewer_interval_seconds: int = Field(default=180, description="Rejected reviewer interval")
    mint_cron_interval_seconds: int = Field(default=300, description="Mint monitor cron interval")
    backcheck_interval_seconds: int = Field(default=0, description="Backcheck interval (0 disables)")

    # Web server
    api_host: str = Field(default="0.0.0.0", description="HTTP bind host")
    api_port: int = Field(default=8000, description="HTTP bind port")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/whalewatch.log", description="Log file path")
    log_max_size_mb: int = Field(default=100, description="Maximum log file size in MB")
    log_backup_count: int = Field(default=5, description="Number of log backups to keep")

    # Prometheus Metrics
    prometheus_enabled: bool = Field(default=False, description="Enable Prometheus metrics")
    prometheus_port: int = Field(default=9090, description="Prometheus metrics port")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v_upper

    @field_validator(
        "frenzy_min_whales",
        "frenzy_time_window_seconds",
        "reviewer_interval_seconds",
        "mint_cron_interval_seconds",
        "mint_scan_max_age_hours",
        "mint_cron_max_age_hours",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Reject zero or negative values for counts and intervals."""
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    def get_rpc_url(self) -> str:
        """Get the Solana RPC URL, derived from the Helius key when not set."""
        if self.solana_rpc_url:
            return self.solana_rpc_url
        if self.helius_api_key:
            return f"https://mainnet.helius-rpc.com/?api-key={self.helius_api_key}"
        return "https://api.mainnet-beta.solana.com"


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def load_config(env_file: Optional[str] = None) -> Config:
    """Load configuration from environment file."""
    global _config
    if env_file and os.path.exists(env_file):
        _config = Config(_env_file=env_file)
    else:
        _config = Config()
    return _config
