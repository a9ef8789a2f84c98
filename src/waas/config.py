"""Application configuration using pydantic-settings.

JWT_SECRET, RPC_URL and USDC_CONTRACT_ADDRESS are required at startup.
Bundler/paymaster settings are optional and only gate the account-abstraction
endpoints.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ERC-4337 v0.6 singletons
ENTRYPOINT_ADDRESS_V06 = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"
SIMPLE_ACCOUNT_FACTORY_V06 = "0x9406Cc6185a346906296840746125a0E44976454"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Secrets
    # ======================
    jwt_secret: Optional[str] = Field(
        default=None, description="Signs session tokens and seeds custodial key encryption"
    )

    # ======================
    # Chain
    # ======================
    rpc_url: str = Field(default="https://sepolia.base.org", description="Chain JSON-RPC URL")
    chain_id: int = Field(default=84532, description="EVM chain ID (Base Sepolia)")
    usdc_contract_address: Optional[str] = Field(
        default=None, description="Fungible token (ERC-20) contract address"
    )
    token_symbol: str = Field(default="USDC", description="Selector name of the configured token")

    # ======================
    # Account abstraction
    # ======================
    biconomy_bundler_url: Optional[str] = Field(default=None, description="ERC-4337 bundler URL")
    biconomy_paymaster_url: Optional[str] = Field(default=None, description="Paymaster URL")
    entry_point_address: str = Field(
        default=ENTRYPOINT_ADDRESS_V06, description="EntryPoint contract address"
    )
    smart_account_factory_address: str = Field(
        default=SIMPLE_ACCOUNT_FACTORY_V06, description="Smart account factory address"
    )
    smart_account_salt: int = Field(default=0, description="Counterfactual account salt")

    # ======================
    # Storage
    # ======================
    database_url: Optional[str] = Field(
        default=None, description="Relational store URL (file store is used when unset)"
    )
    data_dir: str = Field(default="./server/data", description="File store directory")

    # ======================
    # Timing
    # ======================
    session_ttl_hours: int = Field(default=12, description="Session token lifetime")
    confirmation_timeout: float = Field(
        default=60.0, description="Direct transfer confirmation wait"
    )
    userop_timeout: float = Field(default=60.0, description="User operation receipt wait")
    poll_interval: float = Field(default=2.0, description="Receipt polling interval")
    rpc_timeout: float = Field(default=30.0, description="Per-call HTTP timeout")
    history_lookback_blocks: int = Field(default=9500, description="Transfer history window")

    # ======================
    # Limits
    # ======================
    daily_sponsor_limit: int = Field(
        default=0, description="Daily sponsored volume per account in base units (0 = disabled)"
    )
    spend_retention_days: int = Field(default=7, description="Days of spend counters kept")
    rate_limit_per_minute: int = Field(default=120, description="Requests per client per minute")

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=4000, description="API server port")
    cors_origins: str = Field(default="*", description="Comma-separated allowed origins")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode")

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, v: Optional[str]) -> Optional[str]:
        """Normalize database URLs for async SQLAlchemy drivers."""
        if not v:
            return None
        url = v.strip()
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)
        if url.startswith("postgresql://") and "+asyncpg" not in url:
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite:///") and "+aiosqlite" not in url:
            return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        return url

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def aa_configured(self) -> bool:
        """Check if bundler and paymaster are both configured."""
        return bool(self.biconomy_bundler_url and self.biconomy_paymaster_url)

    @property
    def allowed_origins(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def missing_required(self) -> list[str]:
        """Return env var names of required options that are not set."""
        missing = []
        if not self.jwt_secret:
            missing.append("JWT_SECRET")
        if not self.rpc_url:
            missing.append("RPC_URL")
        if not self.usdc_contract_address:
            missing.append("USDC_CONTRACT_ADDRESS")
        return missing

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "jwt_secret": "***" if self.jwt_secret else "(not set)",
            "rpc_url": self.rpc_url,
            "chain_id": self.chain_id,
            "usdc_contract_address": self.usdc_contract_address or "(missing)",
            "store": "sql" if self.database_url else "file",
            "database_url": self._redact_url(self.database_url) if self.database_url else None,
            "aa": {
                "configured": self.aa_configured,
                "entry_point": self.entry_point_address,
                "factory": self.smart_account_factory_address,
            },
            "limits": {
                "daily_sponsor_limit": self.daily_sponsor_limit,
                "rate_limit_per_minute": self.rate_limit_per_minute,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
