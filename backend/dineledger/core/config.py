"""
Configuration management using Pydantic Settings
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.pubkey import Pubkey

# config.py is at: backend/dineledger/core/config.py
_current_file = Path(__file__).resolve()
_backend_dir = _current_file.parent.parent.parent
_project_root = _backend_dir.parent
ENV_FILE = _project_root / ".env"
# Fallback: .env next to the package
if not ENV_FILE.exists():
    ENV_FILE = _backend_dir / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=False)

COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")
DISH_IDENTITY_MODES = ("derived", "session")


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "dineledger"
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")

    # Logging
    log_module_levels: Optional[str] = Field(
        default=None,
        description='Module-specific log levels (JSON string, e.g., {"dineledger.services": "DEBUG"})'
    )
    log_format: str = Field(
        default="text",
        description="Log format: 'json' for structured logging, 'text' for plain text"
    )
    log_file_enabled: bool = Field(default=False, description="Enable file logging")
    log_file_path: str = Field(
        default="logs/dineledger.log",
        description="Path to log file (relative to project root)"
    )
    log_file_retention: int = Field(default=14, ge=1, description="Number of days to keep log files")
    log_sensitive_data: bool = Field(
        default=False,
        description="Enable logging of sensitive data (secret keys, API keys) - NOT RECOMMENDED"
    )

    # Remote ledger
    rpc_url: str = Field(default="https://api.devnet.solana.com", description="JSON-RPC endpoint of the ledger node")
    rpc_timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP timeout for a single RPC call")
    commitment: str = Field(default="confirmed", description="Commitment used for reads and confirmation")
    preflight_commitment: str = Field(default="processed", description="Commitment used for preflight simulation")
    skip_preflight: bool = Field(default=False, description="Send transactions without preflight simulation")
    program_id: str = Field(
        default="9MGNGbBKQqxDhVkRxuH5qDyovnpUw1FviYEUNcN7WUD",
        description="Address of the restaurant booking program"
    )

    # Confirmation
    confirmation_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long to wait for confirmation before reporting a pending submission"
    )
    confirmation_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Delay between signature status polls"
    )

    # Confidence scoring
    confidence_endpoint_url: str = Field(
        default="http://localhost:3000/api/calculate-confidence",
        description="Endpoint that scores a review's confidence level"
    )
    confidence_timeout_seconds: float = Field(default=10.0, gt=0)
    confidence_fallback_enabled: bool = Field(
        default=True,
        description="Use the deterministic scorer when the confidence endpoint fails"
    )

    # Booking
    dish_catalog_id: int = Field(default=0, ge=0, description="Catalog used to derive stable dish identities")
    dish_identity_mode: str = Field(default="derived", description="'derived' or 'session'")
    ensure_subject_record: bool = Field(
        default=False,
        description="Initialize the visit record explicitly before booking when it is missing"
    )
    default_payment_destination: Optional[str] = Field(
        default="7v91N7iZ9mNicL8WfG6cgSCKyRXydQjLh6UYBWwm6y1M",
        description="Restaurant wallet that receives booking payments"
    )

    # Metrics
    enable_metrics: bool = Field(default=True, description="Record Prometheus metrics")

    @field_validator("commitment", "preflight_commitment")
    @classmethod
    def validate_commitment(cls, v: str) -> str:
        """Only the three standard commitment levels are accepted"""
        v = v.strip().lower()
        if v not in COMMITMENT_LEVELS:
            raise ValueError(f"commitment must be one of {COMMITMENT_LEVELS}, got {v!r}")
        return v

    @field_validator("dish_identity_mode")
    @classmethod
    def validate_dish_identity_mode(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in DISH_IDENTITY_MODES:
            raise ValueError(f"dish_identity_mode must be one of {DISH_IDENTITY_MODES}, got {v!r}")
        return v

    @field_validator("program_id")
    @classmethod
    def validate_program_id(cls, v: str) -> str:
        Pubkey.from_string(v.strip())
        return v.strip()

    @field_validator("default_payment_destination", mode="before")
    @classmethod
    def parse_destination(cls, v):
        """Empty strings disable the default destination"""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def program_pubkey(self) -> Pubkey:
        """Program address as a public key"""
        return Pubkey.from_string(self.program_id)

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
