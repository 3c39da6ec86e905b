"""Client configuration using pydantic and pydantic-settings.

``SignerConfig`` is the immutable per-client configuration. ``Settings``
loads SDK defaults and credentials from the environment (or ``.env``) and can
produce a ``SignerConfig``.
"""

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from lighter_tx.constants import MAINNET_CHAIN_ID, TESTNET_CHAIN_ID
from lighter_tx.exceptions import ConfigurationError

DEFAULT_URL = "https://mainnet.zklighter.elliot.ai"
DEFAULT_TIMEOUT = 30.0
DEFAULT_USER_AGENT = "lighter-tx-python/0.1.0"


class SignerConfig(BaseModel):
    """Immutable configuration for a ``SignerClient``.

    Exactly one signing backend must be configured: either ``signer_url``
    (remote signing service) or ``signer_library_path`` (local native
    module).
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(default=DEFAULT_URL, description="Venue REST base URL")
    private_key: str = Field(default="", description="API private key (hex)")
    account_index: int = Field(default=0, description="Account index")
    api_key_index: int = Field(default=0, description="API key index")
    signer_url: Optional[str] = Field(default=None, description="Remote signer service URL")
    signer_library_path: Optional[str] = Field(
        default=None, description="Path to the native signer shared library"
    )
    chain_id: Optional[int] = Field(default=None, description="Chain id (derived from url if unset)")
    timeout: float = Field(default=DEFAULT_TIMEOUT, description="HTTP timeout in seconds")

    @model_validator(mode="after")
    def _check_backend(self) -> "SignerConfig":
        if self.signer_url and self.signer_library_path:
            raise ConfigurationError(
                "Configure either signer_url or signer_library_path, not both"
            )
        if not self.signer_url and not self.signer_library_path:
            raise ConfigurationError(
                "A signing backend is required: set signer_url or signer_library_path"
            )
        return self

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")

    @property
    def resolved_chain_id(self) -> int:
        """Chain id to register with the signer."""
        if self.chain_id is not None:
            return self.chain_id
        return MAINNET_CHAIN_ID if "mainnet" in self.url else TESTNET_CHAIN_ID


class Settings(BaseSettings):
    """SDK settings loaded from environment variables prefixed ``LIGHTER_``."""

    model_config = SettingsConfigDict(
        env_prefix="LIGHTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Account / credentials
    # ======================
    url: str = Field(default=DEFAULT_URL, description="Venue REST base URL")
    private_key: str = Field(default="", description="API private key (hex)")
    account_index: int = Field(default=0, description="Account index")
    api_key_index: int = Field(default=0, description="API key index")

    # ======================
    # Signing backend
    # ======================
    signer_url: Optional[str] = Field(default=None, description="Remote signer service URL")
    signer_library_path: Optional[str] = Field(
        default=None, description="Path to the native signer shared library"
    )
    chain_id: Optional[int] = Field(default=None, description="Chain id override")

    # ======================
    # HTTP
    # ======================
    http_timeout: float = Field(default=DEFAULT_TIMEOUT, description="HTTP timeout in seconds")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent header")

    # ======================
    # Nonce cache
    # ======================
    nonce_batch_size: int = Field(default=10, description="Nonces fetched per refill")
    nonce_low_water_mark: int = Field(default=2, description="Refill when this many remain")
    nonce_max_age: float = Field(default=30.0, description="Seconds before a batch is stale")

    # ======================
    # Confirmation polling
    # ======================
    wait_max_ms: int = Field(default=60_000, description="Default confirmation deadline (ms)")
    wait_poll_interval_ms: int = Field(default=2_000, description="Default poll interval (ms)")

    def to_signer_config(self) -> SignerConfig:
        """Build a ``SignerConfig`` from these settings."""
        return SignerConfig(
            url=self.url,
            private_key=self.private_key,
            account_index=self.account_index,
            api_key_index=self.api_key_index,
            signer_url=self.signer_url,
            signer_library_path=self.signer_library_path,
            chain_id=self.chain_id,
            timeout=self.http_timeout,
        )

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "url": self.url,
            "private_key": "***" if self.private_key else "(not set)",
            "account_index": self.account_index,
            "api_key_index": self.api_key_index,
            "signer": {
                "url": self.signer_url or "(not set)",
                "library": self.signer_library_path or "(not set)",
                "chain_id": self.chain_id,
            },
            "nonce_cache": {
                "batch_size": self.nonce_batch_size,
                "low_water_mark": self.nonce_low_water_mark,
                "max_age": self.nonce_max_age,
            },
            "http_timeout": self.http_timeout,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
