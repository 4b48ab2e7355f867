import os

from pathlib import Path
from typing import Any, Dict, List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

MAINNET_INDEXER_URL = "https://indexer.api.across.to"
TESTNET_INDEXER_URL = "https://dev.indexer.api.across.to"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the legacy indexer variable when the new one is unset."""

        super().model_post_init(__context)

        if not self.indexer_url:
            fallback = os.getenv("ACROSS_INDEXER_URL")
            if fallback:
                object.__setattr__(self, "indexer_url", fallback)

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Pricing / bridging API
    across_api_url: str = Field(
        default="https://app.across.to/api",
        description="Base URL of the pricing/bridging API",
    )
    across_testnet_api_url: str = Field(
        default="https://testnet.across.to/api",
        description="Base URL of the testnet pricing/bridging API",
    )
    indexer_url: str = Field(
        default="",
        description="Deposit indexer base URL (derived from use_testnet when empty)",
        validation_alias=AliasChoices("indexer_url", "INDEXER_URL", "PAYMENT_INDEXER_URL"),
    )
    use_testnet: bool = Field(default=False, description="Use testnet endpoints and chains")
    request_timeout_seconds: int = Field(default=20, description="HTTP request timeout")
    integrator_id: str = Field(default="", description="Integrator id forwarded to swap quotes")

    # Chains
    rpc_urls: Dict[int, str] = Field(
        default_factory=dict,
        description="JSON-RPC endpoint per chain id",
    )
    supported_chain_ids: List[int] = Field(
        default_factory=lambda: [1, 10, 56, 137, 8453, 42161],
        description="Origin chains considered when building payment candidates",
    )
    spoke_pool_addresses: Dict[int, str] = Field(
        default_factory=dict,
        description="Spoke pool address overrides per chain id",
    )

    # Planner
    balance_cache_ttl_seconds: int = Field(default=15, ge=0, description="Per-chain balance cache TTL")
    usd_shortfall_buffer: float = Field(
        default=0.98,
        gt=0,
        le=1,
        description="Fraction of the target USD value a candidate must hold before quoting",
    )
    max_swap_quote_options: int = Field(
        default=20,
        ge=1,
        description="Maximum swap candidates (by balance) to request quotes for",
    )
    max_slippage_bps: int = Field(default=100, ge=0, description="Refinement slippage buffer in bps")
    quote_refine_max_attempts: int = Field(default=6, ge=1, description="Quote refinement attempt cap")
    quote_ttl_seconds: int = Field(default=300, description="Quote validity after its timestamp")
    swap_slippage: float = Field(default=0.1, description="Slippage tolerance passed to swap quotes")
    show_unavailable_options: bool = Field(
        default=False,
        description="Keep options that cannot meet the target in planner results",
    )

    # Payment history
    history_poll_interval_seconds: float = Field(
        default=10,
        gt=0,
        description="Delay between deposit reconciliation polls",
    )
    history_remote_limit: int = Field(
        default=50,
        ge=1,
        description="Number of indexer deposits fetched when syncing an account",
    )
    history_storage_path: Path = Field(
        default_factory=lambda: Path.home() / ".payment_planner" / "history.json",
        description="JSON file holding persisted payment history per account",
    )

    @property
    def resolved_api_url(self) -> str:
        return self.across_testnet_api_url if self.use_testnet else self.across_api_url

    @property
    def resolved_indexer_url(self) -> str:
        if self.indexer_url:
            return self.indexer_url.rstrip("/")
        return TESTNET_INDEXER_URL if self.use_testnet else MAINNET_INDEXER_URL


# Global settings instance
settings = Settings()
