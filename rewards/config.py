"""
Configuration management using Pydantic settings.
Values come from environment variables and an optional .env file.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import RegistrationPolicy

DEFAULT_TOKEN_CONTRACT = "0x3efbce682b32f495b4912f3866ce69da1a2d7e5c"


class ConfigurationError(Exception):
    pass


class Settings(BaseSettings):
    """Reward server settings."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    rpc_url: Optional[str] = Field(None, validation_alias=AliasChoices("RPC_URL", "SEPOLIA_RPC_URL"))
    business_private_key: Optional[SecretStr] = Field(None, validation_alias="BUSINESS_PRIVATE_KEY")
    token_contract_address: str = Field(
        DEFAULT_TOKEN_CONTRACT,
        validation_alias=AliasChoices("TOKEN_CONTRACT_ADDRESS", "CONTRACT_ADDRESS"),
    )
    reward_amount: Decimal = Field(Decimal("5"), gt=0, validation_alias="REWARD_AMOUNT")

    host: str = Field("0.0.0.0", validation_alias="HOST")
    port: int = Field(3000, validation_alias="PORT")
    cors_origins: str = Field("*", validation_alias="CORS_ORIGINS")

    explorer_tx_url: str = Field("https://sepolia.etherscan.io/tx/", validation_alias="EXPLORER_TX_URL")
    native_symbol: str = Field("ETH", validation_alias="NATIVE_SYMBOL")
    expected_chain_id: int = Field(11155111, validation_alias="EXPECTED_CHAIN_ID")
    confirmation_timeout: float = Field(120.0, gt=0, validation_alias="CONFIRMATION_TIMEOUT")
    confirmation_poll_interval: float = Field(2.0, gt=0, validation_alias="CONFIRMATION_POLL_INTERVAL")
    registration_policy: RegistrationPolicy = Field(
        RegistrationPolicy.STRICT, validation_alias="REGISTRATION_POLICY"
    )

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(False, validation_alias="LOG_JSON")

    @field_validator("rpc_url", mode="before")
    @classmethod
    def blank_as_missing(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def require_chain_credentials(self) -> None:
        missing = []
        if not self.rpc_url:
            missing.append("RPC_URL")
        if self.business_private_key is None or not self.business_private_key.get_secret_value().strip():
            missing.append("BUSINESS_PRIVATE_KEY")
        if missing:
            raise ConfigurationError(f"Missing environment variables: {', '.join(missing)}")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
