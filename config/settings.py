"""Configuration settings using pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings


class LedgerSettings(BaseSettings):
    """Connection settings for the external ledger endpoint.

    The endpoint accepts contract calls of the form
    ``{to, abi, method, arguments}``; ``contract_address`` is the ``to`` field.
    """

    # "stability" (HTTP contract endpoint) or "memory" (in-process, dev only).
    backend: str = Field(default="stability", validation_alias="LEDGER_BACKEND")
    api_url: str = Field(
        default="",
        validation_alias=AliasChoices("STABILITY_API_URL", "LEDGER_API_URL"),
    )
    contract_address: str = Field(
        default="",
        validation_alias=AliasChoices("STABILITY_CONTRACT_ADDRESS", "LEDGER_CONTRACT_ADDRESS"),
    )

    # Hard time budget for a single append, or for a read including its retries.
    timeout_s: float = Field(default=30.0, validation_alias="LEDGER_TIMEOUT_S")
    connect_timeout_s: float = Field(default=10.0, validation_alias="LEDGER_CONNECT_TIMEOUT_S")

    # Reads only. Appends are never retried inside the client.
    read_max_retries: int = Field(default=3, validation_alias="LEDGER_READ_MAX_RETRIES")
    read_backoff_base_s: float = Field(default=0.75, validation_alias="LEDGER_READ_BACKOFF_BASE_S")

    model_config = {"extra": "ignore", "populate_by_name": True}

    @field_validator("read_max_retries")
    @classmethod
    def _at_least_one_attempt(cls, value: int) -> int:
        return max(1, int(value))


class StoreSettings(BaseSettings):
    """Local reference/cache database."""

    database_url: str = Field(
        default="sqlite:///./implant_ledger.db",
        validation_alias=AliasChoices("IMPLANT_LEDGER_DATABASE_URL", "DATABASE_URL"),
    )
    echo_sql: bool = Field(default=False, validation_alias="IMPLANT_LEDGER_ECHO_SQL")

    model_config = {"extra": "ignore", "populate_by_name": True}


class ReconcilerSettings(BaseSettings):
    """Timing for the delayed single-record check and the periodic sweep."""

    verify_delay_s: float = Field(default=120.0, validation_alias="VERIFY_DELAY_S")
    sync_loop_enabled: bool = Field(default=False, validation_alias="SYNC_LOOP_ENABLED")
    # Fallback poll interval while sync is switched off.
    sync_idle_poll_s: float = Field(default=300.0, validation_alias="SYNC_IDLE_POLL_S")
    default_sync_frequency_hours: int = Field(default=1, validation_alias="SYNC_FREQUENCY_HOURS")
    provider_history_limit: int = 100
    audit_trail_limit: int = 20
    system_actor_id: Optional[str] = Field(default="system", validation_alias="SYNC_SYSTEM_ACTOR_ID")

    model_config = {"extra": "ignore", "populate_by_name": True}


class ServerSettings(BaseSettings):
    """Bind address for the HTTP service."""

    host: str = Field(default="127.0.0.1", validation_alias="IMPLANT_LEDGER_HOST")
    port: int = Field(default=8010, validation_alias="IMPLANT_LEDGER_PORT")
    reload: bool = Field(default=False, validation_alias="IMPLANT_LEDGER_RELOAD")

    model_config = {"extra": "ignore", "populate_by_name": True}


@lru_cache(maxsize=1)
def get_ledger_settings() -> LedgerSettings:
    return LedgerSettings()


@lru_cache(maxsize=1)
def get_store_settings() -> StoreSettings:
    return StoreSettings()


@lru_cache(maxsize=1)
def get_reconciler_settings() -> ReconcilerSettings:
    return ReconcilerSettings()


@lru_cache(maxsize=1)
def get_server_settings() -> ServerSettings:
    return ServerSettings()


__all__ = [
    "LedgerSettings",
    "StoreSettings",
    "ReconcilerSettings",
    "ServerSettings",
    "get_ledger_settings",
    "get_store_settings",
    "get_reconciler_settings",
    "get_server_settings",
]
