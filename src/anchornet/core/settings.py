"""
Central configuration for AnchorNet.

This module provides a single, typed configuration object that reads from
environment variables (12-factor style) using pydantic-settings.

Usage:

    from anchornet.core.settings import get_settings

    settings = get_settings()
    ledger_url = settings.ledger.url

Every group reads its own prefix:

    ANCHORNET_LEDGER_URL=ws://node:9944
    ANCHORNET_ACCOUNT_URI=//Alice
    ANCHORNET_ACCOUNT_KEY_TYPE=ed25519
    ANCHORNET_PIPELINE_COUNT=500
    ANCHORNET_RUNTIME_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from anchornet.core.orchestrator import DEFAULT_COUNT, DEFAULT_LINK_BASE, DEFAULT_SCHEMA, PipelineConfig
from anchornet.crypto.keys import DEFAULT_KEY_TYPE, DEFAULT_SS58_FORMAT
from anchornet.protocol.enums import HashAlgorithm, KeyType, NonceMode


class LedgerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ANCHORNET_LEDGER_")

    url: str = Field(
        default="ws://localhost:9944",
        description="WebSocket endpoint of the node.",
    )
    backend: str = Field(
        default="websocket",
        description="'websocket' (default) or 'memory' for a dry run against the in-memory ledger.",
    )
    types_file: Optional[str] = Field(
        default=None,
        description="Path to the JSON type/metadata registry. Built-in defaults when unset.",
    )
    request_timeout: float = Field(
        default=30.0,
        description="Seconds to wait for a JSON-RPC response.",
    )

    @field_validator("backend")
    @classmethod
    def _normalize_backend(cls, v: str) -> str:
        v = (v or "websocket").lower()
        if v not in ("websocket", "memory"):
            raise ValueError("ANCHORNET_LEDGER_BACKEND must be 'websocket' or 'memory'")
        return v

    @field_validator("request_timeout")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("ANCHORNET_LEDGER_REQUEST_TIMEOUT must be positive")
        return v


class AccountSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ANCHORNET_ACCOUNT_")

    uri: str = Field(
        default="//Eve",
        description="Secret URI of the signing account (//Name or 0x<seed>[//junction...]).",
    )
    ss58_format: int = Field(
        default=DEFAULT_SS58_FORMAT,
        description="SS58 network prefix used when rendering addresses.",
    )
    key_type: KeyType = Field(
        default=DEFAULT_KEY_TYPE,
        description="Signature scheme of the account: sr25519 (what development chains endow) or ed25519.",
    )


class PipelineSettings(BaseSettings):
    """
    Anchoring run parameters. Mirrors PipelineConfig plus the post-run
    grace period the CLI waits before exiting.
    """

    model_config = SettingsConfigDict(env_prefix="ANCHORNET_PIPELINE_")

    count: int = Field(default=DEFAULT_COUNT, description="Number of linked anchors per run.")
    schema_text: str = Field(default=DEFAULT_SCHEMA, description="Type description hashed into the root anchor.")
    link_base: str = Field(default=DEFAULT_LINK_BASE, description="Prefix of the linked anchor payloads.")
    hash_width: int = Field(
        default=256,
        description="Content hash width in bits. Must match the registry's Hash type (256 bits by default).",
    )
    algorithm: HashAlgorithm = Field(default=HashAlgorithm.TWOX)
    nonce_mode: NonceMode = Field(default=NonceMode.AUTOMATIC)
    max_batch_size: Optional[int] = Field(
        default=None,
        description="Split linked anchors into batches of at most this many operations.",
    )
    submission_timeout: Optional[float] = Field(
        default=None,
        description="Seconds to wait for each submission to reach its target state.",
    )
    grace_period: float = Field(
        default=30.0,
        description="Seconds the CLI keeps the connection open after the run.",
    )

    @field_validator("count")
    @classmethod
    def _positive_count(cls, v: int) -> int:
        if v < 1:
            raise ValueError("ANCHORNET_PIPELINE_COUNT must be at least 1")
        return v

    @field_validator("hash_width")
    @classmethod
    def _valid_width(cls, v: int) -> int:
        if v <= 0 or v % 64:
            raise ValueError("ANCHORNET_PIPELINE_HASH_WIDTH must be a positive multiple of 64")
        return v

    @field_validator("grace_period")
    @classmethod
    def _non_negative_grace(cls, v: float) -> float:
        if v < 0:
            raise ValueError("ANCHORNET_PIPELINE_GRACE_PERIOD must not be negative")
        return v

    def to_config(self) -> PipelineConfig:
        return PipelineConfig(
            schema=self.schema_text,
            link_base=self.link_base,
            count=self.count,
            hash_width=self.hash_width,
            algorithm=self.algorithm,
            nonce_mode=self.nonce_mode,
            max_batch_size=self.max_batch_size,
            timeout=self.submission_timeout,
        )


class RuntimeSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ANCHORNET_RUNTIME_")

    log_level: str = Field(
        default="INFO",
        description="Log level of the anchornet logger tree (DEBUG/INFO/WARNING/ERROR).",
    )


class AnchorNetSettings(BaseSettings):
    """
    Root configuration object for AnchorNet.

    Aggregates:
      - Ledger
      - Account
      - Pipeline
      - Runtime
    """

    model_config = SettingsConfigDict(env_prefix="ANCHORNET_")

    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    account: AccountSettings = Field(default_factory=AccountSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)


@lru_cache(maxsize=1)
def get_settings() -> AnchorNetSettings:
    """
    Cached accessor for AnchorNetSettings.

    Call get_settings.cache_clear() after changing the environment.
    """
    return AnchorNetSettings()
