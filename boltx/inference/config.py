#!/usr/bin/env python3
"""
Scoring Service Configuration

Centralized configuration for the checkout scoring API.
Supports environment-based configuration for different deployment environments.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

from boltx.core.models.config import EnhancementConfig, ForecastConfig, ScoringWeights


class RedisConfig(BaseModel):
    """Redis configuration for the shared session history."""

    host: str = Field(default="redis", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    db: int = Field(default=0, description="Redis database number")
    password: Optional[str] = Field(default=None, description="Redis password")
    socket_timeout: int = Field(default=5, description="Socket timeout seconds")


class HistoryConfig(BaseModel):
    """Per-session prediction history."""

    backend: str = Field(default="memory", description="History backend: memory or redis")
    limit: int = Field(default=10, description="Predictions kept per session")
    ttl_seconds: int = Field(default=3600, description="Redis history TTL in seconds")
    max_sessions: Optional[int] = Field(default=100_000, description="Sessions tracked by the memory backend")
    key_prefix: str = Field(default="boltx:history", description="Redis key prefix")


class ScoringConfig(BaseModel):
    """Abandonment scoring constants."""

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    enhancement: EnhancementConfig = Field(default_factory=EnhancementConfig)


class RetrainConfig(BaseModel):
    """Periodic model evaluation."""

    interval_seconds: int = Field(default=24 * 60 * 60, description="Seconds between evaluations")
    fetch_limit: int = Field(default=1000, description="Labelled samples requested per evaluation")
    data_path: Optional[str] = Field(default=None, description="JSON-lines file of labelled sessions; enables scheduled evaluation")


class APIConfig(BaseModel):
    """API configuration."""

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    title: str = Field(default="BoltX Checkout Scoring API", description="API title")
    description: str = Field(
        default="Checkout abandonment risk scoring and revenue forecasting",
        description="API description"
    )
    version: str = Field(default="1.0.0", description="API version")

    max_batch_events: int = Field(default=10_000, description="Max events accepted per request")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    service_name: str = Field(default="boltx-scoring", description="Service name")
    environment: str = Field(default="production", description="Environment")


class ServiceConfig(BaseModel):
    """Complete scoring service configuration."""

    redis: RedisConfig = Field(default_factory=RedisConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    forecast: ForecastConfig = Field(default_factory=ForecastConfig)
    retrain: RetrainConfig = Field(default_factory=RetrainConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    environment: str = Field(default="production", description="Environment")

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Load configuration from environment variables."""
        config = cls()

        # Redis configuration
        if os.getenv("REDIS_HOST"):
            config.redis.host = os.getenv("REDIS_HOST")
        if os.getenv("REDIS_PORT"):
            config.redis.port = int(os.getenv("REDIS_PORT"))
        if os.getenv("REDIS_PASSWORD"):
            config.redis.password = os.getenv("REDIS_PASSWORD")

        # History configuration
        if os.getenv("HISTORY_BACKEND"):
            config.history.backend = os.getenv("HISTORY_BACKEND").lower()
        if os.getenv("HISTORY_TTL_SECONDS"):
            config.history.ttl_seconds = int(os.getenv("HISTORY_TTL_SECONDS"))

        # Retraining and forecasting
        if os.getenv("RETRAIN_INTERVAL_SECONDS"):
            config.retrain.interval_seconds = int(os.getenv("RETRAIN_INTERVAL_SECONDS"))
        if os.getenv("RETRAIN_DATA_PATH"):
            config.retrain.data_path = os.getenv("RETRAIN_DATA_PATH")
        if os.getenv("FORECAST_DEFAULT_DAYS"):
            config.forecast.default_days = int(os.getenv("FORECAST_DEFAULT_DAYS"))

        # API configuration
        if os.getenv("API_HOST"):
            config.api.host = os.getenv("API_HOST")
        if os.getenv("API_PORT"):
            config.api.port = int(os.getenv("API_PORT"))

        # Logging configuration
        if os.getenv("LOG_LEVEL"):
            config.logging.level = os.getenv("LOG_LEVEL")
        if os.getenv("ENVIRONMENT"):
            config.environment = os.getenv("ENVIRONMENT")
            config.logging.environment = os.getenv("ENVIRONMENT")

        return config
