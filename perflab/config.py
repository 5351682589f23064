"""
Configuration settings for the Mongo performance lab.

Uses Pydantic Settings to load environment variables for the MongoDB connection,
logging, and benchmark defaults (batch size, parallel fan-out, plan-analysis
thresholds).
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # MongoDB
    mongo_uri: str = Field("mongodb://localhost:27017", alias="MONGO_URI")
    mongo_db: str = Field("perfdb", alias="MONGO_DB")
    mongo_collection: str = Field("orders", alias="MONGO_COLLECTION")
    mongo_connect_timeout_ms: int = Field(10_000, alias="MONGO_CONNECT_TIMEOUT_MS")
    mongo_max_pool_size: int = Field(100, alias="MONGO_MAX_POOL_SIZE")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")
    log_dir: str = Field("logs", alias="LOG_DIR")

    # Benchmark defaults
    benchmark_batch_size: int = Field(1_000, alias="BENCHMARK_BATCH_SIZE")
    benchmark_filter_status: str = Field("PAID", alias="BENCHMARK_FILTER_STATUS")
    benchmark_progress_interval: int = Field(100_000, alias="BENCHMARK_PROGRESS_INTERVAL")
    parallel_workers: int = Field(10, alias="PARALLEL_WORKERS")
    parallel_chunk_size: int = Field(100_000, alias="PARALLEL_CHUNK_SIZE")
    parallel_chunk_policy: Literal["fixed", "cover"] = Field(
        "fixed", alias="PARALLEL_CHUNK_POLICY"
    )

    # Plan analysis thresholds
    slow_query_ms: int = Field(100, alias="SLOW_QUERY_MS")
    low_efficiency_pct: float = Field(50.0, alias="LOW_EFFICIENCY_PCT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
