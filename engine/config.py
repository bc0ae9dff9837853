"""Engine configuration settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class ResourcePricing(BaseModel):
    """Flat monthly price per unit of each resource."""
    cpu: float = 50.0  # per vCPU
    memory: float = 25.0  # per GB
    storage: float = 0.5  # per GB
    network: float = 0.1  # per Mbps
    instances: float = 100.0  # per instance (base cost)

    def price_of(self, resource: str) -> float:
        return float(getattr(self, resource, 0.0))


class InventoryBaseline(BaseModel):
    """Provisioned capacity the planner starts from."""
    cpu_current: float = 4
    cpu_maximum: float = 16
    memory_current: float = 8
    memory_maximum: float = 64
    storage_current: float = 100
    storage_maximum: float = 1000
    network_current: float = 1000
    network_maximum: float = 10000
    instances: int = 3

    # Utilization assumed when no metric history is available
    default_utilization: float = 50.0
    default_storage_utilization: float = 60.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Performance & Capacity Engine"
    app_version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Data storage
    data_path: Path = Field(default=Path("./data"))

    # Redis event forwarding
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379"

    # Performance monitor
    monitor_interval: float = 5.0  # seconds
    monitor_autostart: bool = False
    max_metrics_in_memory: int = 10000
    metrics_retention_days: int = 30
    retention_sweep_interval: float = 3600.0  # seconds
    alert_history_size: int = 1000
    probe_target_url: Optional[str] = None
    probe_timeout: float = 5.0  # seconds

    # Scalability runs
    recovery_interval: float = 30.0  # seconds between load steps
    load_request_timeout: float = 30.0  # seconds

    # Capacity planning
    capacity_history_days: int = 30
    min_trend_samples: int = 10
    pricing: ResourcePricing = Field(default_factory=ResourcePricing)
    inventory: InventoryBaseline = Field(default_factory=InventoryBaseline)

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # CORS
    cors_origins: list[str] = ["*"]

    class Config:
        env_prefix = "PERFCAP_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_nested_delimiter = "__"

    @property
    def database_path(self) -> Path:
        return self.data_path / "perfcap.db"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def init_settings(**kwargs) -> Settings:
    """Initialize settings with custom values."""
    global _settings
    _settings = Settings(**kwargs)
    return _settings
