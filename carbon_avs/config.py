"""
Configuration management for the carbon verification service

Loads settings from:
1. config/config.yaml
2. Environment variables (.env, CARBON_AVS_ prefix)
3. Default values
"""

from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Load environment variables
load_dotenv()


class Config(BaseSettings):
    """Carbon verification service settings"""

    model_config = SettingsConfigDict(
        env_prefix="CARBON_AVS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Registries ---
    registry_backend: Literal["http", "static"] = "http"
    static_registry_path: Optional[Path] = Field(
        default=None,
        description="YAML file of registry records served in static mode",
    )
    static_registry_latency: float = Field(
        default=0.0,
        ge=0.0,
        description="Simulated latency (seconds) for static registry lookups",
    )
    credit_mapping_path: Optional[Path] = Field(
        default=None,
        description="YAML file mapping credit ids to per-registry keys",
    )

    verra_enabled: bool = True
    verra_base_url: str = "https://registry.verra.org/app/search/VCS"
    verra_api_key: str = Field(default="")
    verra_timeout: float = Field(default=5.0, gt=0)

    gold_standard_enabled: bool = True
    gold_standard_base_url: str = "https://registry.goldstandard.org/projects"
    gold_standard_api_key: str = Field(default="")
    gold_standard_timeout: float = Field(default=5.0, gt=0)

    climate_action_enabled: bool = True
    climate_action_base_url: str = "https://thereserve.apx.com/mymodule/reg"
    climate_action_api_key: str = Field(default="")
    climate_action_timeout: float = Field(default=5.0, gt=0)

    # --- Scoring policy ---
    min_quality_score: int = Field(default=40, ge=0, le=100)
    min_corroborating_sources: int = Field(default=2, ge=1)
    retired_penalty: int = Field(default=20, ge=0)
    low_corroboration_penalty: int = Field(default=10, ge=0)

    # --- Publication ---
    publish_max_attempts: int = Field(default=3, ge=1)
    publish_backoff_seconds: float = Field(default=1.0, ge=0.0)
    publish_backoff_factor: float = Field(default=2.0, ge=1.0)

    # --- Ledger ---
    ledger_backend: Literal["memory", "http", "contract"] = "memory"
    ledger_url: str = Field(default="http://localhost:8080")
    ledger_api_key: str = Field(default="")
    ledger_timeout: float = Field(default=10.0, gt=0)
    rpc_url: str = Field(default="http://localhost:8545")
    private_key: str = Field(default="")
    hook_contract_address: str = Field(default="")
    receipt_timeout: float = Field(default=120.0, gt=0)

    # --- Contract event listener ---
    listener_poll_interval: float = Field(default=5.0, gt=0)
    listener_start_block: Optional[int] = None

    # --- API ---
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_key: str = Field(default="")
    demo_mode: bool = False

    # --- Logging ---
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @classmethod
    def from_yaml(cls, yaml_path: str | Path = "config/config.yaml") -> "Config":
        """Load configuration from YAML file, falling back to env/defaults"""
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            return cls()

        with open(yaml_path) as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def registry_settings(self) -> list[dict]:
        """Enabled registries as (name, base_url, api_key, timeout) dicts."""
        entries = [
            ("verra", self.verra_enabled, self.verra_base_url,
             self.verra_api_key, self.verra_timeout),
            ("gold_standard", self.gold_standard_enabled, self.gold_standard_base_url,
             self.gold_standard_api_key, self.gold_standard_timeout),
            ("climate_action", self.climate_action_enabled, self.climate_action_base_url,
             self.climate_action_api_key, self.climate_action_timeout),
        ]
        return [
            {"name": name, "base_url": url, "api_key": key, "timeout": timeout}
            for name, enabled, url, key, timeout in entries
            if enabled
        ]


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global configuration instance"""
    global _config
    if _config is None:
        _config = Config.from_yaml(Path(__file__).parent.parent / "config" / "config.yaml")
    return _config


def reload_config(yaml_path: Optional[str | Path] = None) -> Config:
    """Reload configuration from file"""
    global _config
    _config = None
    if yaml_path:
        _config = Config.from_yaml(yaml_path)
        return _config
    return get_config()
