"""
Configuration management for the trip lifecycle engine.

Handles loading and accessing:
- Business configuration (config.yaml)
- Environment variables
"""

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ComplianceSettings(BaseModel):
    """Expiry thresholds (in days) and gate behavior."""

    critical_days: int = 7
    urgent_days: int = 14
    warning_days: int = 30
    block_expired: bool = False


class FinancialSettings(BaseModel):
    """Settlement rules for who funded an expense and what counts as a collection."""

    driver_funded_methods: list[str] = Field(
        default_factory=lambda: ["driver_personal", "driver_cash", "driver_card"]
    )
    company_funded_methods: list[str] = Field(
        default_factory=lambda: ["company_card", "fuel_card", "efs_card", "comdata"]
    )
    collection_methods: list[str] = Field(
        default_factory=lambda: ["cash", "check", "certified_check"]
    )


class TripSettings(BaseModel):
    """Trip numbering."""

    number_prefix: str = "TRP-"
    number_width: int = 4


class BusinessConfig(BaseModel):
    """Typed view of config.yaml."""

    compliance: ComplianceSettings = Field(default_factory=ComplianceSettings)
    financials: FinancialSettings = Field(default_factory=FinancialSettings)
    trips: TripSettings = Field(default_factory=TripSettings)


class EnvironmentSettings(BaseSettings):
    """Environment variables configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field("INFO", alias="TRIPFLOW_LOG_LEVEL")
    log_format: str = Field("json", alias="TRIPFLOW_LOG_FORMAT")

    # Overrides compliance.block_expired from config.yaml when set
    compliance_block_expired: Optional[bool] = Field(
        None, alias="TRIPFLOW_COMPLIANCE_BLOCK_EXPIRED"
    )


class ConfigManager:
    """
    Central configuration manager for the lifecycle engine.

    Loads and provides access to:
    - Business configuration from config/config.yaml
    - Environment variables from .env
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """
        Initialize the configuration manager.

        Args:
            config_dir: Optional path to config directory. Defaults to project root/config.
        """
        if config_dir is None:
            # Default to config/ directory in project root
            project_root = Path(__file__).parent.parent.parent
            config_dir = project_root / "config"

        self.config_dir = config_dir
        self._business_config: Optional[dict[str, Any]] = None
        self._settings: Optional[BusinessConfig] = None
        self._env_settings: Optional[EnvironmentSettings] = None

    @property
    def business_config(self) -> dict[str, Any]:
        """Load and return business configuration from config.yaml."""
        if self._business_config is None:
            config_path = self.config_dir / "config.yaml"
            if config_path.exists():
                with open(config_path, "r") as f:
                    self._business_config = yaml.safe_load(f) or {}
            else:
                self._business_config = {}
        return self._business_config

    @property
    def settings(self) -> BusinessConfig:
        """Validated business configuration."""
        if self._settings is None:
            self._settings = BusinessConfig(**self.business_config)
        return self._settings

    @property
    def env(self) -> EnvironmentSettings:
        """Load and return environment settings."""
        if self._env_settings is None:
            self._env_settings = EnvironmentSettings()
        return self._env_settings

    def get_compliance_settings(self) -> ComplianceSettings:
        """
        Get compliance thresholds.

        The TRIPFLOW_COMPLIANCE_BLOCK_EXPIRED environment variable wins over
        the file value for block_expired.
        """
        compliance = self.settings.compliance
        override = self.env.compliance_block_expired
        if override is not None and override != compliance.block_expired:
            compliance = compliance.model_copy(update={"block_expired": override})
        return compliance

    def get_financial_settings(self) -> FinancialSettings:
        """Get settlement rules from business config."""
        return self.settings.financials

    def get_trip_settings(self) -> TripSettings:
        """Get trip numbering rules from business config."""
        return self.settings.trips


# Global config instance
_config_manager: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """
    Get the global configuration manager instance.

    Returns:
        ConfigManager singleton instance
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager
