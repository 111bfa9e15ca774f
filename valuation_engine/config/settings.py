"""
Retail Opportunity Valuation Engine
Centralized Configuration Management

Pydantic settings with environment variable support for the data source
connection, the source object names and the engine's business defaults.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="retail_ops", description="Database name")
    user: str = Field(default="retail", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    schema_name: Optional[str] = Field(default="gonac", description="Schema holding facts and functions")
    url: Optional[str] = Field(default=None, description="Full async URL (overrides host/port)")
    echo: bool = Field(default=False, description="Echo SQL queries")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.database}"


class SourceSettings(BaseSettings):
    """Names of the materialized facts and stored functions read by the engine"""

    model_config = SettingsConfigDict(env_prefix="SOURCE_")

    store_facts_table: str = Field(default="core_store_metrics", description="Per-store period facts")
    product_table: str = Field(default="core_cat_product", description="Product catalog")
    sku_metrics_table: str = Field(default="core_store_sku_metrics", description="Per store/SKU metrics")

    # Risk detail tables
    stockout_table: str = Field(default="agotamiento_detalle", description="Stockout risk detail")
    expiration_table: str = Field(default="caducidad_detalle", description="Expiration risk detail")
    no_sale_table: str = Field(default="sin_ventas_detalle", description="No-sale risk detail")

    # Stored functions
    pricing_function: str = Field(default="calcular_metricas_descuento", description="Promotion pricing function")
    roi_function: str = Field(default="calcular_roi_exhibicion", description="Exhibition ROI function")
    summary_function: str = Field(default="fn_obtener_resumen_exhibicion", description="Exhibition summary function")


class EngineSettings(BaseSettings):
    """Business defaults for the valuation engine"""

    model_config = SettingsConfigDict(env_prefix="ENGINE_")

    # Exhibition defaults
    cost_per_exhibition: float = Field(default=500.0, gt=0, description="Cost of one exhibition")
    sales_lift_fraction: float = Field(default=0.5, ge=0, description="Expected sales lift (0.5 = 50%)")
    days_in_month: int = Field(default=30, ge=1, le=31, description="Days in the evaluated month")

    # Reporting period
    period_days: int = Field(default=28, gt=0, description="Length of the reporting period in days")

    # Ranking limits
    top_stores_limit: int = Field(default=10, ge=0, description="Stores returned by full exhibition analysis")
    top_segments_limit: int = Field(default=5, ge=0, description="Default top-N for segments")
    top_expiration_categories_limit: int = Field(default=2, ge=0, description="Default top-N expiration categories")

    # Concurrency
    pricing_concurrency: int = Field(default=8, ge=1, description="Max concurrent pricing calls")

    @property
    def weeks_in_period(self) -> float:
        """Weeks covered by the reporting period"""
        return self.period_days / 7


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing engine configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="retail-valuation-engine", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sources: SourceSettings = Field(default_factory=SourceSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
