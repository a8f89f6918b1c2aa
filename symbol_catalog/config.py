"""
Configuration management for the symbol catalog.
Loads settings from config.yaml and environment variables.
"""
import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from symbol_catalog.models.crawl import ReconcileMode


class ResponseSchema(BaseModel):
    """
    Where the provider puts things in a lookup page.

    Paths are lists of keys walked from the payload root. Entry field lists
    are tried in order; the first non-empty value wins. These drift over
    time, so they live here rather than in the parser.
    """
    result_path: List[str] = ["finance", "result"]
    error_path: List[str] = ["finance", "error"]
    documents_key: str = "documents"
    total_key: str = "total"
    start_key: str = "start"
    more_key: Optional[str] = "hasMore"
    error_code_key: str = "code"
    error_description_key: str = "description"
    invalid_error_codes: List[str] = ["Bad Request", "Not Found", "Invalid Request"]
    ticker_fields: List[str] = ["symbol"]
    name_fields: List[str] = ["shortName", "longName", "name"]
    exchange_fields: List[str] = ["exchange"]
    type_fields: List[str] = ["quoteType"]
    category_fields: List[str] = ["sector", "categoryName", "category"]


class ProviderConfig(BaseModel):
    """Lookup endpoint configuration"""
    base_url: str = "https://query1.finance.yahoo.com"
    lookup_path: str = "/v1/finance/lookup"
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
    )
    timeout_seconds: float = 15.0
    static_params: Dict[str, str] = Field(default_factory=dict)
    type_param: str = "type"
    category_param: Optional[str] = "category"
    exchange_param: Optional[str] = "exchange"
    offset_param: str = "start"
    count_param: str = "count"
    response: ResponseSchema = Field(default_factory=ResponseSchema)

    @property
    def lookup_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.lookup_path.lstrip('/')}"


class CrawlConfig(BaseModel):
    """Crawl pacing, pagination and retry configuration"""
    page_size: int = Field(100, gt=0)
    max_pages: int = Field(100, gt=0)
    max_concurrency: int = Field(4, gt=0)
    min_request_interval: float = Field(0.5, ge=0)
    max_attempts: int = Field(4, gt=0)
    backoff_base: float = Field(1.0, ge=0)
    backoff_max: float = Field(30.0, ge=0)
    timeout_seconds: Optional[float] = None


class StoreConfig(BaseModel):
    """Embedded database configuration"""
    path: str = "symbols.db"
    seed_url: Optional[str] = None
    reconcile_mode: ReconcileMode = ReconcileMode.RETAIN
    busy_timeout: float = 30.0


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class AppConfig(BaseModel):
    """Application-level configuration"""
    name: str = "Symbol Catalog"
    environment: str = "development"


class Config(BaseModel):
    """Main configuration container"""
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    crawl: CrawlConfig = Field(default_factory=CrawlConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    @property
    def db_path(self) -> Path:
        """Store location; SYMBOL_CATALOG_DB_PATH overrides the configured path"""
        return Path(os.getenv("SYMBOL_CATALOG_DB_PATH") or self.store.path).expanduser()


def load_config(
    config_path: str = None,
    env_file: str = None,
    search_parent_dirs: bool = True
) -> Config:
    """
    Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to config.yaml file. If None, uses
                     SYMBOL_CATALOG_CONFIG_PATH or the bundled config.yaml.
        env_file: Path to .env file. If None, searches for .env.local in current
                 and parent directories.
        search_parent_dirs: If True, searches parent directories for .env.local.

    Returns:
        Config: Validated configuration object
    """
    # Load environment variables
    if env_file is None:
        current_dir = Path.cwd()
        parents = [current_dir] + list(current_dir.parents) if search_parent_dirs else [current_dir]
        for parent in parents:
            env_path = parent / '.env.local'
            if env_path.exists():
                load_dotenv(env_path)
                break
    else:
        load_dotenv(env_file)

    # Determine config file path
    if config_path is None:
        config_path = os.getenv('SYMBOL_CATALOG_CONFIG_PATH')

        if config_path is None:
            config_path = Path(__file__).parent / "config.yaml"

    with open(config_path, 'r') as f:
        config_data = yaml.safe_load(f) or {}

    return Config(**config_data)


# Global config instance
_config: Config = None


def get_config(
    config_path: str = None,
    env_file: str = None,
    reload: bool = False
) -> Config:
    """
    Get the global configuration instance.

    Args:
        config_path: Optional path to config file (only used on first load or reload)
        env_file: Optional path to .env file (only used on first load or reload)
        reload: If True, reload configuration from disk

    Returns:
        Config: Configuration instance
    """
    global _config
    if _config is None or reload:
        _config = load_config(config_path=config_path, env_file=env_file)
    return _config


def set_config(config: Config) -> None:
    """
    Manually set the global configuration instance.
    Useful for testing or programmatic configuration.
    """
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance. Useful for testing."""
    global _config
    _config = None
