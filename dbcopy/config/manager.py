"""
Configuration Management Framework
Layered configuration: dotenv files, JSON/YAML config files, environment variables
"""
import os
import logging
from dataclasses import dataclass, field, fields, asdict
from typing import Dict, List, Optional, Any
from enum import Enum
from pathlib import Path
import json
import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

class Environment(Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"

@dataclass
class DatabaseSettings:
    """Database connection settings"""
    connection_string: str = ""
    database_name: Optional[str] = None
    max_pool_size: int = 10
    min_pool_size: int = 0
    max_idle_time_ms: int = 300000
    socket_timeout_ms: int = 30000
    connect_timeout_ms: int = 20000
    server_selection_timeout_ms: int = 10000

@dataclass
class TransferSettings:
    """Batch sizing settings"""
    safety_factor: float = 0.70
    max_page_size: int = 10000
    memory_limit_mb: Optional[int] = None
    min_record_size_bytes: int = 1
    connect_retries: int = 3
    backoff_base_seconds: float = 0.5

@dataclass
class MonitoringSettings:
    """Progress and logging settings"""
    progress_bars: bool = True
    log_file: Optional[str] = "dbcopy.log"

@dataclass
class CopyConfig:
    """Main configuration"""
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"

    source_database: DatabaseSettings = field(default_factory=DatabaseSettings)
    target_database: DatabaseSettings = field(default_factory=DatabaseSettings)

    transfer: TransferSettings = field(default_factory=TransferSettings)
    monitoring: MonitoringSettings = field(default_factory=MonitoringSettings)

    # Empty means every collection in the source database
    collections: List[str] = field(default_factory=list)

def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")

def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]

class ConfigManager:
    """
    Configuration manager with support for:
    - .env files (python-dotenv)
    - Configuration files (JSON/YAML)
    - Environment variable overrides
    - Explicit overrides (command line)
    - Validation
    """

    _DATABASE_INT_FIELDS = {
        "MAX_POOL_SIZE": "max_pool_size",
        "MIN_POOL_SIZE": "min_pool_size",
        "MAX_IDLE_TIME_MS": "max_idle_time_ms",
        "SOCKET_TIMEOUT_MS": "socket_timeout_ms",
        "CONNECT_TIMEOUT_MS": "connect_timeout_ms",
        "SERVER_SELECTION_TIMEOUT_MS": "server_selection_timeout_ms",
    }

    def __init__(self, config_prefix: str = "DBCOPY", load_env_files: bool = True):
        self.config_prefix = config_prefix
        self.config: Optional[CopyConfig] = None
        if load_env_files:
            self._load_environment_variables()

    def _load_environment_variables(self):
        """Load environment variables from the first .env file found"""
        env_files = ['.env_local', '.env', 'config.env']
        for env_file in env_files:
            if Path(env_file).exists():
                load_dotenv(env_file)
                logger.info(f"Loaded environment variables from {env_file}")
                break

    def load_config(self, config_file: Optional[str] = None,
                    overrides: Optional[Dict[str, Any]] = None) -> CopyConfig:
        """Load configuration from file, environment variables and overrides (in that order)"""
        config_data: Dict[str, Any] = {}

        if config_file:
            file_path = Path(config_file)
            if self._is_dotenv(file_path):
                if not file_path.exists():
                    raise FileNotFoundError(f"Configuration file not found: {config_file}")
                load_dotenv(config_file, override=True)
            else:
                self._merge(config_data, self._load_config_file(config_file))

        self._merge(config_data, self._load_from_environment())

        if overrides:
            self._merge(config_data, overrides)

        self.config = self._create_config_object(config_data)
        self._validate_config(self.config)

        logger.info(f"Configuration loaded for {self.config.environment.value} environment")
        return self.config

    @staticmethod
    def _is_dotenv(file_path: Path) -> bool:
        return (file_path.suffix.lower() == '.env' or
                file_path.name.startswith('.env') or
                file_path.name.endswith('.env'))

    @staticmethod
    def _merge(base: Dict[str, Any], update: Dict[str, Any]):
        """Merge nested dicts in place; None values never override"""
        for key, value in update.items():
            if value is None:
                continue
            if isinstance(value, dict):
                if not isinstance(base.get(key), dict):
                    base[key] = {}
                ConfigManager._merge(base[key], value)
            else:
                base[key] = value

    def _load_config_file(self, config_file: str) -> Dict[str, Any]:
        """Load configuration from a JSON or YAML file"""
        file_path = Path(config_file)

        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        with open(file_path, 'r') as f:
            if file_path.suffix.lower() == '.json':
                data = json.load(f)
            elif file_path.suffix.lower() in ['.yml', '.yaml']:
                data = yaml.safe_load(f)
            else:
                raise ValueError(f"Unsupported configuration file format: {file_path.suffix}")

        return data or {}

    def _env(self, name: str) -> Optional[str]:
        value = os.getenv(f"{self.config_prefix}_{name}")
        return value if value not in (None, "") else None

    def _load_database_from_environment(self, side: str) -> Dict[str, Any]:
        settings: Dict[str, Any] = {
            "connection_string": self._env(f"{side}_URI"),
            "database_name": self._env(f"{side}_DB"),
        }
        for suffix, key in self._DATABASE_INT_FIELDS.items():
            value = self._env(f"{side}_{suffix}")
            settings[key] = int(value) if value is not None else None
        return settings

    def _load_from_environment(self) -> Dict[str, Any]:
        """Load configuration from environment variables (unset ones are skipped)"""
        config: Dict[str, Any] = {
            "environment": self._env("ENVIRONMENT"),
            "log_level": self._env("LOG_LEVEL"),
            "source_database": self._load_database_from_environment("SOURCE"),
            "target_database": self._load_database_from_environment("TARGET"),
        }

        collections = self._env("COLLECTIONS")
        if collections is not None:
            config["collections"] = _parse_list(collections)

        safety_factor = self._env("SAFETY_FACTOR")
        max_page_size = self._env("MAX_PAGE_SIZE")
        memory_limit_mb = self._env("MEMORY_LIMIT_MB")
        min_record_size = self._env("MIN_RECORD_SIZE_BYTES")
        connect_retries = self._env("CONNECT_RETRIES")
        backoff = self._env("BACKOFF_BASE_SECONDS")
        config["transfer"] = {
            "safety_factor": float(safety_factor) if safety_factor else None,
            "max_page_size": int(max_page_size) if max_page_size else None,
            "memory_limit_mb": int(memory_limit_mb) if memory_limit_mb else None,
            "min_record_size_bytes": int(min_record_size) if min_record_size else None,
            "connect_retries": int(connect_retries) if connect_retries else None,
            "backoff_base_seconds": float(backoff) if backoff else None,
        }

        progress_bars = self._env("PROGRESS_BARS")
        config["monitoring"] = {
            "progress_bars": _parse_bool(progress_bars) if progress_bars else None,
            "log_file": self._env("LOG_FILE"),
        }

        return config

    def _create_config_object(self, config_data: Dict[str, Any]) -> CopyConfig:
        """Create CopyConfig object from dictionary"""
        self._check_keys(CopyConfig, config_data, "configuration")
        collections = config_data.get("collections", [])
        if isinstance(collections, str):
            collections = _parse_list(collections)

        return CopyConfig(
            environment=Environment(config_data.get("environment", Environment.DEVELOPMENT.value)),
            log_level=str(config_data.get("log_level", "INFO")).upper(),
            source_database=self._section(DatabaseSettings, config_data, "source_database"),
            target_database=self._section(DatabaseSettings, config_data, "target_database"),
            transfer=self._section(TransferSettings, config_data, "transfer"),
            monitoring=self._section(MonitoringSettings, config_data, "monitoring"),
            collections=list(collections)
        )

    @staticmethod
    def _check_keys(settings_class, data: Dict[str, Any], section: str):
        known = {f.name for f in fields(settings_class)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown {section} setting(s): {', '.join(unknown)}")

    def _section(self, settings_class, config_data: Dict[str, Any], section: str):
        data = config_data.get(section) or {}
        if not isinstance(data, dict):
            raise ValueError(f"'{section}' must be a mapping, got {type(data).__name__}")
        self._check_keys(settings_class, data, section)
        return settings_class(**data)

    def _validate_config(self, config: CopyConfig):
        """Validate configuration"""
        errors = []

        if not config.source_database.connection_string:
            errors.append("Source database connection string is required")

        if not config.target_database.connection_string:
            errors.append("Target database connection string is required")

        if not 0 < config.transfer.safety_factor <= 1:
            errors.append("Safety factor must be in (0, 1]")

        if config.transfer.max_page_size < 1:
            errors.append("Max page size must be >= 1")

        if config.transfer.min_record_size_bytes < 1:
            errors.append("Min record size must be >= 1 byte")

        if config.transfer.memory_limit_mb is not None and config.transfer.memory_limit_mb <= 0:
            errors.append("Memory limit must be > 0 MB")

        if config.transfer.connect_retries < 1:
            errors.append("Connect retries must be >= 1")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

    def get_config(self) -> CopyConfig:
        """Get current configuration"""
        if self.config is None:
            raise RuntimeError("Configuration not loaded. Call load_config() first.")
        return self.config

    def save_config(self, config: CopyConfig, file_path: str):
        """Save configuration to a JSON or YAML file (connection strings included)"""
        config_dict = asdict(config)
        config_dict["environment"] = config.environment.value

        file_path_obj = Path(file_path)
        with open(file_path_obj, 'w') as f:
            if file_path_obj.suffix.lower() == '.json':
                json.dump(config_dict, f, indent=2)
            elif file_path_obj.suffix.lower() in ['.yml', '.yaml']:
                yaml.dump(config_dict, f, default_flow_style=False)
            else:
                raise ValueError(f"Unsupported file format: {file_path_obj.suffix}")
