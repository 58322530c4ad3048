"""
Configuration module for the event journal
Centralizes storage, ingest, query and logging settings with validation
"""

import os
import json
import logging
import threading
from pathlib import Path
from typing import Dict, Any, Optional, Union


class ConfigError(Exception):
    """Configuration validation error"""
    pass


def _safe_int_env(name: str, default: int, min_val: int = None, max_val: int = None) -> int:
    """
    Safely parse integer environment variable with bounds.
    Falls back to default on invalid values.
    """
    logger_local = logging.getLogger(__name__)
    try:
        value = int(os.getenv(name, str(default)))
        if min_val is not None:
            value = max(min_val, value)
        if max_val is not None:
            value = min(max_val, value)
        return value
    except (ValueError, TypeError):
        logger_local.warning(f"Invalid {name}, using default {default}")
        return default


class Config:
    """
    Journal configuration management with:
    - Environment variable support (read on every call, not at import)
    - Safe defaults and bounds
    - Optional JSON overrides via load_from_file()/set()
    """

    # ========== Journal Settings ==========
    @classmethod
    def get_journal_config(cls) -> dict:
        """Storage location, inline/overflow threshold and query concurrency"""
        return {
            'data_dir': Path(os.getenv(
                'JOURNAL_DATA_DIR',
                str(Path.home() / 'journal_data')
            )),
            # Compressed content at or above this size goes to the blob store
            'inline_content_threshold': _safe_int_env('JOURNAL_INLINE_THRESHOLD', 0xFFFF, 1, 0xFFFF),
            'scan_page_size': _safe_int_env('JOURNAL_SCAN_PAGE_SIZE', 1000, 1, 100000),
            'max_workers': _safe_int_env('JOURNAL_MAX_WORKERS', 8, 1, 64),
        }

    JOURNAL = property(lambda self: self.get_journal_config())

    # ========== File Settings ==========
    @classmethod
    def get_files_config(cls) -> dict:
        """Get file configuration with lazy initialization to avoid import issues"""
        return {
            'log_dir': Path(os.getenv(
                'JOURNAL_LOG_DIR',
                str(Path.home() / '.journal' / 'logs')
            )),
        }

    # ========== Logging Settings ==========
    LOGGING = {
        'level': os.getenv('LOG_LEVEL', 'INFO'),
        'console_level': os.getenv('LOG_CONSOLE_LEVEL', 'INFO'),
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        'date_format': '%Y-%m-%d %H:%M:%S',
        'max_bytes': 5 * 1024 * 1024,
        'backup_count': 3,
        'json_logs': os.getenv('LOG_JSON', 'false').lower() == 'true',
    }

    def __init__(
        self,
        config_file: Optional[str] = None,
        validate: bool = True,
        ensure_directories: bool = True,
    ):
        """
        Initialize configuration with optional validation

        Args:
            config_file: Optional path to JSON config file
            validate: Whether to validate configuration on init
            ensure_directories: Create required directories on init
        """
        self._lock = threading.RLock()
        self.config_file = config_file
        self._custom_settings = {}

        if ensure_directories:
            self.ensure_directories()

        if config_file:
            self.load_from_file(config_file)

        if validate:
            self.validate()

    @property
    def FILES(self) -> dict:
        return self.get_files_config()

    def ensure_directories(self) -> Dict[str, bool]:
        """Ensure the data and log directories exist, track success."""
        status: Dict[str, bool] = {}
        logger_local = logging.getLogger(__name__)
        for key, path in [
            ('data_dir', self.get_journal_config()['data_dir']),
            ('log_dir', self.FILES['log_dir']),
        ]:
            try:
                path.mkdir(parents=True, exist_ok=True)
                status[key] = path.is_dir()
            except OSError as e:
                logger_local.warning(f"Could not create {key}: {e}")
                status[key] = False
        self._directory_status = status
        return status

    def validate(self):
        """
        Validate all configuration values

        Raises:
            ConfigError: If configuration is invalid
        """
        errors = []

        journal = self.get_journal_config()
        threshold = self.get('journal', 'inline_content_threshold', journal['inline_content_threshold'])
        if not 1 <= threshold <= 0xFFFF:
            errors.append("inline_content_threshold must be between 1 and 65535")
        if self.get('journal', 'scan_page_size', journal['scan_page_size']) < 1:
            errors.append("scan_page_size must be positive")
        if self.get('journal', 'max_workers', journal['max_workers']) < 1:
            errors.append("max_workers must be positive")

        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        for key in ('level', 'console_level'):
            if self.LOGGING[key].upper() not in valid_levels:
                errors.append(f"Invalid log level: {self.LOGGING[key]}")

        if hasattr(self, '_directory_status'):
            for key, success in self._directory_status.items():
                if not success:
                    errors.append(f"Required directory {key} could not be created")

        if errors:
            raise ConfigError("Configuration validation failed:\n" + "\n".join(errors))

    def load_from_file(self, filepath: Union[str, Path]):
        """
        Load configuration overrides from a JSON file

        Args:
            filepath: Path to JSON configuration file ({"journal": {...}, ...})
        """
        filepath = Path(filepath)
        logger_local = logging.getLogger(__name__)

        if not filepath.exists():
            logger_local.warning(f"Config file not found: {filepath}")
            return

        try:
            with open(filepath, 'r') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in config file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Error loading config file: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a JSON object")

        with self._lock:
            self._custom_settings = {
                section.lower(): values for section, values in data.items() if isinstance(values, dict)
            }
        logger_local.info(f"Loaded configuration from {filepath}")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get configuration value with support for custom settings

        Args:
            section: Configuration section name
            key: Configuration key
            default: Default value if not found

        Returns:
            Configuration value or default
        """
        with self._lock:
            section_lower = section.lower()
            if key in self._custom_settings.get(section_lower, {}):
                return self._custom_settings[section_lower][key]

        section_attr = section.upper()
        if hasattr(self, section_attr):
            section_dict = getattr(self, section_attr)
            if isinstance(section_dict, dict):
                return section_dict.get(key, default)

        return default

    def set(self, section: str, key: str, value: Any):
        """Set a configuration value"""
        with self._lock:
            self._custom_settings.setdefault(section.lower(), {})[key] = value

    def to_dict(self) -> dict:
        """Export entire configuration as dictionary"""
        with self._lock:
            custom_settings = {k: dict(v) for k, v in self._custom_settings.items()}

        return {
            'journal': {k: str(v) if isinstance(v, Path) else v for k, v in self.JOURNAL.items()},
            'files': {k: str(v) for k, v in self.FILES.items()},
            'logging': self.LOGGING,
            'custom': custom_settings,
        }


# Create global configuration instance.
#
# IMPORTANT: Keep this import side-effect free. Directory creation and
# validation happen in an explicit startup path (see `scripts/journal_cli.py`).
config = Config(validate=False, ensure_directories=False)
