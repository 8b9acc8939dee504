"""Load and validate card import settings from YAML."""

import yaml
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from pydantic import ValidationError

from .models import CardImportConfig

logger = logging.getLogger(__name__)


class ConfigLoadError(Exception):
    """Settings file could not be read."""
    pass


class ConfigValidationError(ConfigLoadError):
    """Settings file was read but holds invalid values."""

    def __init__(self, errors: list[dict], file_path: Path):
        self.errors = errors
        self.file_path = file_path
        super().__init__(self._format_errors())

    def _format_errors(self) -> str:
        """One line per invalid setting."""
        lines = [f"Invalid card import settings in {self.file_path}:"]
        for error in self.errors:
            setting = ".".join(str(part) for part in error['loc']) or "<root>"
            lines.append(f"  {setting}: {error['msg']}")
        return "\n".join(lines)


class ConfigLoader:
    """Reads card import settings relative to a base directory."""

    SECTION = "card_import"
    DEFAULT_FILE = Path("config") / "card_import.yaml"

    def __init__(self, config_dir: Path = Path(".")):
        self.config_dir = Path(config_dir)

    @property
    def default_path(self) -> Path:
        return self.config_dir / self.DEFAULT_FILE

    def load_yaml(self, file_path: Path) -> Dict[str, Any]:
        """Parse a YAML document whose top level is a mapping (empty file -> {})."""
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigLoadError(f"Settings file not found: {file_path}")
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Settings file {file_path} is not valid YAML: {e}")
        except OSError as e:
            raise ConfigLoadError(f"Cannot read settings file {file_path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"Expected a mapping at the top of {file_path}, got {type(data).__name__}"
            )
        return data

    def load_import_config(self, file_path: Optional[Path] = None) -> CardImportConfig:
        """
        Load card import settings.

        Settings may sit at the top level or under a `card_import:` section.
        A missing file yields the defaults.

        Raises:
            ConfigLoadError: File unreadable or not a YAML mapping
            ConfigValidationError: A setting has an invalid value
        """
        file_path = Path(file_path) if file_path is not None else self.default_path

        if not file_path.exists():
            logger.info(f"No card import settings at {file_path}, using defaults")
            return CardImportConfig()

        data = self.load_yaml(file_path)
        section = data.get(self.SECTION)
        if isinstance(section, dict):
            data = section

        try:
            config = CardImportConfig(**data)
        except ValidationError as e:
            raise ConfigValidationError(e.errors(), file_path)

        logger.info(f"Loaded card import settings from {file_path}")
        return config
