import os
from pathlib import Path
from string import Template
from typing import Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from musicdedup.models.config import DedupSettings, FuzzyMatchConfig
from musicdedup.utils.exceptions import ConfigurationError, ConfigValidationError

logger = structlog.get_logger()


class ConfigManager:
    """Loads detection settings from a YAML file"""

    def __init__(self, config_path: str = "config/dedup_config.yaml"):
        self.config_path = Path(config_path)
        self.env_loaded = False
        self._settings: Optional[DedupSettings] = None

    def load_settings(self) -> DedupSettings:
        """Load and validate settings"""
        if self._settings:
            return self._settings

        # 1. Load environment
        if not self.env_loaded:  # pragma: no cover
            load_dotenv()
            self.env_loaded = True

        # 2. Check file existence
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        # 3. Read YAML
        try:
            raw_content = self.config_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigValidationError(f"Failed to read config file: {e}") from e

        # 4. Substitute ${VAR} references, leaving unknown ones in place
        try:
            substituted = Template(raw_content).safe_substitute(os.environ)
            data = yaml.safe_load(substituted) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}") from e

        if not isinstance(data, dict):
            raise ConfigValidationError("Configuration root must be a mapping")

        # 5. Validate with Pydantic
        try:
            settings = DedupSettings(**data)
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid configuration: {e}") from e

        # Overrides are only checked once merged onto the profile
        try:
            match_config = settings.build_match_config()
        except ConfigurationError as e:
            raise ConfigValidationError(str(e)) from e

        self._settings = settings
        logger.info(
            "config_loaded",
            path=str(self.config_path),
            profile=match_config.name,
            workers=settings.workers.max_workers,
        )
        return settings

    def load_match_config(self) -> FuzzyMatchConfig:
        """Resolve the file's profile and overrides into a matching config"""
        return self.load_settings().build_match_config()
