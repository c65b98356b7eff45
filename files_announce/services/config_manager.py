import os
from pathlib import Path
from string import Template
from typing import Any, Dict, Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from files_announce.models.options import AnnounceOptions
from files_announce.utils.exceptions import ConfigError

logger = structlog.get_logger()

DEFAULT_OPTIONS_FILE = "announce_options.yaml"


class OptionsManager:
    """Loads announcement options, merging overrides over defaults"""

    def __init__(
        self,
        options_path: Optional[str] = None,
        load_env: bool = True,
    ):
        self.options_path = Path(options_path or DEFAULT_OPTIONS_FILE)
        self.env_loaded = not load_env
        self._options: Optional[AnnounceOptions] = None

    @property
    def base_dir(self) -> Path:
        """Directory relative template paths are resolved against"""
        return self.options_path.resolve().parent

    def load_options(self) -> AnnounceOptions:
        """Load and validate options

        A missing options file is not an error: every option has a default.

        Raises:
            ConfigError: If the file is unreadable, malformed or invalid
        """
        if self._options:
            return self._options

        # 1. Load environment
        if not self.env_loaded:  # pragma: no cover
            load_dotenv()
            self.env_loaded = True

        # 2. Missing file means defaults
        if not self.options_path.exists():
            logger.info("options_file_absent", path=str(self.options_path))
            self._options = AnnounceOptions()
            return self._options

        # 3. Read YAML
        try:
            with open(self.options_path, encoding="utf-8") as f:
                raw_content = f.read()
        except OSError as e:
            raise ConfigError(f"Failed to read options file: {e}")

        # 4. Substitute env vars and parse
        try:
            template = Template(raw_content)
            substituted_content = template.safe_substitute(os.environ)
            options_data = yaml.safe_load(substituted_content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse options file: {e}")

        self._options = self.build_options(options_data)
        logger.info(
            "options_loaded",
            path=str(self.options_path),
            overrides=sorted(options_data.keys()) if options_data else [],
        )
        return self._options

    @staticmethod
    def build_options(options_data: Any) -> AnnounceOptions:
        """Validate raw override data into options

        Raises:
            ConfigError: If the data is not a mapping or fails validation
        """
        if options_data is None:
            options_data = {}
        if not isinstance(options_data, dict):
            raise ConfigError(
                f"Options must be a mapping, got {type(options_data).__name__}"
            )

        overrides: Dict[str, Any] = {
            k: v for k, v in options_data.items() if v is not None
        }
        try:
            return AnnounceOptions.model_validate(overrides)
        except ValidationError as e:
            raise ConfigError(f"Invalid options: {e}")
