"""Loading of tgw-converge.yaml."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from tgw_converge.utils.errors import ConfigurationError

from .models import AWSConfig, LoggingConfig, PollingConfig, Settings

DEFAULT_CONFIG_FILE = "tgw-converge.yaml"

SECTIONS = {
    "aws": AWSConfig,
    "polling": PollingConfig,
    "logging": LoggingConfig,
}

# aws.<field> filled from the environment when the file leaves it unset
AWS_ENVIRONMENT = {
    "region": "AWS_REGION",
    "profile": "AWS_PROFILE",
}


class ConfigValidationError(ConfigurationError):
    """The configuration file could not be parsed or failed validation.

    ``errors`` holds one ``{"loc": [...], "msg": ...}`` entry per problem,
    with ``loc`` starting at the top-level section.
    """

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def __str__(self) -> str:
        lines = [self.message]
        if self.errors:
            lines.append("")
        for error in self.errors:
            location = " -> ".join(str(part) for part in error["loc"])
            lines.append(f"  • {location}: {error['msg']}")
        return "\n".join(lines)


def _section_errors(section: str, model, value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, dict):
        return [{"loc": [section], "msg": f"'{section}' must be a mapping"}]
    try:
        model(**value)
    except ValidationError as e:
        return [{"loc": [section, *error["loc"]], "msg": error["msg"]} for error in e.errors()]
    return []


class Config:
    """tgw-converge.yaml, validated section by section.

    A missing file means defaults unless ``required`` is set.
    """

    def __init__(self, config_path: str = DEFAULT_CONFIG_FILE, required: bool = False):
        self.config_path = Path(config_path)
        self.required = required
        self.data: Dict[str, Any] = {}
        self.settings: Settings = Settings()

    def load(self) -> "Config":
        """Read, validate and apply the environment.

        Returns:
            Self for method chaining

        Raises:
            ConfigValidationError: The file is not valid YAML or fails validation
            FileNotFoundError: The file is required and does not exist
        """
        self.data = self._read()

        errors = self.validate()
        if errors:
            raise ConfigValidationError(
                f"Configuration validation failed with {len(errors)} error(s)", errors
            )

        # Empty sections ("aws:" with nothing under it) mean defaults
        self.settings = Settings(**{key: value for key, value in self.data.items() if value is not None})
        self._apply_environment()
        return self

    def _read(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            if self.required:
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
            return {}

        try:
            data = yaml.safe_load(self.config_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML in {self.config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigValidationError(f"{self.config_path} must contain a mapping at the top level")
        return data

    def validate(self) -> List[Dict[str, Any]]:
        """All problems with the loaded data, in file order (empty when valid)."""
        errors: List[Dict[str, Any]] = []
        for section, value in self.data.items():
            model = SECTIONS.get(section)
            if model is None:
                errors.append({"loc": [section], "msg": f"Unknown section '{section}'"})
            elif value is not None:
                errors.extend(_section_errors(section, model, value))
        return errors

    def _apply_environment(self):
        updates = {
            field: os.environ[variable]
            for field, variable in AWS_ENVIRONMENT.items()
            if getattr(self.settings.aws, field) is None and os.environ.get(variable)
        }
        if updates:
            self.settings.aws = self.settings.aws.model_copy(update=updates)
