import json
import re
from pathlib import Path
from typing import Any, Dict, Optional

from .app_context import FetchConfig, PaginationType
from .errors import ConfigurationError
import api_schema_ingestion.constants as constants

CONFIG_SECTION = "fetch-config"

_INT_KEYS = ("page_field_start_value", "page_size", "step_size", "end_page", "max_pages")


class ConfigValidator:
    def _to_bool(self, value):
        """Convert various string representations to boolean."""
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            v = value.strip().lower()
            if v in ("true", "1", "yes", "y"):
                return True
            elif v in ("false", "0", "no", "n", ""):
                return False
        raise ConfigurationError(f"Invalid boolean value: {value!r}")

    def _to_int(self, key: str, value) -> Optional[int]:
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            raise ConfigurationError(f"Invalid integer value for {key}: {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid integer value for {key}: {value!r}") from None

    @staticmethod
    def validate(config: dict) -> None:
        for key in constants.REQUIRED_KEYS_CONFIG:
            if key not in config:
                raise ConfigurationError(f"Required key: {key} is missing")
            if config[key] == "" or config[key] is None:
                raise ConfigurationError(f"Required key: {key} is empty/has no value")
        if not ConfigValidator.is_valid_url(config["api_url"]):
            raise ConfigurationError(f"Invalid url: {config['api_url']}")
        ConfigValidator.validate_method(config.get("method", "GET"))
        ConfigValidator.validate_pagination_type(config.get("pagination_type", PaginationType.PAGE.value))

    @staticmethod
    def is_valid_url(url):
        pattern = re.compile(
            r'^(https?|ftp)://[^\s/$.?#].[^\s]*$',
            re.IGNORECASE
        )
        return re.match(pattern, url) is not None

    @staticmethod
    def validate_method(method: str) -> None:
        if str(method).upper() not in constants.SUPPORTED_METHODS:
            raise ConfigurationError(f"Invalid method: {method}")

    @staticmethod
    def validate_pagination_type(pagination_type: str) -> None:
        if str(pagination_type) not in constants.SUPPORTED_PAGINATION_TYPES:
            raise ConfigurationError(f"Invalid pagination type: {pagination_type}")

    @staticmethod
    def validate_fetch_config(config: FetchConfig) -> None:
        """Checks that must pass before a run sends its first request."""
        if not config.api_url or not ConfigValidator.is_valid_url(config.api_url):
            raise ConfigurationError(f"Invalid url: {config.api_url!r}")
        ConfigValidator.validate_method(config.method)
        ConfigValidator.validate_pagination_type(
            config.pagination_type.value if isinstance(config.pagination_type, PaginationType)
            else config.pagination_type
        )
        if not isinstance(config.page_size, int) or not 0 < config.page_size <= constants.MAX_PAGE_SIZE:
            raise ConfigurationError(
                f"page_size must be between 1 and {constants.MAX_PAGE_SIZE}, got {config.page_size!r}"
            )
        if config.step_size is not None and config.step_size <= 0:
            raise ConfigurationError(f"step_size must be positive, got {config.step_size}")
        if config.max_pages <= 0:
            raise ConfigurationError(f"max_pages must be positive, got {config.max_pages}")
        if config.enable_pagination and not config.page_field:
            raise ConfigurationError("page_field is required when pagination is enabled")


class ConfigLoader:
    """
    Loads a JSON config file into a FetchConfig.

    Expected layout:
        {"session-id": "...", "fetch-config": {"api_url": "...", "enable_pagination": true, ...}}
    """

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Config file {self.path} is not valid JSON: {e}") from e

    def load_session_id(self) -> str:
        return str(self._read().get("session-id") or Path(self.path).stem)

    def load_fetch_config(self) -> FetchConfig:
        raw = self._read()
        if CONFIG_SECTION not in raw:
            raise ConfigurationError(f"Config file {self.path} has no '{CONFIG_SECTION}' section")
        cfg = raw[CONFIG_SECTION]
        ConfigValidator.validate(cfg)
        validator = ConfigValidator()

        kwargs: Dict[str, Any] = {
            "api_url": cfg["api_url"],
            "method": str(cfg.get("method", "GET")).upper(),
            "headers": dict(cfg.get("headers") or {}),
            "query_params": {k: str(v) for k, v in (cfg.get("query_params") or {}).items()},
            "data": cfg.get("data"),
            "enable_pagination": validator._to_bool(cfg.get("enable_pagination", False)),
            "pagination_type": PaginationType(cfg.get("pagination_type", PaginationType.PAGE.value)),
            "page_field": cfg.get("page_field") or None,
            "total_field": cfg.get("total_field") or None,
            "data_path": cfg.get("data_path") or None,
        }
        if cfg.get("size_field"):
            kwargs["size_field"] = cfg["size_field"]
        for key in ("page_field_synonyms", "size_field_synonyms"):
            if cfg.get(key):
                kwargs[key] = tuple(cfg[key])
        for key in _INT_KEYS:
            value = validator._to_int(key, cfg.get(key))
            if value is not None:
                kwargs[key] = value

        config = FetchConfig(**kwargs)
        ConfigValidator.validate_fetch_config(config)
        return config
