import pytest
import json

from api_schema_ingestion.app_context import FetchConfig, PaginationType
from api_schema_ingestion.config_loader import ConfigValidator, ConfigLoader
from api_schema_ingestion.errors import ConfigurationError


def write_config(tmp_path, section, session_id="sess-1"):
    file_path = tmp_path / "config.json"
    content = {"fetch-config": section}
    if session_id is not None:
        content["session-id"] = session_id
    file_path.write_text(json.dumps(content))
    return str(file_path)


def test_to_bool_valid_cases():
    cv = ConfigValidator()
    assert cv._to_bool(True) is True
    assert cv._to_bool(False) is False
    assert cv._to_bool("true") is True
    assert cv._to_bool("yes") is True
    assert cv._to_bool("1") is True
    assert cv._to_bool("false") is False
    assert cv._to_bool("no") is False
    assert cv._to_bool("") is False


def test_to_bool_invalid_case():
    cv = ConfigValidator()
    with pytest.raises(ValueError):
        cv._to_bool("maybe")


def test_is_valid_url():
    assert ConfigValidator.is_valid_url("http://example.com")
    assert ConfigValidator.is_valid_url("https://example.com/list?userId=1")
    assert not ConfigValidator.is_valid_url("example.com")
    assert not ConfigValidator.is_valid_url("http:/example.com")


def test_validate_missing_key():
    with pytest.raises(ConfigurationError) as exc:
        ConfigValidator.validate({"method": "GET"})
    assert "Required key" in str(exc.value)


def test_validate_empty_value():
    with pytest.raises(ConfigurationError) as exc:
        ConfigValidator.validate({"api_url": ""})
    assert "empty/has no value" in str(exc.value)


def test_validate_invalid_url():
    with pytest.raises(ConfigurationError) as exc:
        ConfigValidator.validate({"api_url": "invalid-url"})
    assert "Invalid url" in str(exc.value)


def test_validate_invalid_method():
    with pytest.raises(ConfigurationError) as exc:
        ConfigValidator.validate({"api_url": "https://example.com", "method": "PATCH"})
    assert "Invalid method" in str(exc.value)


def test_validate_fetch_config_requires_page_field():
    with pytest.raises(ConfigurationError) as exc:
        ConfigValidator.validate_fetch_config(FetchConfig(api_url="https://example.com", enable_pagination=True))
    assert "page_field" in str(exc.value)


@pytest.mark.parametrize("page_size", [0, -5, 1001])
def test_validate_fetch_config_page_size_bounds(page_size):
    with pytest.raises(ConfigurationError):
        ConfigValidator.validate_fetch_config(FetchConfig(api_url="https://example.com", page_size=page_size))


def test_load_fetch_config(tmp_path):
    path = write_config(tmp_path, {
        "api_url": "https://api.example.com/list?userId=1",
        "method": "get",
        "headers": {"Authorization": "Bearer token"},
        "query_params": {"lang": "en", "limit": 5},
        "enable_pagination": "true",
        "pagination_type": "offset",
        "page_field": "offset",
        "size_field": "limit",
        "page_size": "50",
        "total_field": "meta.total",
        "data_path": "data.rows",
    })
    loader = ConfigLoader(path)
    config = loader.load_fetch_config()

    assert config.api_url == "https://api.example.com/list?userId=1"
    assert config.method == "GET"
    assert config.headers == {"Authorization": "Bearer token"}
    assert config.query_params == {"lang": "en", "limit": "5"}
    assert config.enable_pagination is True
    assert config.pagination_type == PaginationType.OFFSET
    assert config.page_size == 50
    assert config.start_value == 0
    assert config.total_field == "meta.total"
    assert config.data_path == "data.rows"
    assert loader.load_session_id() == "sess-1"


def test_load_fetch_config_defaults(tmp_path):
    path = write_config(tmp_path, {"api_url": "https://api.example.com/items"}, session_id=None)
    loader = ConfigLoader(path)
    config = loader.load_fetch_config()
    assert config.method == "GET"
    assert config.enable_pagination is False
    assert config.page_size == 20
    assert config.start_value == 1
    assert loader.load_session_id() == "config"


def test_load_custom_synonyms(tmp_path):
    path = write_config(tmp_path, {
        "api_url": "https://api.example.com/items",
        "page_field_synonyms": ["cursorPage"],
    })
    config = ConfigLoader(path).load_fetch_config()
    assert config.page_field_synonyms == ("cursorPage",)


def test_pagination_without_page_field(tmp_path):
    path = write_config(tmp_path, {"api_url": "https://api.example.com/items", "enable_pagination": True})
    with pytest.raises(ConfigurationError):
        ConfigLoader(path).load_fetch_config()


def test_invalid_pagination_type(tmp_path):
    path = write_config(tmp_path, {
        "api_url": "https://api.example.com/items",
        "pagination_type": "cursor",
    })
    with pytest.raises(ConfigurationError) as exc:
        ConfigLoader(path).load_fetch_config()
    assert "Invalid pagination type" in str(exc.value)


def test_invalid_integer_value(tmp_path):
    path = write_config(tmp_path, {"api_url": "https://api.example.com/items", "page_size": "twenty"})
    with pytest.raises(ConfigurationError):
        ConfigLoader(path).load_fetch_config()


def test_missing_section(tmp_path):
    file_path = tmp_path / "config.json"
    file_path.write_text(json.dumps({"something-else": {}}))
    with pytest.raises(ConfigurationError):
        ConfigLoader(str(file_path)).load_fetch_config()


def test_not_json(tmp_path):
    file_path = tmp_path / "config.json"
    file_path.write_text("{not json")
    with pytest.raises(ConfigurationError):
        ConfigLoader(str(file_path)).load_fetch_config()
