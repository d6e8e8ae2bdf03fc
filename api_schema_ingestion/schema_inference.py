import datetime
import logging
import re
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urlsplit

import api_schema_ingestion.constants as constants
from api_schema_ingestion.config_loader import ConfigValidator
from api_schema_ingestion.errors import EmptyInputError
from api_schema_ingestion.json_utils import JsonUtils

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    UNKNOWN = "unknown"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    NUMBER = "number"
    DATE = "date"
    EMAIL = "email"
    URL = "url"
    STRING = "string"


# A field observed with several value types resolves to the first entry present.
TYPE_PRIORITY: List[FieldType] = [
    FieldType.STRING,
    FieldType.NUMBER,
    FieldType.INTEGER,
    FieldType.BOOLEAN,
    FieldType.DATE,
    FieldType.EMAIL,
    FieldType.URL,
]

VARCHAR_LIMIT = 255
TEXT_LIMIT = 65535
MEDIUMTEXT_LIMIT = 16777215

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2}(\.\d{3})?Z?)?$")
_COMMON_DATE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class FieldAnalysis:
    name: str
    type: FieldType
    storage_type: str
    nullable: bool
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    sample_values: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["type"] = self.type.value
        return out


@dataclass
class SchemaAnalysisResult:
    fields: List[FieldAnalysis]
    total_fields: int
    table_name: str

    def get_field(self, name: str) -> Optional[FieldAnalysis]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fields": [f.to_dict() for f in self.fields],
            "total_fields": self.total_fields,
            "table_name": self.table_name,
        }


def is_date_string(value: str) -> bool:
    if _ISO_DATE.match(value):
        try:
            datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
            return True
        except ValueError:
            return False
    match = _COMMON_DATE.match(value)
    if match:
        year, month, day = (int(g) for g in match.groups())
        try:
            datetime.date(year, month, day)
            return True
        except ValueError:
            return False
    return False


def is_email(value: str) -> bool:
    return _EMAIL.match(value) is not None


def is_url(value: str) -> bool:
    if not ConfigValidator.is_valid_url(value):
        return False
    try:
        return bool(urlsplit(value).hostname)
    except ValueError:
        return False


def classify_value(value: Any) -> FieldType:
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, int):
        return FieldType.INTEGER
    if isinstance(value, float):
        return FieldType.INTEGER if value.is_integer() else FieldType.NUMBER
    if isinstance(value, str):
        if is_date_string(value):
            return FieldType.DATE
        if is_email(value):
            return FieldType.EMAIL
        if is_url(value):
            return FieldType.URL
    return FieldType.STRING


def resolve_type(observed: Set[FieldType]) -> FieldType:
    for candidate in TYPE_PRIORITY:
        if candidate in observed:
            return candidate
    return FieldType.UNKNOWN


def _digits(value: Any) -> tuple[int, int]:
    """(integer digits, fractional digits) of a numeric value as it would be written out."""
    text = format(Decimal(repr(value)), "f") if isinstance(value, float) else str(value)
    text = text.lstrip("-+")
    whole, _, fraction = text.partition(".")
    return len(whole), len(fraction)


def decimal_shape(max_integer_digits: int, max_scale: int) -> tuple[int, int]:
    """
    (precision, scale) of a DECIMAL column wide enough for the widest integer part and
    the longest fraction seen, capped at the storage limits. Integer digits win over
    fractional ones when the cap is hit.
    """
    scale = min(max_scale, constants.MAX_DECIMAL_SCALE,
                max(0, constants.MAX_DECIMAL_PRECISION - max_integer_digits))
    precision = min(max_integer_digits + scale, constants.MAX_DECIMAL_PRECISION)
    return precision, scale


def storage_type_for(field_type: FieldType, max_length: Optional[int] = None,
                     precision: Optional[int] = None, scale: Optional[int] = None) -> str:
    if field_type == FieldType.BOOLEAN:
        return "BOOLEAN"
    if field_type == FieldType.INTEGER:
        return "BIGINT"
    if field_type == FieldType.NUMBER:
        if precision:
            return f"DECIMAL({precision},{scale or 0})"
        return "DECIMAL(10,2)"
    if field_type == FieldType.DATE:
        return "DATETIME"
    if field_type in (FieldType.EMAIL, FieldType.URL):
        length = max(max_length or 0, VARCHAR_LIMIT)
        return f"VARCHAR({length})" if length <= VARCHAR_LIMIT else "TEXT"
    if field_type == FieldType.STRING:
        if not max_length or max_length <= VARCHAR_LIMIT:
            return f"VARCHAR({VARCHAR_LIMIT})"
        if max_length <= TEXT_LIMIT:
            return "TEXT"
        if max_length <= MEDIUMTEXT_LIMIT:
            return "MEDIUMTEXT"
        return "LONGTEXT"
    return "TEXT"


def generate_table_name(session_id: str) -> str:
    return "data_" + re.sub(r"[^0-9A-Za-z]", "_", session_id or "")


class SchemaInferenceEngine:
    """
    Infers one column per flattened field from a batch of JSON records.

    Nested objects are flattened to parent_child names, arrays are kept as compact
    JSON strings. Each non-null value is classified on its own, then the field type
    is resolved through TYPE_PRIORITY, so a single free-form string turns the whole
    field into a string column.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self.logger = log or logger

    def analyze(self, records: Any, session_id: str = "") -> SchemaAnalysisResult:
        if not isinstance(records, list) or not records:
            raise EmptyInputError("No records to analyze, at least one record is required")

        field_values: Dict[str, List[Any]] = {}
        analysed = 0
        for index, record in enumerate(records):
            if not isinstance(record, dict):
                self.logger.debug(f"Skipping record {index}: expected an object, got {type(record).__name__}")
                continue
            analysed += 1
            for key, value in JsonUtils.flatten_json(record).items():
                field_values.setdefault(key, []).append(value)

        fields = [self.analyze_field(name, values, analysed) for name, values in field_values.items()]
        fields.sort(key=lambda f: f.name)

        self.logger.info(f"Inferred {len(fields)} fields from {analysed} of {len(records)} records")
        return SchemaAnalysisResult(
            fields=fields,
            total_fields=len(fields),
            table_name=generate_table_name(session_id),
        )

    def analyze_field(self, name: str, values: List[Any], record_count: Optional[int] = None) -> FieldAnalysis:
        non_null = [v for v in values if v is not None]
        nullable = len(non_null) < len(values) or (record_count is not None and len(values) < record_count)

        if not non_null:
            return FieldAnalysis(
                name=name,
                type=FieldType.UNKNOWN,
                storage_type="TEXT",
                nullable=True,
                sample_values=[None],
            )

        observed: Set[FieldType] = set()
        max_length = 0
        max_integer_digits = 0
        max_scale = 0
        for value in non_null:
            observed.add(classify_value(value))
            if isinstance(value, str):
                max_length = max(max_length, len(value))
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                integer_digits, scale = _digits(value)
                max_integer_digits = max(max_integer_digits, integer_digits)
                max_scale = max(max_scale, scale)

        field_type = resolve_type(observed)
        analysis = FieldAnalysis(
            name=name,
            type=field_type,
            storage_type="",
            nullable=nullable,
            sample_values=self._samples(non_null),
        )
        if field_type in (FieldType.STRING, FieldType.EMAIL, FieldType.URL):
            analysis.max_length = max_length
        elif field_type == FieldType.NUMBER:
            analysis.precision, analysis.scale = decimal_shape(max_integer_digits, max_scale)

        analysis.storage_type = storage_type_for(
            field_type, analysis.max_length, analysis.precision, analysis.scale
        )
        return analysis

    @staticmethod
    def _samples(values: List[Any]) -> List[Any]:
        samples: List[Any] = []
        for value in values:
            if len(samples) >= constants.SAMPLE_VALUES_LIMIT:
                break
            if not any(type(value) is type(s) and value == s for s in samples):
                samples.append(value)
        return samples
