import json
import re
from typing import Any, Dict, List, Optional

from api_schema_ingestion.errors import UnexpectedResponseShapeError

_INDEXED_TOKEN = re.compile(r"^([^\[]*)\[(\d+)\]$")


class JsonUtils:
    """
    Stateless JSON helpers shared by the fetcher and the schema inference:
      - flattening records into single-level column names
      - compact serialization of array values
      - resolving simple paths into a response body

    Path behavior:
      - Dot notation, with optional list indexes: "data.items", "[0].data.rank_list",
        "pages[2].rows"
      - A missing key or index raises UnexpectedResponseShapeError
    """

    @staticmethod
    def dumps_compact(value: Any) -> str:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)

    @staticmethod
    def flatten_json(nested: Any, parent_key: str = "", sep: str = "_") -> Dict[str, Any]:
        items: List[tuple[str, Any]] = []
        if isinstance(nested, dict):
            for k, v in nested.items():
                new_key = f"{parent_key}{sep}{k}" if parent_key else str(k)
                if isinstance(v, dict):
                    items.extend(JsonUtils.flatten_json(v, new_key, sep=sep).items())
                elif isinstance(v, list):
                    items.append((new_key, JsonUtils.dumps_compact(v)))
                else:
                    items.append((new_key, v))
        elif isinstance(nested, list):
            items.append((parent_key, JsonUtils.dumps_compact(nested)))
        else:
            items.append((parent_key, nested))
        return dict(items)

    @staticmethod
    def _tokens(path: str) -> List[Any]:
        tokens: List[Any] = []
        for part in (p for p in path.split(".") if p):
            match = _INDEXED_TOKEN.match(part)
            if match:
                key, index = match.groups()
                if key:
                    tokens.append(key)
                tokens.append(int(index))
            else:
                tokens.append(part)
        return tokens

    @staticmethod
    def extract_path(obj: Any, path: Optional[str]) -> Any:
        if not path:
            return obj

        current = obj
        for tok in JsonUtils._tokens(path):
            if isinstance(tok, int):
                if not isinstance(current, list) or tok >= len(current):
                    raise UnexpectedResponseShapeError(f"index [{tok}] of path '{path}' does not exist")
                current = current[tok]
            else:
                if not isinstance(current, dict) or tok not in current:
                    raise UnexpectedResponseShapeError(f"'{tok}' of path '{path}' does not exist")
                current = current[tok]
            if current is None:
                raise UnexpectedResponseShapeError(f"'{tok}' of path '{path}' is null")
        return current

    @staticmethod
    def first_path(obj: Any, path: Optional[str]) -> Any:
        """Like extract_path, but returns None when the path cannot be resolved."""
        try:
            return JsonUtils.extract_path(obj, path)
        except UnexpectedResponseShapeError:
            return None
