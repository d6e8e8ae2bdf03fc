# Tunables for an ingestion run. Read through the module (constants.X) so they
# can be overridden at runtime.

RETRIES = 3
BACKOFF_FACTOR = 1.0
TIMEOUT = 30
THROTTLE = 0.1
SMOKE_TEST_RETRIES = 2

MAX_PAGES = 1000
MAX_PAGE_SIZE = 1000
DEFAULT_PAGE_SIZE = 20
DEFAULT_PAGE_FIELD = "page"
DEFAULT_SIZE_FIELD = "size"

# Page durations kept for the moving average behind the remaining-time estimate.
PAGE_TIME_WINDOW = 10

SUPPORTED_METHODS = ("GET", "POST", "PUT", "DELETE")
SUPPORTED_PAGINATION_TYPES = ("page", "offset")

PAGE_FIELD_SYNONYMS = ("page", "pageNum", "pageIndex", "pageNo", "p", "current", "offset", "start")
SIZE_FIELD_SYNONYMS = ("size", "pageSize", "limit", "_limit", "count", "rows", "per_page", "ps")

ENVELOPE_KEYS = ("data", "items", "results")

REQUIRED_KEYS_CONFIG = ["api_url"]

SAMPLE_VALUES_LIMIT = 5
MAX_DECIMAL_PRECISION = 65
MAX_DECIMAL_SCALE = 30
