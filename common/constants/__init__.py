"""Service and business logic constants."""

# ============================================================================
# Query Signature Configuration
# ============================================================================

# Delay a search/filter value must stay unchanged before it affects a query (seconds)
QUERY_DEBOUNCE_SECONDS = 0.3

# Default number of records requested per page
DEFAULT_PAGE_SIZE = 30

# Maximum page size accepted by the content store
MAX_PAGE_SIZE = 100

# ============================================================================
# List Synchronizer Configuration
# ============================================================================

# Window during which a fresh partition or record is not refetched (seconds)
DEDUPE_INTERVAL_SECONDS = 60.0

# In-request retries for transient network failures
FETCH_RETRIES = 2

# Linear delay step between in-request retries (seconds)
FETCH_RETRY_DELAY_SECONDS = 0.2

# Consecutive failed loads after which automatic retries back off
BACKOFF_FAILURE_THRESHOLD = 3

# Base delay for exponential back-off of automatic retries (seconds)
BACKOFF_BASE_SECONDS = 1.0

# Maximum number of single records kept in the record cache (least recently used evicted)
RECORD_CACHE_MAX_ENTRIES = 500

# Maximum number of partitions kept without subscribers (least recently used released)
IDLE_PARTITIONS_MAX = 20

# ============================================================================
# Likes Ledger Configuration
# ============================================================================

# Fixed, closed set of like categories
LIKE_CATEGORIES = ("books", "ashaar", "ghazlen", "nazmen", "rubai", "shaer")

# Maximum number of record ids kept per category
LIKES_CAP_PER_CATEGORY = 500

# Time-to-live for fresh ledger reads (seconds)
FRESH_CACHE_TTL_SECONDS = 5.0

# Maximum number of users held in the fresh-read cache
FRESH_CACHE_MAX_ENTRIES = 500

# Minimum spacing of fresh reads triggered by an empty token likes claim (seconds)
EMPTY_CLAIM_REFRESH_SECONDS = 60.0

# Maximum attempts for a conditional ledger write
MAX_LEDGER_WRITE_ATTEMPTS = 3

# Base delay for exponential backoff retry logic (seconds)
RETRY_BASE_DELAY_SECONDS = 0.2

# ============================================================================
# Likes Client Configuration
# ============================================================================

# Minimum spacing between fresh likes fetches from one client (seconds)
FRESH_LIKES_THROTTLE_SECONDS = 3.0

# Clicks on the same like button closer than this are ignored (seconds)
LIKE_CLICK_DEBOUNCE_SECONDS = 0.3

# Key under which the one-time likes migration state is persisted
MIGRATION_FLAG_KEY = "likes_migrated_v1"

# Legacy local-storage keys holding liked items
LEGACY_LIKES_KEYS = ("Ghazlen", "Ashaar", "Nazmen", "Books", "Rubai", "Shura")

__all__ = [
    'QUERY_DEBOUNCE_SECONDS',
    'DEFAULT_PAGE_SIZE',
    'MAX_PAGE_SIZE',
    'DEDUPE_INTERVAL_SECONDS',
    'FETCH_RETRIES',
    'FETCH_RETRY_DELAY_SECONDS',
    'BACKOFF_FAILURE_THRESHOLD',
    'BACKOFF_BASE_SECONDS',
    'RECORD_CACHE_MAX_ENTRIES',
    'IDLE_PARTITIONS_MAX',
    'LIKE_CATEGORIES',
    'LIKES_CAP_PER_CATEGORY',
    'FRESH_CACHE_TTL_SECONDS',
    'FRESH_CACHE_MAX_ENTRIES',
    'EMPTY_CLAIM_REFRESH_SECONDS',
    'MAX_LEDGER_WRITE_ATTEMPTS',
    'RETRY_BASE_DELAY_SECONDS',
    'FRESH_LIKES_THROTTLE_SECONDS',
    'LIKE_CLICK_DEBOUNCE_SECONDS',
    'MIGRATION_FLAG_KEY',
    'LEGACY_LIKES_KEYS',
]
