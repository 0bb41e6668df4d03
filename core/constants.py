"""
Application-wide constants for the TCG Price Tracker.

Centralizes magic numbers and default values shared by the service and API layers.
"""

# =============================================================================
# Network
# =============================================================================

# Default timeout for API requests (seconds)
API_TIMEOUT_DEFAULT = 10

# Timeout for joining the queue worker on shutdown
THREAD_JOIN_TIMEOUT = 2.0

# Maximum cached responses per API client before LRU eviction
CACHE_MAX_SIZE = 1000


# =============================================================================
# External endpoints
# =============================================================================

POKEMON_TCG_API_URL = "https://api.pokemontcg.io/v2"

# Table holding card rows and their current prices
CARDS_TABLE = "cards"


# =============================================================================
# Price update queue
# =============================================================================

# Throughput used for queue completion estimates
REQUESTS_PER_MINUTE_DEFAULT = 30

# Cards updated concurrently per burst
BURST_SIZE_DEFAULT = 5

# Minimum gap between bursts (seconds)
COOLDOWN_SECONDS_DEFAULT = 2.0

# tcg_price above this is high priority
HIGH_VALUE_THRESHOLD = 50.0

# tcg_price at or above this (and not high) is medium priority
MEDIUM_VALUE_THRESHOLD = 10.0

# Market price lookup order for tcgplayer price variants
PRICE_VARIANT_ORDER = (
    "normal",
    "holofoil",
    "reverseHolofoil",
    "1stEditionHolofoil",
    "unlimited",
)

# Columns read when selecting cards for an update
CARD_UPDATE_COLUMNS = "id, name, set_id, tcg_price, price_updated_at"


# =============================================================================
# API responses
# =============================================================================

QUEUE_STATS_FALLBACK_MESSAGE = "Failed to get queue statistics"


# =============================================================================
# Card and set sync
# =============================================================================

SETS_TABLE = "sets"
INVENTORY_TABLE = "inventory_cards"
CARD_VARIATIONS_TABLE = "card_variations"

# Sets synced concurrently per batch
SYNC_BATCH_SIZE_DEFAULT = 5

# Pause between set batches (seconds)
SYNC_COOLDOWN_SECONDS_DEFAULT = 5.0

# Rows per card upsert request
CARD_UPSERT_BATCH_SIZE = 100

# Inventory cards in a set above these make its sync high / medium priority
SYNC_HIGH_INVENTORY_THRESHOLD = 50
SYNC_MEDIUM_INVENTORY_THRESHOLD = 10

# Page size for card listings from the Pokemon TCG API (its maximum)
TCG_PAGE_SIZE = 250
