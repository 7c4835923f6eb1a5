"""
Centralized constants for ingestion and stats (Encapsulate What Changes).

Change enumerations or caps here instead of scattering literals across services and routes.
Env-driven limits live in coinpulse.config.
"""
from decimal import Decimal

# Currencies accepted on events and machines
CURRENCIES = ("EUR", "USD", "COP", "MXN", "ARS")
DEFAULT_CURRENCY = "EUR"

# Machine status values; only "active" accepts events
MACHINE_STATUS_ACTIVE = "active"
MACHINE_STATUSES = ("active", "inactive", "maintenance", "broken")

# Event kinds: a raw coin pulse or a completed game
GAME_TYPE_PULSE = "pulse"
GAME_TYPES = ("pulse", "individual", "pairs", "teams")

# Money columns are Numeric(12, 2)
MONEY_QUANT = Decimal("0.01")
# Averages on rollups and stats are rounded to this many places on both read paths
AVERAGE_DIGITS = 4

# Reject events stamped further than this in the future (clock skew allowance)
MAX_FUTURE_SKEW_SECONDS = 300

# Query caps
EVENTS_DEFAULT_PAGE_LIMIT = 50
TOP_MACHINES_DEFAULT = 10
TOP_MACHINES_MAX = 100
REALTIME_LATEST_EVENTS = 10
HOURS_PER_DAY = 24
