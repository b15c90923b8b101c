from .base import Base
from .ticker import Ticker
from .price_cache import PriceCache
from .index import IndexDefinition, CompositionEntry, HistoryPoint, RebalanceLogEntry
from .checkpoint import CronCheckpoint, GLOBAL_INDEX_KEY
