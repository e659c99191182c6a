"""
SCD Type 2 processing modules.
"""

from .scd_processor import SCDProcessor
from .hash_manager import HashManager
from .date_manager import DateManager, OPEN_END_TS
from .validators import SCDValidator
from .source_deduplicator import SourceDeduplicator
from .change_detector import ChangeDetector, ChangePlan
from .history_closer import HistoryCloser
from .record_inserter import CurrentRowInserter
from .dimension_store import DimensionStore, DeltaDimensionStore, DataFrameDimensionStore

__all__ = [
    "SCDProcessor",
    "HashManager",
    "DateManager",
    "OPEN_END_TS",
    "SCDValidator",
    "SourceDeduplicator",
    "ChangeDetector",
    "ChangePlan",
    "HistoryCloser",
    "CurrentRowInserter",
    "DimensionStore",
    "DeltaDimensionStore",
    "DataFrameDimensionStore"
]
