"""
Construction of new current dimension rows.
"""

from datetime import datetime
from pyspark.sql import DataFrame
from pyspark.sql.functions import coalesce, col, lit
import logging

from ..common.config import DimensionConfig
from ..common.utils import blank_to_null
from .date_manager import DateManager

logger = logging.getLogger(__name__)


class CurrentRowInserter:
    """Turns NEW and CHANGED source records into current dimension rows."""

    def __init__(self, config: DimensionConfig, date_manager: DateManager = None):
        """
        Initialize CurrentRowInserter with configuration.

        Args:
            config: Dimension configuration
            date_manager: Date manager (created from config if omitted)
        """
        self.config = config
        self.date_manager = date_manager or DateManager(config)

    def build_insert_rows(self, records: DataFrame, batch_ts: datetime) -> DataFrame:
        """
        Build rows for insertion.

        The result is projected onto the explicit target column list, so
        staging columns outside it never reach the dimension and reordered
        staging columns cannot shift values.

        Args:
            records: Hashed source records classified NEW or CHANGED
            batch_ts: Batch processing timestamp

        Returns:
            DataFrame with exactly the target columns, in target order
        """
        cfg = self.config

        df = self.date_manager.generate_surrogate_keys(records, batch_ts)
        df = self.date_manager.set_effective_start(df, batch_ts)
        df = self.date_manager.set_effective_end_date(df)
        df = self.date_manager.set_current_flag(df, True)
        df = self.date_manager.set_audit_timestamps(df, batch_ts)
        df = df.withColumn(cfg.source_system_column, self._source_system(records))

        return df.select(*[col(c) for c in cfg.target_columns])

    def _source_system(self, records: DataFrame):
        default = lit(self.config.default_source_system)
        if self.config.source_system_column in records.columns:
            return coalesce(blank_to_null(col(self.config.source_system_column)), default)
        return default
