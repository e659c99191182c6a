"""
End-dating of current dimension rows whose source record changed.
"""

from datetime import datetime
from typing import Tuple
from pyspark.sql import DataFrame
from pyspark.sql.functions import col, lit
import logging

from ..common.config import DimensionConfig
from ..common.exceptions import ConsistencyError
from .change_detector import CURRENT_KEY_COLUMN
from .date_manager import DateManager

logger = logging.getLogger(__name__)

SAMPLE_KEY_LIMIT = 10


class HistoryCloser:
    """Builds and reconciles closures of current dimension rows."""

    def __init__(self, config: DimensionConfig, date_manager: DateManager = None):
        """
        Initialize HistoryCloser with configuration.

        Args:
            config: Dimension configuration
            date_manager: Date manager (created from config if omitted)
        """
        self.config = config
        self.date_manager = date_manager or DateManager(config)

    def build_closures(self, changed_records: DataFrame, batch_ts: datetime) -> DataFrame:
        """
        Build one closure per changed record.

        The end timestamp is the full batch processing time, so several
        versions created on the same calendar day keep their order.

        Args:
            changed_records: Records classified CHANGED by the change detector
            batch_ts: Batch processing timestamp

        Returns:
            DataFrame of surrogate key, business keys, effective end and modified timestamp
        """
        cfg = self.config
        closures = changed_records.select(
            col(CURRENT_KEY_COLUMN).alias(cfg.surrogate_key_column),
            *[col(c) for c in cfg.business_key_columns]
        )
        closures = self.date_manager.set_effective_end_date(closures, batch_ts)
        return closures.withColumn(cfg.modified_ts_column, lit(batch_ts).cast("timestamp"))

    def reconcile(self, closures: DataFrame, inserts: DataFrame, latest_rows: DataFrame,
                  batch_ts: datetime) -> Tuple[DataFrame, DataFrame, int]:
        """
        Check closures against the latest state of the rows they target.

        Rows closed within the grace window of the batch time were closed by
        a near-concurrent run of the same batch: the closure and the matching
        insert are both dropped. Rows closed outside the window, or no longer
        present, mean history changed underneath this load.

        Args:
            closures: Output of build_closures
            inserts: Rows about to be inserted
            latest_rows: Latest dimension rows for the targeted surrogate keys
            batch_ts: Batch processing timestamp

        Returns:
            Tuple of (closures, inserts, number of closures already applied)

        Raises:
            ConsistencyError: If a targeted row was closed outside the grace window
        """
        cfg = self.config
        grace = self.date_manager.grace_window

        latest = latest_rows.select(
            col(cfg.surrogate_key_column),
            col(cfg.is_current_column).alias("_latest_is_current"),
            col(cfg.effective_end_column).alias("_latest_end")
        )
        state = closures.join(latest, cfg.surrogate_key_column, "left")

        within_grace = col("_latest_end").between(
            lit(batch_ts - grace).cast("timestamp"),
            lit(batch_ts + grace).cast("timestamp")
        )
        still_current = col("_latest_is_current") == lit(True)
        recently_closed = ~still_current & within_grace

        stale = state.filter(
            col("_latest_is_current").isNull() | (~still_current & ~within_grace)
        ).limit(SAMPLE_KEY_LIMIT).collect()
        if stale:
            keys = [tuple(row[c] for c in cfg.business_key_columns) for row in stale]
            raise ConsistencyError(
                f"{cfg.entity_type}: rows expected to be current were closed or removed "
                f"outside the {cfg.close_grace_minutes} minute grace window, e.g. {keys}",
                cfg.entity_type,
                keys
            )

        already_closed = state.filter(recently_closed).select(*cfg.business_key_columns)
        already_closed_count = already_closed.count()

        if already_closed_count == 0:
            return closures, inserts, 0

        logger.warning(
            f"{already_closed_count} {cfg.entity_type} rows were already closed by a concurrent run "
            f"of this batch; skipping their closure and insert"
        )
        keys = cfg.business_key_columns
        return (closures.join(already_closed, keys, "left_anti"),
                inserts.join(already_closed, keys, "left_anti"),
                already_closed_count)
