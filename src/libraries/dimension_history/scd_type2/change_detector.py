"""
Change detection between staged source records and current dimension rows.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict
from pyspark.sql import DataFrame
from pyspark.sql.functions import col, lit, when
import logging

from ..common.config import DimensionConfig, ChangeType
from ..common.utils import build_key_condition

logger = logging.getLogger(__name__)

CHANGE_TYPE_COLUMN = "_change_type"
CURRENT_KEY_COLUMN = "_current_surrogate_key"
CURRENT_HASH_COLUMN = "_current_scd_hash"
CURRENT_START_COLUMN = "_current_effective_start"


@dataclass
class ChangePlan:
    """Source records classified against the current dimension rows."""

    classified: DataFrame

    def _of_type(self, change_type: ChangeType) -> DataFrame:
        return self.classified.filter(col(CHANGE_TYPE_COLUMN) == lit(change_type.value))

    @property
    def new_records(self) -> DataFrame:
        return self._of_type(ChangeType.NEW)

    @property
    def changed_records(self) -> DataFrame:
        return self._of_type(ChangeType.CHANGED)

    @property
    def unchanged_records(self) -> DataFrame:
        return self._of_type(ChangeType.UNCHANGED)

    @property
    def records_to_insert(self) -> DataFrame:
        return self.classified.filter(
            col(CHANGE_TYPE_COLUMN).isin(ChangeType.NEW.value, ChangeType.CHANGED.value)
        )

    def counts(self) -> Dict[str, int]:
        """Number of records per change type."""
        counts = {change_type.value: 0 for change_type in ChangeType}
        for row in self.classified.groupBy(CHANGE_TYPE_COLUMN).count().collect():
            counts[row[CHANGE_TYPE_COLUMN]] = row["count"]
        return counts


class ChangeDetector:
    """Classifies source records as NEW, CHANGED or UNCHANGED."""

    def __init__(self, config: DimensionConfig):
        """
        Initialize ChangeDetector with configuration.

        Args:
            config: Dimension configuration
        """
        self.config = config

    def detect_changes(self, source_df: DataFrame, current_df: DataFrame,
                       batch_ts: datetime) -> ChangePlan:
        """
        Create change plan by comparing fingerprints on the natural key.

        A current row that started at or after the batch processing time was
        written by this batch (or a later one); its source record is treated
        as UNCHANGED so a replayed batch inserts nothing twice.

        Args:
            source_df: Hashed, deduplicated source records
            current_df: Current dimension rows
            batch_ts: Batch processing timestamp

        Returns:
            ChangePlan with classified records
        """
        cfg = self.config
        logger.info(f"Detecting changes for {cfg.entity_type} at batch time {batch_ts}")

        current = current_df.select(
            *[col(c) for c in cfg.business_key_columns],
            col(cfg.surrogate_key_column).alias(CURRENT_KEY_COLUMN),
            col(cfg.scd_hash_column).alias(CURRENT_HASH_COLUMN),
            col(cfg.effective_start_column).alias(CURRENT_START_COLUMN)
        )

        joined = source_df.alias("source").join(
            current.alias("current"),
            build_key_condition(cfg.business_key_columns, "source", "current"),
            "left"
        )

        batch_time = lit(batch_ts).cast("timestamp")
        written_by_batch = col(CURRENT_START_COLUMN) >= batch_time
        same_hash = col(cfg.scd_hash_column) == col(CURRENT_HASH_COLUMN)

        classified = joined.select(
            col("source.*"),
            col(f"current.{CURRENT_KEY_COLUMN}"),
            col(f"current.{CURRENT_HASH_COLUMN}"),
            col(f"current.{CURRENT_START_COLUMN}")
        ).withColumn(
            CHANGE_TYPE_COLUMN,
            when(col(CURRENT_KEY_COLUMN).isNull(), lit(ChangeType.NEW.value))
            .when(written_by_batch, lit(ChangeType.UNCHANGED.value))
            .when(same_hash, lit(ChangeType.UNCHANGED.value))
            .otherwise(lit(ChangeType.CHANGED.value))
        )

        replayed = classified.filter(
            col(CURRENT_KEY_COLUMN).isNotNull() & written_by_batch & ~same_hash
        ).count()
        if replayed > 0:
            logger.warning(
                f"{replayed} {cfg.entity_type} records differ from rows already written at or after "
                f"{batch_ts}; treating them as unchanged"
            )

        return ChangePlan(classified=classified)
