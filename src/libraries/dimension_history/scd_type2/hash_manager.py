"""
Hash management utilities for SCD processing.
"""

from typing import List
from pyspark.sql import Column, DataFrame
from pyspark.sql.functions import col, expr, md5, sha2, struct, to_json
from pyspark.sql.types import StructType, TimestampType
import logging

from ..common.config import DimensionConfig
from ..common.utils import blank_to_null

logger = logging.getLogger(__name__)


class HashManager:
    """Computes the content fingerprint used for change detection."""

    def __init__(self, config: DimensionConfig):
        """
        Initialize HashManager with configuration.

        Args:
            config: Dimension configuration
        """
        self.config = config
        self.hash_algorithm = config.hash_algorithm.lower()

        if self.hash_algorithm not in ["sha256", "md5"]:
            raise ValueError(f"Unsupported hash algorithm: {self.hash_algorithm}")

    def get_hash_columns(self) -> List[str]:
        """
        Get the tracked columns in the order they are fingerprinted.

        Sorting by name makes the fingerprint independent of column order
        in both the configuration and the source.

        Returns:
            Sorted list of tracked column names
        """
        return sorted(self.config.tracked_columns)

    def fingerprint_expression(self, schema: StructType) -> Column:
        """
        Build the fingerprint expression over the tracked columns.

        Null, empty and whitespace-only values become null; other values keep
        their exact string form. Timestamps are taken as microseconds since the
        epoch so the session time zone does not affect the result. The columns
        are serialised as a JSON object keyed by column name, which omits null
        fields.

        Args:
            schema: Schema of the DataFrame being fingerprinted

        Returns:
            Column holding the hex digest
        """
        timestamp_columns = {f.name for f in schema.fields if isinstance(f.dataType, TimestampType)}
        fields = []
        for c in self.get_hash_columns():
            value = expr(f"unix_micros(`{c}`)") if c in timestamp_columns else col(c)
            fields.append(blank_to_null(value).alias(c))
        payload = to_json(struct(*fields))

        if self.hash_algorithm == "sha256":
            return sha2(payload, 256)
        return md5(payload)

    def compute_scd_hash(self, df: DataFrame) -> DataFrame:
        """
        Compute SCD hash for the tracked columns.

        Args:
            df: Input DataFrame

        Returns:
            DataFrame with SCD hash column added
        """
        result_df = df.withColumn(self.config.scd_hash_column, self.fingerprint_expression(df.schema))

        logger.info(f"Computed {self.hash_algorithm} hash for {len(self.get_hash_columns())} tracked columns")
        return result_df
