"""
Data validation utilities for SCD processing.
"""

from typing import Tuple
from pyspark.sql import DataFrame
from pyspark.sql.functions import col, count, lag, lit
from pyspark.sql.window import Window
import logging

from ..common.config import DimensionConfig, ValidationResult
from ..common.exceptions import ValidationError, ConsistencyError
from ..common.utils import add_error_columns, blank_to_null, flag_error_records
from .date_manager import OPEN_END_TS

logger = logging.getLogger(__name__)

SAMPLE_KEY_LIMIT = 10


class SCDValidator:
    """Validates source records and dimension history."""

    def __init__(self, config: DimensionConfig):
        """
        Initialize SCDValidator with configuration.

        Args:
            config: Dimension configuration
        """
        self.config = config

    def validate_source_data(self, df: DataFrame) -> ValidationResult:
        """
        Validate the structure of source data before SCD processing.

        Args:
            df: Input DataFrame

        Returns:
            ValidationResult with validation status and errors
        """
        result = ValidationResult(is_valid=True)

        missing_columns = set(self.config.attribute_columns) - set(df.columns)
        if missing_columns:
            result.add_error(f"Missing required columns: {sorted(missing_columns)}")

        if self.config.source_system_column not in df.columns:
            result.add_warning(
                f"Column {self.config.source_system_column} not found, "
                f"using default source system '{self.config.default_source_system}'"
            )

        logger.info(f"Validation completed. Valid: {result.is_valid}, Errors: {len(result.errors)}")
        return result

    def require_valid_source(self, df: DataFrame) -> None:
        """Raise ValidationError when the source cannot be processed at all."""
        result = self.validate_source_data(df)
        if not result.is_valid:
            raise ValidationError(
                f"Source data for {self.config.entity_type} failed validation: {result.errors}",
                result.errors
            )

    def split_invalid_records(self, df: DataFrame) -> Tuple[DataFrame, DataFrame]:
        """
        Separate records whose natural key is null or blank.

        Args:
            df: Source DataFrame

        Returns:
            Tuple of (valid records, rejected records with error columns)
        """
        flagged = add_error_columns(df, self.config.error_flag_column,
                                    self.config.error_message_column)

        for col_name in self.config.business_key_columns:
            flagged = flag_error_records(
                flagged,
                blank_to_null(col(col_name)).isNull(),
                f"Missing business key value: {col_name}",
                self.config.error_flag_column,
                self.config.error_message_column
            )

        is_error = col(self.config.error_flag_column) == lit("Y")
        valid = (flagged.filter(~is_error)
                 .drop(self.config.error_flag_column, self.config.error_message_column))
        rejected = flagged.filter(is_error)

        return valid, rejected

    def validate_current_state(self, current_df: DataFrame) -> None:
        """
        Ensure no natural key has more than one current row.

        Args:
            current_df: Current dimension rows

        Raises:
            ConsistencyError: If duplicate current rows exist
        """
        duplicates = (current_df
                      .groupBy(*self.config.business_key_columns)
                      .agg(count(lit(1)).alias("current_rows"))
                      .filter(col("current_rows") > 1))

        sample = duplicates.limit(SAMPLE_KEY_LIMIT).collect()
        if sample:
            keys = [tuple(row[c] for c in self.config.business_key_columns) for row in sample]
            raise ConsistencyError(
                f"{self.config.entity_type}: found natural keys with more than one current row, "
                f"e.g. {keys}",
                self.config.entity_type,
                keys
            )

    def validate_history(self, dimension_df: DataFrame) -> ValidationResult:
        """
        Check the SCD Type 2 invariants over a whole dimension table.

        Args:
            dimension_df: All rows of the dimension

        Returns:
            ValidationResult with any invariant violations
        """
        result = ValidationResult(is_valid=True)
        cfg = self.config

        current = dimension_df.filter(col(cfg.is_current_column) == lit(True))
        try:
            self.validate_current_state(current)
        except ConsistencyError as e:
            result.add_error(e.message)

        open_end = lit(OPEN_END_TS).cast("timestamp")
        bad_current_end = current.filter(col(cfg.effective_end_column) != open_end).count()
        if bad_current_end > 0:
            result.add_error(f"Found {bad_current_end} current rows without the open-ended end date")

        invalid_ranges = dimension_df.filter(
            col(cfg.effective_start_column) >= col(cfg.effective_end_column)
        ).count()
        if invalid_ranges > 0:
            result.add_error(f"Found {invalid_ranges} rows with effective_start >= effective_end")

        window = (Window.partitionBy(*cfg.business_key_columns)
                  .orderBy(col(cfg.effective_start_column)))
        with_previous = dimension_df.withColumn(
            "_previous_end", lag(col(cfg.effective_end_column)).over(window)
        )
        has_previous = col("_previous_end").isNotNull()

        gaps = with_previous.filter(
            has_previous & (col("_previous_end") < col(cfg.effective_start_column))
        ).count()
        if gaps > 0:
            result.add_error(f"Found {gaps} versions starting after their predecessor ended (gap)")

        overlaps = with_previous.filter(
            has_previous & (col("_previous_end") > col(cfg.effective_start_column))
        ).count()
        if overlaps > 0:
            result.add_error(f"Found {overlaps} versions starting before their predecessor ended (overlap)")

        logger.info(f"History validation for {cfg.entity_type}. Valid: {result.is_valid}")
        return result
