"""
Utility functions for dimension history library.
"""

from datetime import datetime, timezone
from functools import reduce
from typing import List
from pyspark.sql import Column, DataFrame
from pyspark.sql.functions import col, lit, trim, when


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form Spark timestamps are compared in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def blank_to_null(column: Column) -> Column:
    """
    Turn empty and whitespace-only values into null.

    Any other value keeps its string form unchanged, surrounding
    whitespace included.

    Args:
        column: Input column of any type

    Returns:
        String column where '', '   ' and null are all null
    """
    value = column.cast("string")
    return when(trim(value) == "", lit(None).cast("string")).otherwise(value)


def build_key_condition(key_columns: List[str], left_alias: str, right_alias: str) -> Column:
    """
    Build an equality join condition over key columns.

    Args:
        key_columns: Business key column names
        left_alias: Alias of the left DataFrame
        right_alias: Alias of the right DataFrame

    Returns:
        Conjunction of column equalities
    """
    conditions = [col(f"{left_alias}.{c}") == col(f"{right_alias}.{c}") for c in key_columns]
    return reduce(lambda a, b: a & b, conditions)


def add_error_columns(df: DataFrame, error_flag_column: str = "_error_flag",
                      error_message_column: str = "_error_message") -> DataFrame:
    """
    Add error tracking columns to DataFrame.

    Args:
        df: Input DataFrame
        error_flag_column: Name of error flag column
        error_message_column: Name of error message column

    Returns:
        DataFrame with error tracking columns
    """
    return (df
            .withColumn(error_flag_column, lit("N"))
            .withColumn(error_message_column, lit("")))


def flag_error_records(df: DataFrame, condition: Column, error_message: str,
                       error_flag_column: str = "_error_flag",
                       error_message_column: str = "_error_message") -> DataFrame:
    """
    Flag records that meet error condition.

    Records already flagged keep their first error message.

    Args:
        df: Input DataFrame
        condition: Condition to identify error records
        error_message: Error message to set
        error_flag_column: Name of error flag column
        error_message_column: Name of error message column

    Returns:
        DataFrame with error flags updated
    """
    newly_flagged = condition & (col(error_flag_column) == lit("N"))
    return (df
            .withColumn(error_message_column,
                        when(newly_flagged, lit(error_message)).otherwise(col(error_message_column)))
            .withColumn(error_flag_column,
                        when(condition, lit("Y")).otherwise(col(error_flag_column))))
