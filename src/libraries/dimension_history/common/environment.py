"""
Environment lookup for warehouse database and schema identifiers.
"""

from typing import Dict, Optional
from pyspark.sql import SparkSession
from pyspark.sql.functions import col, lit, upper
import logging
import warnings

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DW_DATABASE_KEY = "DW_DATABASE"
ODS_DATABASE_KEY = "ODS_DATABASE"


class EnvironmentResolver:
    """Resolves environment-specific identifiers such as the warehouse database."""

    def resolve(self, key: str) -> str:
        """
        Look up a configuration value.

        Args:
            key: Configuration key (e.g. 'DW_DATABASE')

        Returns:
            Configured value

        Raises:
            ConfigurationError: If the key cannot be resolved
        """
        raise NotImplementedError

    def resolve_dw_database(self) -> str:
        """Return the data warehouse database name."""
        return self.resolve(DW_DATABASE_KEY)

    def resolve_ods_database(self) -> str:
        """Return the operational data store database name."""
        return self.resolve(ODS_DATABASE_KEY)

    def get_dw_database(self) -> str:
        """Deprecated alias of resolve_dw_database()."""
        warnings.warn(
            "get_dw_database() is deprecated, use resolve_dw_database() instead",
            DeprecationWarning,
            stacklevel=2
        )
        return self.resolve_dw_database()

    def qualified_table(self, schema_name: str, table_name: str) -> str:
        """
        Build a fully qualified table name in the warehouse database.

        Args:
            schema_name: Schema name (e.g. 'WAREHOUSE')
            table_name: Table name (e.g. 'dim_veterans')

        Returns:
            Name of the form database.schema.table
        """
        if not schema_name:
            raise ConfigurationError(f"No schema configured for table '{table_name}'", "schema_name")
        return f"{self.resolve_dw_database()}.{schema_name}.{table_name}"


class StaticEnvironmentResolver(EnvironmentResolver):
    """Resolver backed by a fixed mapping."""

    def __init__(self, values: Dict[str, str]):
        self.values = dict(values)

    def resolve(self, key: str) -> str:
        value = self.values.get(key)
        if not value:
            raise ConfigurationError(f"No value configured for '{key}'", key)
        return value


class TableEnvironmentResolver(EnvironmentResolver):
    """Resolver that reads an environment_config table."""

    def __init__(self, spark: SparkSession, environment_name: str,
                 config_table: str = "metadata.environment_config"):
        """
        Initialize TableEnvironmentResolver.

        Args:
            spark: Spark session
            environment_name: Environment whose values are read (e.g. 'DEV')
            config_table: Table with environment_name, config_key, config_value columns
        """
        self.spark = spark
        self.environment_name = environment_name
        self.config_table = config_table
        self._cache: Dict[str, str] = {}

    def resolve(self, key: str) -> str:
        if key in self._cache:
            return self._cache[key]

        value = self._lookup(key)
        if not value:
            raise ConfigurationError(
                f"No value for '{key}' in {self.config_table} "
                f"for environment '{self.environment_name}'",
                key
            )

        self._cache[key] = value
        logger.info(f"Resolved {key} = {value} for environment {self.environment_name}")
        return value

    def _lookup(self, key: str) -> Optional[str]:
        try:
            rows = (self.spark.table(self.config_table)
                    .filter((col("config_key") == lit(key)) &
                            (upper(col("environment_name")) == lit(self.environment_name.upper())))
                    .select("config_value")
                    .limit(1)
                    .collect())
        except Exception as e:
            raise ConfigurationError(
                f"Failed to read environment config table {self.config_table}: {str(e)}",
                key
            ) from e

        return rows[0]["config_value"] if rows else None
