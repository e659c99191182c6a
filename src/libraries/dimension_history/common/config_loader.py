"""YAML configuration loader for dimension history pipelines.

Example YAML (warehouse_batch.yaml):
    max_retries: 2
    audit_table: metadata.etl_execution_log

    dimensions:
      - entity_type: veterans
        target_table: dim_veterans
        staging_table: stg_veterans
        business_key_columns: [veteran_id]
        scd_columns: [first_name, last_name, status]
        untracked_columns: [last_updated_by]
        surrogate_key_column: veteran_key

    fact_stages:
      - name: exam_requests
        depends_on: [veterans]
        loader: warehouse_facts.exam_requests:load_exam_requests

Usage:
    from libraries.dimension_history.common.config_loader import load_pipeline_config
    pipeline_config = load_pipeline_config("./config/warehouse_batch.yaml")
"""

import importlib
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Union

import yaml

from .config import DimensionConfig, FactStageConfig, PipelineConfig
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "load_pipeline_config",
    "pipeline_config_from_dict",
    "import_loader",
]


def import_loader(reference: str) -> Callable[..., Any]:
    """Import a callable given as 'package.module:function'."""
    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name or not attribute:
        raise ConfigurationError(
            f"Loader reference must look like 'package.module:function', got '{reference}'",
            "loader"
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import loader module '{module_name}': {e}", "loader") from e

    loader = getattr(module, attribute, None)
    if loader is None or not callable(loader):
        raise ConfigurationError(f"'{reference}' is not a callable", "loader")
    return loader


def pipeline_config_from_dict(config: Dict[str, Any]) -> PipelineConfig:
    """
    Build a PipelineConfig from a parsed mapping.

    Args:
        config: Mapping with 'dimensions' and optional 'fact_stages' lists

    Returns:
        Validated PipelineConfig

    Raises:
        ConfigurationError: If a section is malformed
    """
    if not isinstance(config, dict):
        raise ConfigurationError("Pipeline configuration must be a mapping")

    settings = dict(config)
    dimension_entries = settings.pop("dimensions", None) or []
    stage_entries = settings.pop("fact_stages", None) or []

    try:
        dimensions = [DimensionConfig(**entry) for entry in dimension_entries]

        fact_stages = []
        for entry in stage_entries:
            entry = dict(entry)
            loader = entry.pop("loader", None)
            if isinstance(loader, str):
                loader = import_loader(loader)
            fact_stages.append(FactStageConfig(loader=loader, **entry))

        return PipelineConfig(dimensions=dimensions, fact_stages=fact_stages, **settings)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid pipeline configuration: {e}") from e


def load_pipeline_config(path: Union[str, Path]) -> PipelineConfig:
    """
    Load a PipelineConfig from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated PipelineConfig
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Pipeline configuration file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            parsed = yaml.safe_load(fh)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    pipeline_config = pipeline_config_from_dict(parsed or {})
    logger.info(
        f"Loaded pipeline configuration from {path}: "
        f"{len(pipeline_config.dimensions)} dimensions, {len(pipeline_config.fact_stages)} fact stages"
    )
    return pipeline_config
