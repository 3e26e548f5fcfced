"""
Pipeline validation for compiled queries.

Predicates can be composed without bound, so a compiled pipeline is checked
against complexity limits before it is handed to the store.
"""

import logging
from typing import Any

from ..constants import MAX_PIPELINE_STAGES, MAX_QUERY_DEPTH, MAX_SORT_FIELDS
from ..exceptions import QueryTranslationError

logger = logging.getLogger(__name__)


class QueryValidator:
    """
    Enforces nesting depth, stage count and sort width limits.
    """

    def __init__(
        self,
        max_depth: int = MAX_QUERY_DEPTH,
        max_pipeline_stages: int = MAX_PIPELINE_STAGES,
        max_sort_fields: int = MAX_SORT_FIELDS,
    ):
        """
        Initialize the query validator.

        Args:
            max_depth: Maximum nesting depth for filters
            max_pipeline_stages: Maximum stages in a pipeline
            max_sort_fields: Maximum fields in a single $sort stage
        """
        self.max_depth = max_depth
        self.max_pipeline_stages = max_pipeline_stages
        self.max_sort_fields = max_sort_fields

    def validate_filter(self, filter: dict[str, Any] | None, path: str = "") -> None:
        """
        Validate a filter document.

        Raises:
            QueryTranslationError: If the filter nests deeper than allowed
        """
        if not filter:
            return
        self._check_depth(filter, path, depth=0)

    def validate_pipeline(self, pipeline: list[dict[str, Any]]) -> None:
        """
        Validate a compiled pipeline.

        Raises:
            QueryTranslationError: If the pipeline exceeds any limit
        """
        if len(pipeline) > self.max_pipeline_stages:
            raise QueryTranslationError(
                f"Query pipeline exceeds maximum stages: "
                f"{len(pipeline)} > {self.max_pipeline_stages}",
                context={"stages": len(pipeline), "max_stages": self.max_pipeline_stages},
            )

        for idx, stage in enumerate(pipeline):
            if "$match" in stage:
                self.validate_filter(stage["$match"], f"$[{idx}]")
            if "$sort" in stage and len(stage["$sort"]) > self.max_sort_fields:
                raise QueryTranslationError(
                    f"Sort specification exceeds maximum fields: "
                    f"{len(stage['$sort'])} > {self.max_sort_fields}",
                    fields=list(stage["$sort"]),
                )

    def _check_depth(self, query: dict[str, Any], path: str, depth: int) -> None:
        if depth > self.max_depth:
            logger.warning(f"Rejected query nested {depth} levels deep at '{path}'")
            raise QueryTranslationError(
                f"Query exceeds maximum nesting depth: {depth} > {self.max_depth}",
                context={"path": path, "depth": depth, "max_depth": self.max_depth},
            )

        for key, value in query.items():
            current_path = f"{path}.{key}" if path else key

            if isinstance(value, dict):
                self._check_depth(value, current_path, depth + 1)
            elif isinstance(value, list):
                for idx, item in enumerate(value):
                    if isinstance(item, dict):
                        self._check_depth(item, f"{current_path}[{idx}]", depth + 1)
