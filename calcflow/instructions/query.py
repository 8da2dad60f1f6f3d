"""
Query instruction: reads records from a data collection.

Config::

    {
        "collection": "categories",
        "multiple": false,
        "params": {
            "filter": {"$and": [{"id": "{{$context.data.categoryId}}"}]},
            "sort": ["-createdAt"],
            "limit": 10
        }
    }

``params`` are resolved with placeholders preserving their native types, so
``{{$context.data.categoryId}}`` compares as a number.  The result is the first
matching record (``None`` when nothing matches) or, with ``multiple``, the
list of all matches.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from calcflow.exceptions import WorkflowValidationError
from calcflow.expressions.namespace import Namespace
from calcflow.expressions.template import resolve_value
from calcflow.instructions.base import Instruction, InstructionContext
from calcflow.types import JobResult, JobStatus, Node

logger = logging.getLogger(__name__)


class QueryParams(BaseModel):
    filter: dict[str, Any] = Field(default_factory=dict)
    sort: Union[str, list[str]] = Field(default_factory=list)
    limit: Optional[int] = None


class QueryConfig(BaseModel):
    collection: str
    multiple: bool = False
    params: QueryParams = Field(default_factory=QueryParams)


def parse_query_config(config: dict[str, Any]) -> QueryConfig:
    try:
        return QueryConfig.model_validate(config)
    except ValidationError as exc:
        raise WorkflowValidationError(
            "Invalid query config",
            violations=[f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()],
        ) from exc


class QueryInstruction(Instruction):
    type = "query"
    description = "Find one or many records in a collection"

    async def run(
        self, node: Node, namespace: Namespace, context: InstructionContext
    ) -> JobResult:
        try:
            query = parse_query_config(resolve_value(node.config, namespace))
        except WorkflowValidationError as exc:
            return JobResult(status=JobStatus.FAILED, result=f"ConfigError: {exc}")

        if context.collections is None:
            return JobResult.error("CollectionError: no collection store configured")

        params = query.params
        logger.debug(
            f"[Query] {query.collection} filter={params.filter} "
            f"sort={params.sort} limit={params.limit}"
        )
        if query.multiple:
            records = await context.collections.find(
                query.collection, filter=params.filter, sort=params.sort, limit=params.limit
            )
            return JobResult.resolved([r.as_data() for r in records])

        record = await context.collections.find_one(
            query.collection, filter=params.filter, sort=params.sort
        )
        return JobResult.resolved(record.as_data() if record else None)

    def validate_config(self, config: dict[str, Any]) -> None:
        if not isinstance(config.get("collection"), str) or not config["collection"]:
            raise WorkflowValidationError(
                "Query config needs a 'collection' name",
                violations=["missing collection"],
            )
