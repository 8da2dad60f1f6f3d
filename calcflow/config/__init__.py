"""Application configuration + declarative YAML workflow loader for calcflow.

All env vars defined here with CALCFLOW_ prefix.
YAML loader: load_workflow_yaml()
"""

from typing import Any

from pydantic_settings import BaseSettings

from calcflow.config.loader import load_workflow_yaml
from calcflow.config.schema import CollectionYAML, NodeYAML, TriggerYAML, WorkflowYAML


class CalcflowConfig(BaseSettings):
    # ── App ──
    app_name: str = "calcflow"
    debug: bool = False
    log_level: str = "INFO"

    # ── Database ──
    database_url: str = "sqlite+aiosqlite:///./calcflow.db"

    # ── Expressions ──
    default_engine: str = "math.js"
    system_variables: dict[str, Any] = {}      # exposed as {{$system.<name>}}

    # ── Workflows ──
    max_workflow_nodes: int = 100
    halt_on_error: bool = True                 # stop the execution on the first failed job

    model_config = {"env_prefix": "CALCFLOW_", "env_file": ".env", "extra": "ignore"}


config = CalcflowConfig()


__all__ = [
    "CalcflowConfig",
    "config",
    "load_workflow_yaml",
    "WorkflowYAML",
    "NodeYAML",
    "TriggerYAML",
    "CollectionYAML",
]
