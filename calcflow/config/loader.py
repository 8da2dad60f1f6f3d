"""Load and validate a workflow definition file (YAML or JSON) into schema objects."""

from pathlib import Path

import yaml

from calcflow.config.schema import WorkflowYAML


def load_workflow_yaml(path: Path) -> WorkflowYAML:
    """Load a workflow file → validated WorkflowYAML.

    JSON is a subset of YAML, so ``.json`` files load through the same path.

    Raises:
        FileNotFoundError: if the file does not exist.
        pydantic.ValidationError: if the document does not match the schema.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Workflow file not found: {p}")
    raw = yaml.safe_load(p.read_text())
    return WorkflowYAML.model_validate(raw or {})
