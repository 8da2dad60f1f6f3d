"""Typed exception hierarchy. Every error calcflow can raise."""


class CalcflowError(Exception):
    """Base exception for all calcflow errors."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}


# ── Workflow definition errors ──────────────────────────────────────────────


class WorkflowError(CalcflowError):
    """Base exception for all workflow-related errors."""
    pass


class WorkflowNotFound(WorkflowError):
    """Requested workflow does not exist."""
    def __init__(self, message: str, workflow_id: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.workflow_id = workflow_id


class WorkflowValidationError(WorkflowError):
    """Workflow definition is structurally invalid (cycles, duplicate keys, etc.)."""
    def __init__(self, message: str, violations: list = None, **kwargs):
        super().__init__(message, **kwargs)
        self.violations = violations or []


class NodeNotFound(WorkflowError):
    """Requested node does not exist in the workflow."""
    def __init__(self, message: str, node_id: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.node_id = node_id


class InstructionNotFound(WorkflowError):
    """No instruction is registered for a node type."""
    def __init__(self, message: str, instruction_type: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.instruction_type = instruction_type


# ── Expression errors ───────────────────────────────────────────────────────


class ExpressionError(CalcflowError):
    """An expression could not be resolved or evaluated.

    ``str(error)`` is always ``"<kind>: <message>"`` so it can be stored as a
    job result verbatim.
    """
    kind = "Error"

    def __init__(self, message: str, kind: str = None, **kwargs):
        super().__init__(message, **kwargs)
        self.message = message
        if kind:
            self.kind = kind

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class ExpressionSyntaxError(ExpressionError):
    """Expression text is malformed."""
    kind = "SyntaxError"


class ExpressionRuntimeError(ExpressionError):
    """The evaluator raised while computing a well-formed expression."""
    pass


class EngineNotFound(ExpressionError):
    """No expression engine is registered under the requested identifier."""
    kind = "EngineError"

    def __init__(self, message: str, engine_id: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.engine_id = engine_id


class DynamicSourceError(ExpressionError):
    """A dynamic calculation's source or scope is missing or malformed."""
    kind = "DynamicSourceError"


# ── Collections ─────────────────────────────────────────────────────────────


class CollectionError(CalcflowError):
    """Base exception for data collection errors."""
    def __init__(self, message: str, collection: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.collection = collection


class CollectionNotFound(CollectionError):
    """Collection has not been defined."""
    pass


class RecordNotFound(CollectionError):
    """Record id does not exist in the collection."""
    pass


# ── Triggers ────────────────────────────────────────────────────────────────


class TriggerError(CalcflowError):
    """A workflow trigger failed to fire or configure."""
    def __init__(self, message: str, trigger_type: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.trigger_type = trigger_type
