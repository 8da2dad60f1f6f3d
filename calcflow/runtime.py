"""Wire the components of one calcflow instance around a database session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from calcflow.collections import CollectionManager
from calcflow.config import CalcflowConfig, WorkflowYAML
from calcflow.db.repository import Repository
from calcflow.expressions.engines import ExpressionEngineRegistry, default_registry
from calcflow.instructions import InstructionRegistry, default_instructions
from calcflow.triggers import CollectionTrigger, EventBus
from calcflow.types import Workflow
from calcflow.workflows import Processor, WorkflowManager


@dataclass
class Runtime:
    config: CalcflowConfig
    repository: Repository
    event_bus: EventBus
    engines: ExpressionEngineRegistry
    instructions: InstructionRegistry
    collections: CollectionManager
    workflows: WorkflowManager
    processor: Processor
    trigger: CollectionTrigger

    async def load(self, definition: WorkflowYAML) -> Workflow:
        """Define the file's collections, then create its workflow."""
        for collection in definition.collections:
            self.collections.define(collection.name, collection.defaults)
        return await self.workflows.load_definition(definition)


def build_runtime(
    session: AsyncSession,
    config: Optional[CalcflowConfig] = None,
    callbacks: list = None,
) -> Runtime:
    """Build every component and attach the collection trigger to the bus."""
    cfg = config or CalcflowConfig()
    repository = Repository(session)
    event_bus = EventBus()
    engines = default_registry()
    instructions = default_instructions(engines, cfg.default_engine)
    collections = CollectionManager(repository, event_bus)
    workflows = WorkflowManager(repository, instructions, cfg)
    processor = Processor(
        repository,
        instructions,
        engines=engines,
        collections=collections,
        event_bus=event_bus,
        config=cfg,
        callbacks=callbacks,
    )
    trigger = CollectionTrigger(workflows, processor, event_bus)
    trigger.attach()
    return Runtime(
        config=cfg,
        repository=repository,
        event_bus=event_bus,
        engines=engines,
        instructions=instructions,
        collections=collections,
        workflows=workflows,
        processor=processor,
        trigger=trigger,
    )
