"""Pipeline data model: stages, actions, outcomes and attempt records.

The pipeline definition builder lives in
:mod:`sql_migration_pipeline.pipeline.definition`.
"""

from sql_migration_pipeline.pipeline.stage import (
    ActionContext,
    ActionOutcome,
    AttemptRecord,
    ExternalAction,
    Stage,
)

__all__ = [
    "ActionContext",
    "ActionOutcome",
    "AttemptRecord",
    "ExternalAction",
    "Stage",
]
