"""Migration engine, orchestrator and step bookkeeping."""

from .recorder import StepRecorder
from .orchestrator import (
    MigrationOrchestrator,
    MigrationOutcome,
    StepResult,
    WorkingPaths,
)
from .engine import MigrationEngine

__all__ = [
    'StepRecorder',
    'MigrationOrchestrator',
    'MigrationOutcome',
    'StepResult',
    'WorkingPaths',
    'MigrationEngine',
]
