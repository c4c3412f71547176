"""External command execution for repository migration."""

from .runner import CommandRunner, SPAWN_FAILURE_STATUS
from . import commands

__all__ = ['CommandRunner', 'SPAWN_FAILURE_STATUS', 'commands']
