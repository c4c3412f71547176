"""Persistent job and step history stores."""

from .base import JobStore
from .memory import InMemoryJobStore
from .file import JsonFileJobStore

__all__ = ['JobStore', 'InMemoryJobStore', 'JsonFileJobStore']
