"""Editing and quality control modules."""

from .consistency_checker import ConsistencyAuditor, ConsistencyIssue, ConsistencyReport
from .logic_corrector import LogicCorrector, LogicIssue
from .memory_compactor import RollingMemoryCompactor

__all__ = [
    "ConsistencyAuditor",
    "ConsistencyIssue",
    "ConsistencyReport",
    "LogicCorrector",
    "LogicIssue",
    "RollingMemoryCompactor",
]
