"""Type definitions for the work item import.

Shared literal types used by the configuration and logging layers.
"""

from typing import Literal, TypeAlias

LogLevel: TypeAlias = Literal[
    "DEBUG",
    "INFO",
    "NOTICE",
    "WARNING",
    "ERROR",
    "CRITICAL",
    "SUCCESS",
]

# PEP 695 Type Aliases
DirType: TypeAlias = Literal[
    "attachments",
    "data",
    "logs",
    "root",
]
