"""
Radar Module: Revert Protocol

Lets a user undo an automatic ad stop for a short time after it happened.
"""

from .revert import (
    REVERT_MESSAGES,
    RevertProtocol,
    RevertResult,
    format_revert_result,
)

__all__ = [
    'REVERT_MESSAGES',
    'RevertProtocol',
    'RevertResult',
    'format_revert_result',
]
