"""
Delegation requests: state machine and workflow
"""

from .state_machine import TRANSITIONS, assert_transition, can_transition, effective_status
from .workflow import DelegationWorkflow, EXPIRED_WHILE_PENDING

__all__ = [
    "TRANSITIONS",
    "assert_transition",
    "can_transition",
    "effective_status",
    "DelegationWorkflow",
    "EXPIRED_WHILE_PENDING",
]
