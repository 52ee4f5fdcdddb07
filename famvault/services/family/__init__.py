"""
Family membership: creation, role changes, removal
"""

from .members import FamilyMembershipService, add_member, create_family

__all__ = [
    "FamilyMembershipService",
    "add_member",
    "create_family",
]
