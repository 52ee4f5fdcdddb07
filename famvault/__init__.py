"""
famvault

Family shared-storage permission core.

Spaces hold categories, categories hold folder trees, folders hold files.
This package decides who may read, write, delete or fully control each of
those resources, runs the delegation request workflow between family members,
and keeps an append-only audit trail of every grant, revocation and expiry.

Public entry point:
    from famvault.services.access import FamilyAccessService
"""

__version__ = "0.4.0"
