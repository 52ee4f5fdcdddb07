"""
Vault resource hierarchy: spaces, categories, folders and files
"""

from .hierarchy import ResourceHierarchyIndex
from .resources import create_space, create_category, create_folder, create_file

__all__ = [
    "ResourceHierarchyIndex",
    "create_space",
    "create_category",
    "create_folder",
    "create_file",
]
