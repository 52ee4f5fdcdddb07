"""
Shared pytest fixtures for famvault tests.

Provides:
- Settings pointing at a temporary data directory
- A fresh SQLite database per test with the schema applied
- A controllable clock
- A seeded family (admin, responsible, owner, member) with a resource tree
- A second family for cross-family checks
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, UTC

import pytest

from famvault.config import FamVaultSettings
from famvault.db import DatabaseConnection, init_schema
from famvault.models import Category, Family, FamilyMember, File, Folder, Space
from famvault.services.access import FamilyAccessService
from famvault.services.family import add_member, create_family
from famvault.services.vault import create_category, create_file, create_folder, create_space

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class FixedClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class Household:
    family: Family
    admin: FamilyMember
    responsible: FamilyMember
    owner: FamilyMember
    member: FamilyMember
    space: Space
    category: Category
    folder: Folder
    subfolder: Folder
    file: File


@dataclass
class OtherHousehold:
    family: Family
    admin: FamilyMember
    space: Space
    category: Category
    folder: Folder


# ============================================================================
# Infrastructure
# ============================================================================

@pytest.fixture
def settings(tmp_path) -> FamVaultSettings:
    return FamVaultSettings(
        data_dir=tmp_path / "data",
        environment="testing",
        perms_explain=True,
    )


@pytest.fixture
def db(settings):
    database = DatabaseConnection(settings.db_path)
    init_schema(database)
    yield database
    database.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def service(db, settings, clock) -> FamilyAccessService:
    return FamilyAccessService(db, settings=settings, clock=clock)


# ============================================================================
# Seed data
# ============================================================================

@pytest.fixture
def household(db) -> Household:
    """
    Family with one admin, one responsible and two ordinary members.

    `owner` owns the tree: space > category > folder > subfolder > file.
    """
    family = create_family(db, "Martin")
    admin = add_member(db, family.id, "Alice", is_admin=True)
    responsible = add_member(db, family.id, "Bruno", is_responsible=True)
    owner = add_member(db, family.id, "Olga")
    member = add_member(db, family.id, "Ben")

    space = create_space(db, family.id, "Home")
    category = create_category(db, space.id, "Papers", owner_id=owner.id)
    folder = create_folder(db, category.id, "Taxes", owner_id=owner.id)
    subfolder = create_folder(db, category.id, "2025", owner_id=owner.id, parent_folder_id=folder.id)
    file = create_file(db, subfolder.id, "return.pdf", owner_id=owner.id, size=2048)

    return Household(
        family=family,
        admin=admin,
        responsible=responsible,
        owner=owner,
        member=member,
        space=space,
        category=category,
        folder=folder,
        subfolder=subfolder,
        file=file,
    )


@pytest.fixture
def other_household(db) -> OtherHousehold:
    family = create_family(db, "Dupont")
    admin = add_member(db, family.id, "Claire", is_admin=True)
    space = create_space(db, family.id, "Cabin", owner_id=admin.id)
    category = create_category(db, space.id, "Photos", owner_id=admin.id)
    folder = create_folder(db, category.id, "Summer", owner_id=admin.id)
    return OtherHousehold(family=family, admin=admin, space=space, category=category, folder=folder)
