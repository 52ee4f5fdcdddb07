"""
Family and Resource Models

Plain records loaded from storage. Resources are kept in flat id-keyed
tables; containment is expressed through parent id references only.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional


class FamilyRole(str, Enum):
    """Derived family role, highest flag wins"""
    ADMIN = "admin"
    RESPONSIBLE = "responsible"
    ORDINARY = "ordinary"


@dataclass
class Family:
    id: str
    name: str
    created_at: datetime


@dataclass
class FamilyMember:
    """
    A member of exactly one family

    Attributes:
        id: Member identifier
        family_id: Family back-reference
        display_name: Name shown in listings
        credential_ref: Opaque reference owned by the identity layer
        birth_date: Used for the minor check on elevated roles
        gender: Free-form, informational
        is_responsible: Responsible flag
        is_admin: Admin flag (takes precedence over is_responsible)
        created_at: Creation time
    """
    id: str
    family_id: str
    display_name: str
    credential_ref: Optional[str] = None
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    is_responsible: bool = False
    is_admin: bool = False
    created_at: Optional[datetime] = None

    @property
    def role(self) -> FamilyRole:
        if self.is_admin:
            return FamilyRole.ADMIN
        if self.is_responsible:
            return FamilyRole.RESPONSIBLE
        return FamilyRole.ORDINARY

    def age_on(self, today: date) -> Optional[int]:
        """Age in whole years on `today`, or None without a birth date"""
        if self.birth_date is None:
            return None
        years = today.year - self.birth_date.year
        if (today.month, today.day) < (self.birth_date.month, self.birth_date.day):
            years -= 1
        return years


@dataclass
class Space:
    id: str
    name: str
    family_id: str
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Category:
    id: str
    name: str
    space_id: str
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Folder:
    id: str
    name: str
    category_id: str
    owner_id: str
    parent_folder_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class File:
    id: str
    name: str
    folder_id: str
    owner_id: str
    creator_id: str
    size: int = 0
    created_at: Optional[datetime] = None
