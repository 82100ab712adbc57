# pilates_studio/core/enums.py
"""Role names shared by models, services and API dependencies."""

from enum import Enum


class RoleName(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"
