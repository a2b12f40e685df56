"""
User roles enumeration.

Defines the role types for the courier platform.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Manages parcels, statuses and users
        SENDER: Creates and manages own parcels (default role)
        RECEIVER: Views parcels addressed to them and confirms delivery
    """
    ADMIN = "admin"
    SENDER = "sender"
    RECEIVER = "receiver"
