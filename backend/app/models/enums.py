"""
User roles enumeration.

Defines the role types for the bookkeeping team.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        KEY_PERSON: Owner of the books; the first identity ever seen
        LIMITED_USER: Known identity with no ledger access
        MANAGER / ACCOUNTANT / STAFF / VIEWER: Team roles used in account permissions
        DELETED: Soft-removed team member
    """
    KEY_PERSON = "keyPerson"
    LIMITED_USER = "limitedUser"
    MANAGER = "Manager"
    ACCOUNTANT = "Accountant"
    STAFF = "Staff"
    VIEWER = "Viewer"
    DELETED = "Deleted"


# Roles that may appear in an account's edit/view permission sets
PERMISSION_ROLES = (UserRole.MANAGER, UserRole.ACCOUNTANT, UserRole.STAFF, UserRole.VIEWER)

# Roles a keyPerson or Manager may assign when adding a team member
ASSIGNABLE_ROLES = PERMISSION_ROLES + (UserRole.LIMITED_USER,)

# Roles allowed to manage the team
TEAM_ADMIN_ROLES = (UserRole.KEY_PERSON, UserRole.MANAGER)
