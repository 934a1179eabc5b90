"""
RBAC Permission Registry — churchfin

Defines the canonical role-to-permission mapping. Every user holds exactly
one role within their tenant; the effective permission set is the role's.

Permission string format: {resource}.{action}
"""
from __future__ import annotations

# ---------------------------------------------------------------------------
# All permission strings used across the system
# ---------------------------------------------------------------------------

ALL_PERMISSIONS: list[str] = sorted([
    # Chart of accounts
    "accounts.view",
    "accounts.create",
    "accounts.update",
    # Journal
    "journal.view",
    "journal.create",
    "journal.post",
    "journal.reverse",
    # Income & expenditure
    "transactions.view",
    "transactions.create",
    "transactions.update",
    "transactions.delete",
    # Revenue sources, voteheads, categories
    "classifications.view",
    "classifications.manage",
    # Fiscal periods
    "periods.view",
    "periods.manage",
    # Reports & Dashboard
    "reports.view",
    "dashboard.view",
    # Administration
    "tenant.view",
    "tenant.update",
    "users.view",
    "users.manage",
    "audit_log.view",
])

_READ_ONLY: set[str] = {
    "accounts.view",
    "journal.view",
    "transactions.view",
    "classifications.view",
    "periods.view",
    "reports.view",
    "dashboard.view",
    "tenant.view",
}


# ---------------------------------------------------------------------------
# Role → Permissions mapping (source of truth)
# ---------------------------------------------------------------------------

ROLE_PERMISSIONS: dict[str, set[str]] = {
    # ── Admin ────────────────────────────────────────────────────────────
    # Full access, including user management.  The registering user.
    "admin": set(ALL_PERMISSIONS),

    # ── Special User ─────────────────────────────────────────────────────
    # Treasurer-level access to every financial function.  Cannot manage
    # users.
    "special_user": set(ALL_PERMISSIONS) - {"users.manage"},

    # ── User ─────────────────────────────────────────────────────────────
    # Records income and expenditure and drafts/posts journal entries.
    # Cannot reverse entries or change the chart of accounts.
    "user": _READ_ONLY | {
        "journal.create", "journal.post",
        "transactions.create", "transactions.update",
    },

    # ── Viewer ───────────────────────────────────────────────────────────
    # Read-only access to books and reports.
    "viewer": set(_READ_ONLY),
}


VALID_ROLES: list[str] = sorted(ROLE_PERMISSIONS.keys())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def get_role_permissions(role: str) -> set[str]:
    """Return the permission set for a role, or empty set if unknown."""
    return ROLE_PERMISSIONS.get(role, set())


def permission_description(permission: str) -> str:
    """Return a human-readable description for a permission string."""
    _DESCRIPTIONS: dict[str, str] = {
        "accounts.view": "View chart of accounts",
        "accounts.create": "Create new accounts",
        "accounts.update": "Edit or deactivate accounts",
        "journal.view": "View journal entries",
        "journal.create": "Create journal entries",
        "journal.post": "Post draft journal entries to the ledger",
        "journal.reverse": "Reverse posted journal entries",
        "transactions.view": "View income and expenditure records",
        "transactions.create": "Record income and expenditure",
        "transactions.update": "Edit income and expenditure records",
        "transactions.delete": "Delete income and expenditure records",
        "classifications.view": "View revenue sources, voteheads and categories",
        "classifications.manage": "Create, edit and delete revenue sources, voteheads and categories",
        "periods.view": "View fiscal periods",
        "periods.manage": "Create, close and reopen fiscal periods",
        "reports.view": "View accounting reports",
        "dashboard.view": "View dashboard KPIs",
        "tenant.view": "View church details",
        "tenant.update": "Edit church details",
        "users.view": "View user list",
        "users.manage": "Invite, change and deactivate users",
        "audit_log.view": "View audit log",
    }
    return _DESCRIPTIONS.get(permission, permission)
