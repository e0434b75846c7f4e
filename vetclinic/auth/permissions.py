"""
vetclinic/auth/permissions.py
-----------------------------
Role → permission map. Admins hold every permission; the other roles get
the subset their desk work needs.
"""
from vetclinic.auth.models import RoleEnum

READ_SALES       = 'read_sales'
WRITE_SALES      = 'write_sales'
DELETE_SALES     = 'delete_sales'
PROCESS_PAYMENTS = 'process_payments'
VIEW_REPORTS     = 'view_reports'
READ_INVENTORY   = 'read_inventory'
WRITE_INVENTORY  = 'write_inventory'
READ_OWNERS      = 'read_owners'
WRITE_OWNERS     = 'write_owners'

ALL_PERMISSIONS = frozenset({
    READ_SALES, WRITE_SALES, DELETE_SALES, PROCESS_PAYMENTS, VIEW_REPORTS,
    READ_INVENTORY, WRITE_INVENTORY, READ_OWNERS, WRITE_OWNERS,
})

ROLE_PERMISSIONS = {
    RoleEnum.admin: ALL_PERMISSIONS,
    RoleEnum.staff: frozenset({
        READ_SALES, WRITE_SALES, PROCESS_PAYMENTS,
        READ_INVENTORY, READ_OWNERS, WRITE_OWNERS,
    }),
    RoleEnum.veterinarian: frozenset({
        READ_SALES, READ_INVENTORY, READ_OWNERS, WRITE_OWNERS,
    }),
}


def has_permission(role: str, permission: str) -> bool:
    """Check a role value (as stored in the session) against a permission."""
    try:
        role_enum = RoleEnum(role)
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS.get(role_enum, frozenset())
