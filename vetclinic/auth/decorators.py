"""
vetclinic/auth/decorators.py
----------------------------
Reusable route-protection decorators for the JSON API.
Usage:
    from vetclinic.auth.decorators import login_required, permission_required
    from vetclinic.auth import permissions as perms

    @sales.route('/', methods=['POST'])
    @permission_required(perms.WRITE_SALES)
    def create():
        ...
"""
from functools import wraps
from flask import session, abort

from vetclinic.auth.permissions import has_permission


def login_required(f):
    """
    Reject the request with 401 if the user is not authenticated.
    Checks for 'user_id' key in the Flask session.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        if 'user_id' not in session:
            abort(401, description='Authentication required.')
        return f(*args, **kwargs)
    return decorated


def permission_required(*permissions):
    """
    Allow access only to users whose role grants every listed permission.
    Implies login_required — unauthenticated users get 401,
    authenticated users lacking a permission get 403.
    """
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            if 'user_id' not in session:
                abort(401, description='Authentication required.')
            role = session.get('role')
            if not all(has_permission(role, p) for p in permissions):
                abort(403, description='Insufficient permissions.')
            return f(*args, **kwargs)
        return decorated
    return decorator
