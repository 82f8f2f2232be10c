from __future__ import annotations

from functools import wraps

from flask import abort
from flask_login import current_user

from reien.core.enums import StaffRole

WRITE_ROLES = (StaffRole.OPERATOR.value, StaffRole.MANAGER.value, StaffRole.ADMIN.value)
MANAGE_ROLES = (StaffRole.MANAGER.value, StaffRole.ADMIN.value)


def require_role(*roles: str):
    allowed = {role.lower() for role in roles}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if (current_user.role or "").lower() not in allowed:
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def require_write(fn):
    return require_role(*WRITE_ROLES)(fn)
