from __future__ import annotations

import logging

from flask import Blueprint, request, session
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from reien.core.i18n import SUPPORTED_LANGS, translate
from reien.core.models import Staff
from reien.core.utils import error_response, ok

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _request_data() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def staff_payload(staff: Staff) -> dict[str, object]:
    return {"id": staff.id, "email": staff.email, "name": staff.name, "role": staff.role}


@auth_bp.post("/login")
def login_post():
    data = _request_data()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    staff = Staff.query.filter_by(email=email).first()
    if not staff or not staff.is_active or not check_password_hash(staff.password_hash, password):
        logger.warning("Rejected login for %s", email or "<empty>")
        return error_response(401, "INVALID_CREDENTIALS", translate("auth.invalid_credentials"))
    login_user(staff)
    logger.info("Staff %s logged in", staff.id)
    return ok(staff_payload(staff))


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return ok({"logged_out": True})


@auth_bp.get("/me")
@login_required
def me():
    return ok(staff_payload(current_user))


@auth_bp.post("/lang")
def set_lang():
    lang = (_request_data().get("lang") or "ja").strip().lower()
    if lang not in SUPPORTED_LANGS:
        lang = "ja"
    session["lang"] = lang
    return ok({"lang": lang})
