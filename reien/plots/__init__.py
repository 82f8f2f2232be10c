from flask import Blueprint

plots_bp = Blueprint("plots", __name__, url_prefix="/api/v1")

from reien.plots import routes  # noqa: E402,F401
