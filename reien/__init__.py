from __future__ import annotations

import logging

import click
from flask import Flask
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from reien.core.auth import auth_bp
from reien.core.config import Config
from reien.core.enums import StaffRole
from reien.core.errors import (
    AreaValidationError,
    ContractRuleError,
    InventoryInvariantError,
    NotFoundError,
    ReienError,
)
from reien.core.extensions import db, login_manager, migrate
from reien.core.i18n import translate
from reien.core.logging import setup_logging
from reien.core.models import Staff, seed_demo_data
from reien.core.utils import error_response
from reien.plots import plots_bp

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    401: ("UNAUTHORIZED", "error.unauthorized"),
    403: ("FORBIDDEN", "error.forbidden"),
    404: ("NOT_FOUND", "error.not_found"),
}


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    app.json.ensure_ascii = app.config.get("JSON_AS_ASCII", False)

    setup_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_FORMAT", "standard"))

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.register_blueprint(auth_bp)
    app.register_blueprint(plots_bp)

    register_error_handlers(app)
    register_cli(app)
    return app


def register_error_handlers(app: Flask) -> None:
    def _domain_error(exc: ReienError, status: int):
        db.session.rollback()
        logger.warning("%s rejected: %s", exc.code, exc)
        return error_response(status, exc.code, str(exc), exc.details())

    @app.errorhandler(NotFoundError)
    def not_found_error(exc: NotFoundError):
        return _domain_error(exc, 404)

    @app.errorhandler(ContractRuleError)
    def contract_rule_error(exc: ContractRuleError):
        if exc.code == "PAYMENT_STATUS_MISMATCH":
            return _domain_error(exc, 422)
        return _domain_error(exc, 409)

    @app.errorhandler(AreaValidationError)
    def area_validation_error(exc: AreaValidationError):
        return _domain_error(exc, 400)

    @app.errorhandler(ValueError)
    def value_error(exc: ValueError):
        db.session.rollback()
        logger.warning("Rejected request: %s", exc)
        return error_response(400, "VALIDATION_ERROR", str(exc))

    @app.errorhandler(InventoryInvariantError)
    def inventory_invariant_error(exc: InventoryInvariantError):
        db.session.rollback()
        logger.error("Inventory invariant broken: %s", exc)
        return error_response(500, "INTERNAL_SERVER_ERROR", translate("error.internal"))

    @app.errorhandler(HTTPException)
    def http_error(exc: HTTPException):
        code, key = HTTP_ERROR_CODES.get(exc.code, (exc.name.upper().replace(" ", "_"), None))
        message = translate(key) if key else exc.description
        return error_response(exc.code, code, message)

    @login_manager.unauthorized_handler
    def unauthorized():
        return error_response(401, "UNAUTHORIZED", translate("error.unauthorized"))


def register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db() -> None:
        """Create database tables."""
        db.create_all()
        click.echo("Database tables created.")

    @app.cli.command("seed-demo")
    @click.option("--reset", is_flag=True, help="Delete existing data before seed.")
    def seed_demo(reset: bool) -> None:
        """Seed demo staff, customers, plots and contracts."""
        if reset:
            db.drop_all()
        db.create_all()
        if not Staff.query.first():
            seed_demo_data(db.session)
            click.echo("Demo data seeded.")
        else:
            click.echo("Seed skipped: existing staff found.")

    @app.cli.command("create-staff")
    @click.option("--email", required=True)
    @click.option("--name", required=True)
    @click.option("--password", required=True)
    @click.option(
        "--role",
        type=click.Choice([role.value for role in StaffRole]),
        default=StaffRole.OPERATOR.value,
        show_default=True,
    )
    def create_staff(email: str, name: str, password: str, role: str) -> None:
        """Create a staff account."""
        email = email.strip().lower()
        if Staff.query.filter_by(email=email).first():
            raise click.ClickException(f"Staff {email} already exists")
        db.session.add(
            Staff(email=email, name=name, password_hash=generate_password_hash(password), role=role)
        )
        db.session.commit()
        click.echo(f"Staff {email} created with role {role}.")

    @app.cli.command("plots-recompute-status")
    @click.option("--plot-id", type=int, default=None, help="Only recompute this physical plot.")
    def plots_recompute_status(plot_id: int | None) -> None:
        """Recompute physical plot statuses from their live allocations."""
        from reien.core.models import PhysicalPlot
        from reien.plots.inventory import update_physical_plot_status

        query = PhysicalPlot.query.filter(PhysicalPlot.deleted_at.is_(None))
        if plot_id is not None:
            query = query.filter(PhysicalPlot.id == plot_id)
        plot_ids = [plot.id for plot in query.order_by(PhysicalPlot.id.asc()).all()]
        if not plot_ids:
            click.echo("No physical plots found.")
            return
        for current_id in plot_ids:
            status = update_physical_plot_status(current_id)
            click.echo(f"plot={current_id} status={status.value}")
        db.session.commit()

    @app.cli.command("contracts-backfill-status")
    def contracts_backfill_status() -> None:
        """Move active contracts with cancelled, refunded or overdue payments to a matching status."""
        from reien.plots.services import backfill_contract_statuses

        summary = backfill_contract_statuses()
        click.echo(
            f"checked={summary['checked']} cancelled={summary['cancelled']} suspended={summary['suspended']}"
        )


@login_manager.user_loader
def load_user(user_id: str) -> Staff | None:
    return db.session.get(Staff, int(user_id))
