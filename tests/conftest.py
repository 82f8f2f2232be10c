from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from reien import create_app
from reien.core.config import Config
from reien.core.extensions import db
from reien.core.models import ContractPlot, PhysicalPlot, seed_demo_data


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "DEBUG"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _login_as(client, email: str, password: str):
    def _login():
        return client.post("/auth/login", json={"email": email, "password": password})

    return _login


@pytest.fixture
def login_admin(client):
    return _login_as(client, "admin@reien.local", "admin123")


@pytest.fixture
def login_operator(client):
    return _login_as(client, "operator@reien.local", "operator123")


@pytest.fixture
def login_viewer(client):
    return _login_as(client, "viewer@reien.local", "viewer123")


@pytest.fixture
def plot_id(app):
    def _plot_id(plot_number: str) -> int:
        return PhysicalPlot.query.filter_by(plot_number=plot_number).one().id

    return _plot_id


@pytest.fixture
def contract_id(app, plot_id):
    def _contract_id(plot_number: str, location: str) -> int:
        return (
            ContractPlot.query.filter_by(physical_plot_id=plot_id(plot_number), location_description=location)
            .filter(ContractPlot.deleted_at.is_(None))
            .one()
            .id
        )

    return _contract_id
