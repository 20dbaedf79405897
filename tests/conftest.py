from datetime import date
from types import SimpleNamespace

import pytest

import data_access
from app import create_app
from domain import CollectionEntry, RequestContext, Role, Session
from models import db
from rate_calculator import compute_rate, entry_amount


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'milkcenter.db'}",
        "CENTER_NAME": "Test Milk Center",
        "WHATSAPP_TOKEN": "",
        "WHATSAPP_PHONE_ID": "",
        "ADMIN_EMAIL": "admin@test.local",
        "ADMIN_PASSWORD": "admin123",
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_context(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def centers(app):
    """Two dairy centers, so scoping can be checked"""
    with app.app_context():
        north = data_access.create_dairy_center("North Center", "Village Road", "9000000001")
        south = data_access.create_dairy_center("South Center")
        return SimpleNamespace(**north.to_dict()), SimpleNamespace(**south.to_dict())


@pytest.fixture
def director(app, centers):
    north, _south = centers
    with app.app_context():
        user = data_access.create_user("director@test.local", "secret", full_name="Director",
                                       role=Role.DAIRY_DIRECTOR, dairy_center_id=north.id)
        return SimpleNamespace(id=user.id, email=user.email)


@pytest.fixture
def admin(app):
    with app.app_context():
        user = data_access.create_user("root@test.local", "rootpass", role=Role.SUPER_ADMIN)
        return SimpleNamespace(id=user.id, email=user.email)


@pytest.fixture
def ctx(centers, director):
    return RequestContext(user_id=director.id, dairy_center_id=centers[0].id, role=Role.DAIRY_DIRECTOR)


@pytest.fixture
def other_ctx(centers):
    return RequestContext(user_id=None, dairy_center_id=centers[1].id, role=Role.DAIRY_DIRECTOR)


def login(client, email, password):
    return client.post("/login", json={"email": email, "password": password})


@pytest.fixture
def director_client(client, director):
    assert login(client, "director@test.local", "secret").status_code == 200
    return client


@pytest.fixture
def admin_client(client, admin):
    assert login(client, "root@test.local", "rootpass").status_code == 200
    return client


def make_entry(fat, quantity, session=Session.MORNING, day=date(2026, 1, 15),
               farmer_id=1, farmer_name="Ramesh", entry_id=None):
    """Build an entry the way the collection counter does: rate, then amount."""
    rate = compute_rate(fat)
    return CollectionEntry(
        id=entry_id,
        farmer_id=farmer_id,
        farmer_name=farmer_name,
        date=day,
        session=session,
        fat_percentage=fat,
        quantity_liters=quantity,
        rate_per_liter=rate,
        total_amount=entry_amount(rate, quantity),
    )
