"""
Shared fixtures.

Every test gets its own SQLite file under tmp_path, built with the same
engine factory as the application (BEGIN IMMEDIATE, foreign keys on).
SQLite holds the write lock for the whole of an open transaction, so tests
that issue HTTP requests or start threads must not keep a session with an
open transaction around: read through ``session_factory()`` in a ``with``
block instead.
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import models.company  # noqa: F401
import models.log  # noqa: F401
import models.partner  # noqa: F401
import models.product  # noqa: F401
import models.stock  # noqa: F401
import models.users  # noqa: F401
from database import Base, get_db, make_engine
from models.company import Company
from models.partner import Client, Supplier
from models.product import Category, Product
from models.users import ROLE_ADMIN, ROLE_EMPLOYEE, User
from utils.hashing import get_password_hash
from utils.tokenJWT import create_access_token

PASSWORD = "secret-pass-123"


@pytest.fixture(scope="session")
def password_hash():
    return get_password_hash(PASSWORD)


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'stock.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def seed(session_factory, password_hash):
    """Two companies, each with users, products and partners. Returns their ids."""
    with session_factory() as s:
        acme = Company(name="Acme Shop", email="contact@acme-shop.com")
        globex = Company(name="Globex", email="office@globex-corp.com")
        s.add_all([acme, globex])
        s.flush()

        admin = User(company_id=acme.id, email="admin@acme-shop.com", password_hash=password_hash,
                     role=ROLE_ADMIN, first_name="Ada", last_name="Admin")
        employee = User(company_id=acme.id, email="clerk@acme-shop.com", password_hash=password_hash,
                        role=ROLE_EMPLOYEE, first_name="Carl", last_name="Clerk")
        other_admin = User(company_id=globex.id, email="admin@globex-corp.com", password_hash=password_hash,
                           role=ROLE_ADMIN, first_name="Gina", last_name="Globex")

        hardware = Category(company_id=acme.id, name="Hardware")
        s.add_all([admin, employee, other_admin, hardware])
        s.flush()

        laptop = Product(company_id=acme.id, category_id=hardware.id, name="Laptop", code="LAP-001",
                         buy_price=Decimal("18000"), sell_price=Decimal("22000"),
                         stock_quantity=50, min_stock=5)
        cable = Product(company_id=acme.id, name="HDMI cable", code="CAB-002",
                        buy_price=Decimal("10"), sell_price=Decimal("15"),
                        stock_quantity=2, min_stock=5)
        monitor = Product(company_id=globex.id, name="Monitor", code="MON-001",
                          buy_price=Decimal("900"), sell_price=Decimal("1200"),
                          stock_quantity=10, min_stock=2)

        supplier = Supplier(company_id=acme.id, name="Tech Wholesale", email="sales@techwholesale.com")
        client = Client(company_id=acme.id, name="Bob's Office", email="bob@bobs-office.com")
        other_supplier = Supplier(company_id=globex.id, name="Globex Supply")
        s.add_all([laptop, cable, monitor, supplier, client, other_supplier])
        s.commit()

        return SimpleNamespace(
            company_id=acme.id,
            other_company_id=globex.id,
            admin_id=admin.id,
            employee_id=employee.id,
            other_admin_id=other_admin.id,
            category_id=hardware.id,
            laptop_id=laptop.id,
            cable_id=cable.id,
            monitor_id=monitor.id,
            supplier_id=supplier.id,
            client_id=client.id,
            other_supplier_id=other_supplier.id,
        )


@pytest.fixture
def db(session_factory, seed):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def admin(db, seed):
    return db.get(User, seed.admin_id)


@pytest.fixture
def employee(db, seed):
    return db.get(User, seed.employee_id)


@pytest.fixture
def other_admin(db, seed):
    return db.get(User, seed.other_admin_id)


@pytest.fixture
def client(session_factory, seed):
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _headers(email: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': email})}"}


@pytest.fixture
def admin_headers(seed):
    return _headers("admin@acme-shop.com")


@pytest.fixture
def employee_headers(seed):
    return _headers("clerk@acme-shop.com")


@pytest.fixture
def other_admin_headers(seed):
    return _headers("admin@globex-corp.com")
