"""
Test configuration and fixtures.

Every test gets a fresh in-memory SQLite schema; the API client runs against
the same session through a ``get_db`` override.
"""

from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stockledger.database import Base, get_db
from stockledger.main import app
from stockledger.models.catalog import Location, Product, Warehouse
from stockledger.models.stock import StockRecord
from stockledger.models.user import User
from stockledger.services import auth_service

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Test client with the database dependency overridden (lifespan not run)"""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def warehouse(db_session: Session) -> Warehouse:
    wh = Warehouse(code="WH-1", name="Main Warehouse")
    db_session.add(wh)
    db_session.commit()
    return wh


@pytest.fixture
def location_a(db_session: Session, warehouse: Warehouse) -> Location:
    loc = Location(warehouse_id=warehouse.id, code="A-01-01", name="Aisle A")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture
def location_b(db_session: Session, warehouse: Warehouse) -> Location:
    loc = Location(warehouse_id=warehouse.id, code="B-01-01", name="Aisle B")
    db_session.add(loc)
    db_session.commit()
    return loc


@pytest.fixture
def product(db_session: Session) -> Product:
    p = Product(sku="SP-001", barcode="8930000000011", name="Widget", min_stock=5)
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture
def user(db_session: Session) -> User:
    return auth_service.create_user(db_session, "clerk", "secret123", role="user")


@pytest.fixture
def manager(db_session: Session) -> User:
    return auth_service.create_user(db_session, "boss", "secret123", role="manager")


@pytest.fixture
def admin(db_session: Session) -> User:
    return auth_service.create_user(db_session, "root", "secret123", role="admin")


@pytest.fixture
def headers_for():
    """Bearer auth headers for a user"""

    def make(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {auth_service.create_access_token(user)}"}

    return make


@pytest.fixture
def stock_factory(db_session: Session):
    """Seed a stock record directly, bypassing the engine (fixtures only)."""

    def make(product: Product, location: Location, quantity: int, unit_cost: str = "0") -> StockRecord:
        record = StockRecord(
            product_id=product.id,
            location_id=location.id,
            quantity=quantity,
            unit_cost=Decimal(unit_cost),
        )
        db_session.add(record)
        db_session.commit()
        return record

    return make
