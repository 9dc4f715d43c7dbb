import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import fakeredis

from larder.main import app
from larder.db import Base, get_db
from larder.infra import redis_client
from larder.models import User, BaseIngredient
from larder.services import catalog

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# StaticPool: every session shares the one in-memory connection
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """Test client with DB override."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def mock_redis():
    server = fakeredis.FakeServer()
    # Fake clients sharing one server
    redis_client._redis_async = fakeredis.FakeAsyncRedis(server=server, decode_responses=True)
    redis_client._redis_sync = fakeredis.FakeRedis(server=server, decode_responses=True)

    yield redis_client._redis_sync

    redis_client._redis_async = None
    redis_client._redis_sync = None


def _make_user(db, email, role="user"):
    user = User(email=email, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db_session):
    return _make_user(db_session, "cook@example.com")


@pytest.fixture
def other_user(db_session):
    return _make_user(db_session, "neighbour@example.com")


@pytest.fixture
def admin(db_session):
    return _make_user(db_session, "admin@example.com", role="admin")


@pytest.fixture
def headers(user):
    return {"X-User-Id": user.id}


@pytest.fixture
def make_ingredient(db_session):
    """Factory for ingredients; global (no owner) unless `owner` is given."""
    def _make(name, category=None, owner=None, default_spoilage_flag=False):
        ingredient = BaseIngredient(
            name=name,
            category=category,
            is_global=owner is None,
            created_by_user=owner.id if owner else None,
            default_spoilage_flag=default_spoilage_flag,
        )
        db_session.add(ingredient)
        db_session.commit()
        return ingredient
    return _make


@pytest.fixture
def flour(make_ingredient):
    return make_ingredient("flour", "baking")


@pytest.fixture
def sugar(make_ingredient):
    return make_ingredient("sugar", "baking")


@pytest.fixture
def milk(make_ingredient):
    return make_ingredient("milk", "dairy")


@pytest.fixture
def make_recipe(db_session):
    """Factory for recipes from (ingredient, quantity, unit) lines."""
    def _make(actor, name, default_servings, lines, is_global=False):
        recipe = catalog.create_recipe(
            db_session,
            actor,
            name=name,
            default_servings=default_servings,
            ingredients=[
                {"ingredient_id": ing.id, "quantity": qty, "unit": unit}
                for ing, qty, unit in lines
            ],
            is_global=is_global,
        )
        db_session.commit()
        return recipe
    return _make
