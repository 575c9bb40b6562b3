"""Shared fixtures: in-memory platform database and a throwaway backends root."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from app.core.config import Settings
from app.core.principal import Principal
from app.db.models import UserBackend
from app.db.session import Base
from app.services.backend_service import BackendService
from app.workspace.config_store import ConfigurationStore
from app.workspace.manager import BackendDirectoryManager

OWNER = Principal(id="user-1", username="alice")
OTHER = Principal(id="user-2", username="bob")
ADMIN = Principal(id="admin-1", username="root", is_admin=True)


@pytest.fixture
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        backends_root=str(tmp_path / "user-backends"),
        database_url="sqlite://",
        generation_mode="inprocess",
        generation_timeout=5.0,
    )


@pytest.fixture
def directories(test_settings):
    manager = BackendDirectoryManager(test_settings.backends_root)
    manager.ensure_root()
    return manager


@pytest.fixture
def store(db_session, directories):
    return ConfigurationStore(db_session, directories)


@pytest.fixture
def service(db_session, test_settings, directories):
    return BackendService(db_session, settings=test_settings, directories=directories)


@pytest.fixture
def make_backend(db_session):
    """Insert a backend record directly, bypassing the service."""
    def _make(name="Shop", user_id=OWNER.id, owner_name=OWNER.username, **kwargs):
        kwargs.setdefault("modules", {})
        kwargs.setdefault("generated_modules", {"generated": []})
        kwargs.setdefault("db_config", {})
        backend = UserBackend(user_id=user_id, owner_name=owner_name, name=name, **kwargs)
        db_session.add(backend)
        db_session.commit()
        return backend
    return _make


PRODUCT_MODULE = {
    "moduleName": "Product",
    "fields": [
        {"name": "title", "type": "String"},
        {"name": "price", "type": "Number"},
    ],
    "apis": {"post": True, "get": True, "getById": True, "put": False, "delete": False},
}
