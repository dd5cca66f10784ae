"""
Fixtures compartidas de pytest.

Las pruebas corren sobre SQLite en memoria: DATABASE_URL se fija antes de
importar la aplicación para que el engine global apunte a la base de pruebas.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

import pytest
from uuid import uuid4
from fastapi.testclient import TestClient
from sqlalchemy import event

from app.database.database import Base, SessionLocal, sync_engine, get_db
from app.main import app


# pysqlite no emite BEGIN antes de SAVEPOINT; se delega el control de
# transacciones a SQLAlchemy para que begin_nested() y rollback() funcionen.
@event.listens_for(sync_engine, "connect")
def _sqlite_autocommit_off(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(sync_engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


@pytest.fixture
def db_session():
    """Sesión sobre un esquema recién creado"""
    Base.metadata.create_all(bind=sync_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def other_tenant_id():
    return uuid4()


@pytest.fixture
def tenant_headers(tenant_id):
    return {"X-Company-ID": str(tenant_id)}


@pytest.fixture
def client(db_session):
    """TestClient que reutiliza la sesión de la prueba"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
