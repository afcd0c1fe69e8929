import os
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("REQUIRE_DB_AT_HEAD", "false")
os.environ.setdefault("PIPELINE_WORKER_ENABLED", "false")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")

from content_backend.api.auth import require_admin
from content_backend.api.content_models import Base, Client, ContentItem, User
from content_backend.api.db import get_db


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN on its own; savepoints need it emitted explicitly.
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def config():
    return {
        "anthropic_api_key": "test-key",
        "anthropic_base_url": "https://llm.test/v1",
        "anthropic_model": "test-model",
        "llm_timeout_seconds": 5,
        "imagen_api_key": "test-key",
        "imagen_base_url": "https://imagen.test",
        "imagen_model": "test-model",
        "autocontent_api_key": "test-key",
        "autocontent_base_url": "https://autocontent.test",
        "creatify_api_key": "test-id:test-key",
        "creatify_base_url": "https://creatify.test",
        "getlate_api_key": "test-key",
        "getlate_base_url": "https://getlate.test",
        "podbean_client_id": "id",
        "podbean_client_secret": "secret",
        "podbean_base_url": "https://podbean.test",
        "gcs_bucket": "test-bucket",
        "gcs_upload_base_url": "https://gcs.test",
        "google_service_account_json": "",
        "google_service_account_file": "",
        "youtube_client_id": "",
        "youtube_client_secret": "",
        "youtube_refresh_token": "",
        "google_token_url": "https://oauth.test",
        "timeout_seconds": 5,
        "upload_timeout_seconds": 5,
        "social_poll_attempts": 1,
        "social_poll_interval_seconds": 0,
    }


@pytest.fixture
def make_client(db):
    def _make(**overrides):
        values = {
            "business_name": "Clearview Auto Glass",
            "city": "Boise",
            "state": "ID",
            "street_address": "100 Main St",
            "postal_code": "83702",
            "phone": "208-555-0100",
            "website": "https://clearview.test",
            "wordpress_url": "https://clearview.test",
            "wordpress_username": "editor",
            "wordpress_app_password": "app-pass",
            "social_platforms": ["facebook", "instagram"],
            "social_account_ids": {},
            "service_areas": ["Boise", "Meridian"],
        }
        values.update(overrides)
        client = Client(**values)
        db.add(client)
        db.commit()
        return client

    return _make


@pytest.fixture
def make_item(db):
    def _make(client, **overrides):
        values = {
            "client_id": client.id,
            "paa_question": "How long does a windshield replacement take?",
            "scheduled_date": date(2030, 1, 15),
            "status": "DRAFT",
        }
        values.update(overrides)
        item = ContentItem(**values)
        db.add(item)
        db.commit()
        return item

    return _make


@pytest.fixture
def api_client(db):
    from content_backend.api.server import app

    def _override_db():
        yield db

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[require_admin] = lambda: User(email="admin@example.com", role="admin", is_active=True)
    yield TestClient(app)
    app.dependency_overrides.clear()
