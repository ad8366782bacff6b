# conftest.py

import os
import tempfile

import pytest

# Set testing environment BEFORE importing app
# This ensures app.py uses TestingConfig when imported
os.environ["FLASK_ENV"] = "testing"

# Now import app and other modules after environment is set
from app import app as flask_app
from community_app.models import db
from community_app.store import InMemoryContentStore
from community_app.store.documents import CANONICAL_REGIONS, MEMBER_TYPE, MEMBERSHIP_TYPE, reference

STORE_EXTENSION_KEY = "content_store"


def seed_documents():
    """Regions, countries, categories and members shared by the store-backed tests."""
    docs = [{"_id": region.id, "_type": "region", "title": region.title} for region in CANONICAL_REGIONS]
    docs += [
        {"_id": "country.usa", "_type": "country", "title": "United States of America",
         "region": reference("region.north-america")},
        {"_id": "country.kenya", "_type": "country", "title": "Kenya", "region": reference("region.africa")},
        {"_id": "country.france", "_type": "country", "title": "France", "region": reference("region.europe")},
        {"_id": "country.india", "_type": "country", "title": "India", "region": reference("region.asia-pacific")},
        {"_id": "country.brazil", "_type": "country", "title": "Brazil", "region": reference("region.lac")},
        {"_id": "country.cote", "_type": "country", "title": "Côte d'Ivoire", "region": reference("region.africa")},
    ]
    docs += [
        {"_id": "area.climate", "_type": "priorityArea", "title": "Climate Action"},
        {"_id": "area.health", "_type": "priorityArea", "title": "Health and Well-being"},
        {"_id": "group.publishers", "_type": "actionGroup", "title": "SDG Publishers"},
    ]
    docs += [
        {
            "_id": "member.test-university",
            "_type": MEMBER_TYPE,
            "title": "Test University",
            "datejoined": "2024-03-05",
            "status": "published",
            "country": reference("country.usa"),
            "emails": ["Contact@TestU.edu", "dean@testu.edu"],
            "website": "https://testu.edu",
        },
        {
            "_id": "member.nairobi",
            "_type": MEMBER_TYPE,
            "title": "Nairobi Institute of Technology",
            "datejoined": "2023-01-10",
            "status": "published",
            "country": reference("country.kenya"),
            "emails": ["info@nit.ac.ke"],
        },
        {
            "_id": "member.sorbonne",
            "_type": MEMBER_TYPE,
            "title": "Paris Research College",
            "datejoined": "2022-06-01",
            "status": "published",
            "country": reference("country.france"),
            "emails": [],
        },
        {
            "_id": "member.pending",
            "_type": MEMBER_TYPE,
            "title": "Pending Academy",
            "datejoined": "2024-05-01",
            "status": "submitted",
            "country": reference("country.india"),
            "emails": ["hello@pending.org"],
        },
        {
            "_id": "membership.existing",
            "_type": MEMBERSHIP_TYPE,
            "post": reference("member.nairobi"),
            "priorityArea": reference("area.health"),
            "contribution": "Community health outreach programme",
            "since": "2023-02-01",
            "status": "published",
        },
    ]
    return docs


@pytest.fixture(scope="function")
def app():
    """Create and configure a test Flask application"""
    import uuid

    db_fd, temp_db = tempfile.mkstemp(suffix=f"_{uuid.uuid4().hex[:8]}.db")

    try:
        flask_app.config.update(
            {
                "TESTING": True,
                "WTF_CSRF_ENABLED": False,
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{temp_db}",
                "SECRET_KEY": "test-secret-key-for-testing-only",
                "CONTENT_STORE_BACKEND": "memory",
                "SANITY_PROJECT_ID": None,
                "SANITY_DATASET": None,
                "SANITY_API_TOKEN": None,
                "SANITY_WRITE_TOKEN": None,
                "MAGIC_LINK_SECRET": "test-magic-secret",
                "MAGIC_LINK_MAX_AGE_MINUTES": 20,
                "MAGIC_LINK_PREVIEW_ENABLED": True,
                "RESEND_API_KEY": None,
                "FROM_EMAIL": None,
                "PUBLIC_BASE_URL": "http://localhost",
                "IMPORTER_DRY_RUN_DEFAULT": False,
                "DIRECTORY_PAGE_SIZE": 12,
                "ENABLE_FILE_LOGGING": False,
                "ENABLE_CONSOLE_LOGGING": True,
                "LOG_LEVEL": "DEBUG",
                "LOG_FORMAT": "text",
            }
        )

        # Re-initialize logging with updated config to pick up LOG_LEVEL=DEBUG
        from community_app.utils.logging_config import setup_logging

        setup_logging(flask_app)

        # Every test starts from an empty content store
        flask_app.extensions[STORE_EXTENSION_KEY] = InMemoryContentStore()

        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            yield flask_app
            db.session.remove()
            db.session.close()
            db.drop_all()
    finally:
        try:
            os.close(db_fd)
        except OSError:
            pass
        try:
            if os.path.exists(temp_db):
                os.unlink(temp_db)
        except OSError:
            pass


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def store(app):
    """In-memory content store seeded with reference data, installed on the app"""
    seeded = InMemoryContentStore(seed_documents())
    app.extensions[STORE_EXTENSION_KEY] = seeded
    return seeded


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers and ensure testing environment"""
    os.environ["FLASK_ENV"] = "testing"

    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers"""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.slow)
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
