# conftest.py

import logging
import os
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

# Set testing environment BEFORE importing app so it picks TestingConfig
os.environ["FLASK_ENV"] = "testing"

from app import create_app  # noqa: E402
from backoffice.importer.cli import CliContext, load_settings  # noqa: E402
from backoffice.importer.contracts import load_registration_tables  # noqa: E402
from backoffice.importer.pipeline import BatchMutationDriver  # noqa: E402
from backoffice.store import InMemoryStore  # noqa: E402
from config import TestingConfig  # noqa: E402


@pytest.fixture(scope="session")
def tables():
    """Lookup tables shipped with the project."""
    return load_registration_tables()


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def sleeps():
    """Records every inter-group pause instead of sleeping."""
    return []


@pytest.fixture
def driver(memory_store, sleeps):
    return BatchMutationDriver(memory_store, delay_seconds=0.5, sleep=sleeps.append)


@pytest.fixture
def identity():
    return MagicMock(name="IdentityProvider")


@pytest.fixture
def app(identity):
    """Create and configure a test Flask application"""
    flask_app = create_app(TestingConfig, identity_provider=identity)
    flask_app.config.update(
        {
            "TESTING": True,
            "MONITORING_ENABLED": False,
            "DEFAULT_ACCOUNT_PASSWORD": "Vss@2025",
        }
    )
    yield flask_app


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def cli_context(memory_store, tables, identity, sleeps):
    settings = load_settings("testing")
    return CliContext(settings, store=memory_store, tables=tables, identity=identity, sleep=sleeps.append)


@pytest.fixture
def cli_runner():
    runner = CliRunner()
    yield runner
    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, "_backoffice_cli", False)]:
        root.removeHandler(handler)
