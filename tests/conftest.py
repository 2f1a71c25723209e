"""Pytest fixtures shared across the test suite."""

import pytest

from catalog.schema import create_schema
from catalog.store import CatalogStore
from db import utils as db_utils
from igdb.context import set_default_context
from tests.catalog_helpers import FakeCatalog, make_normalizer


@pytest.fixture(autouse=True)
def reset_process_state():
    """Drop cached engines and client contexts between tests."""

    db_utils.set_fallback_connection(None)
    set_default_context(None)
    yield
    db_utils.set_fallback_connection(None)
    set_default_context(None)


@pytest.fixture
def database(tmp_path):
    engine_wrapper = db_utils.build_engine_from_dsn(f"sqlite:///{tmp_path / 'catalog.db'}")
    create_schema(engine_wrapper.engine)
    yield engine_wrapper
    engine_wrapper.dispose()


@pytest.fixture
def store(database):
    return CatalogStore(database)


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def normalizer(store, catalog):
    return make_normalizer(store, catalog)
