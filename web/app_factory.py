"""Flask application factory and catalog service initialization."""
from __future__ import annotations

from typing import Any, Callable, Mapping

from flask import Flask, session

from catalog.normalizer import EntityNormalizer
from catalog.store import CatalogStore
from collection.service import CollectionMaterializer
from db.utils import DatabaseEngine
from igdb.client import IGDBClient
from igdb.stubs import StubResolver
from routes import collection as routes_collection


def build_services(
    db: DatabaseEngine, client: IGDBClient | None = None
) -> dict[str, Any]:
    """Return the catalog services shared by the request handlers."""
    client = client or IGDBClient()
    store = CatalogStore(db)
    return {
        'client': client,
        'store': store,
        'normalizer': EntityNormalizer(store, StubResolver(client)),
        'materializer': CollectionMaterializer(store),
    }


def session_actor() -> dict[str, Any] | None:
    """Return the signed-in actor from the Flask session."""
    user = session.get('user')
    if not user:
        return None
    return {'id': str(user), 'role': str(session.get('role') or 'USER')}


def create_app(
    flask_app: Flask | None = None,
    *,
    services: Mapping[str, Any] | None = None,
    get_actor: Callable[[], Mapping[str, Any] | None] | None = None,
) -> Flask:
    """Return a configured Flask application instance."""
    if flask_app is None or services is None:
        from app import app as default_app, services as default_services

        if flask_app is None:
            flask_app = default_app
        if services is None:
            services = default_services

    routes_collection.configure({**services, 'get_actor': get_actor or session_actor})
    if 'collection' not in flask_app.blueprints:
        flask_app.register_blueprint(routes_collection.collection_blueprint)
    return flask_app
