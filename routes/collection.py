"""Collection, console and catalog lookup API routes."""

from __future__ import annotations

from typing import Any, Mapping

from flask import Blueprint, jsonify, request

from catalog.consoles import create_console_with_igdb_data
from collection.service import add_game_to_collection, list_entries, remove_entry
from routes.api_utils import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    handle_api_errors,
)

collection_blueprint = Blueprint("collection", __name__)

_context: dict[str, Any] = {}


def configure(context: Mapping[str, Any]) -> None:
    """Inject the catalog services used by the collection routes."""
    _context.update(context)


def _ctx(key: str) -> Any:
    if key not in _context:
        raise RuntimeError(f"collection routes missing context value: {key}")
    return _context[key]


def _require_actor(role: str | None = None) -> Mapping[str, Any]:
    actor = _ctx('get_actor')()
    if not actor or not actor.get('id'):
        raise UnauthorizedError()
    if role is not None and actor.get('role') != role:
        raise ForbiddenError()
    return actor


def _json_body() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise BadRequestError('JSON object body required')
    return payload


@collection_blueprint.route('/api/user/games', methods=['GET'])
@handle_api_errors
def api_list_collection():
    actor = _require_actor()
    entries = list_entries(_ctx('store'), str(actor['id']))
    return jsonify({'games': entries})


@collection_blueprint.route('/api/user/games/add-to-collection', methods=['POST'])
@handle_api_errors
def api_add_to_collection():
    actor = _require_actor()
    payload = _json_body()
    game_id = payload.pop('igdb_game_id', None)
    console_id = payload.pop('console_id', None)
    if game_id in (None, '') or console_id in (None, ''):
        raise BadRequestError('IGDB game id and console id are required')

    try:
        entry = add_game_to_collection(
            str(actor['id']),
            game_id,
            console_id,
            payload,
            normalizer=_ctx('normalizer'),
            materializer=_ctx('materializer'),
        )
    except ValueError as exc:
        raise BadRequestError(str(exc)) from exc
    return jsonify({'message': 'Game added to collection successfully', 'game': entry}), 201


@collection_blueprint.route('/api/user/games/<entry_id>', methods=['DELETE'])
@handle_api_errors
def api_remove_from_collection(entry_id: str):
    actor = _require_actor()
    if not remove_entry(_ctx('store'), str(actor['id']), entry_id):
        raise NotFoundError('Game not found in your collection')
    return jsonify({'message': 'Game removed from collection'})


@collection_blueprint.route('/api/consoles', methods=['POST'])
@handle_api_errors
def api_create_console():
    _require_actor(role='ADMIN')
    payload = _json_body()
    try:
        console = create_console_with_igdb_data(
            payload,
            client=_ctx('client'),
            normalizer=_ctx('normalizer'),
            search_versions=bool(payload.get('search_versions')),
        )
    except ValueError as exc:
        raise BadRequestError(str(exc)) from exc
    return jsonify(console), 201


@collection_blueprint.route('/api/igdb/game/<int:game_id>', methods=['GET'])
@handle_api_errors
def api_igdb_game(game_id: int):
    _require_actor()
    return jsonify(_ctx('client').get_game(game_id))


__all__ = ["collection_blueprint", "configure"]
