#!/usr/bin/env python3
"""
Note Board Server
-----------------
JSON API over a single BoardStore. The presentation layer issues commands
here and re-reads /api/board after each one.

Usage:
    python noteboard_server.py
    python noteboard_server.py --config noteboard.yaml --port 3000

API:
    GET    /api/board                    → snapshot, isIntakeLocked, stats
    POST   /api/columns/<index>/cards    → add a card (409 when full or locked)
    DELETE /api/cards/<id>               → remove a card
    PUT    /api/cards/<id>               → JSON body: { title?, color? }
    POST   /api/cards/<id>/items         → JSON body: { text }
    PUT    /api/cards/<id>/items/<index> → JSON body: { completed?, text? }
    GET    /health
"""

import argparse
import logging
import threading

from flask import Flask, jsonify, request

from pkg.noteboard.board import BoardStore, CapacityExceeded
from pkg.noteboard.config import Config, build_slot, setup_logging
from pkg.noteboard.persistence import PersistenceAdapter
from pkg.noteboard.schema import ColumnRole

logger = logging.getLogger(__name__)


def create_app(store: BoardStore, backend: str = "") -> Flask:
    """Build the API around an explicit store instance."""
    app = Flask(__name__)
    # one command at a time under the threaded dev server
    lock = threading.Lock()

    def _result(payload: dict, status: int = 200):
        payload["persisted"] = store.persisted
        return jsonify(payload), status

    def _json_body() -> dict:
        data = request.get_json(force=True, silent=True)
        return data if isinstance(data, dict) else {}

    def _not_found(card_id: int):
        return jsonify({"error": f"Card {card_id} not found"}), 404

    @app.route("/api/board")
    def api_board():
        with lock:
            snapshot = store.snapshot()
        stats = {
            role.value: len(column["cards"])
            for role, column in zip(ColumnRole, snapshot["columns"])
        }
        return jsonify({"board": snapshot, "isIntakeLocked": snapshot["isIntakeLocked"], "stats": stats})

    @app.route("/api/columns/<int:index>/cards", methods=["POST"])
    def api_add_card(index):
        try:
            with lock:
                card = store.add_card(index)
        except IndexError as e:
            return jsonify({"error": str(e)}), 404
        except CapacityExceeded as e:
            return jsonify({"error": str(e), "column": e.role.value, "limit": e.limit}), 409
        return _result({"card": card.to_dict()}, 201)

    @app.route("/api/cards/<int:card_id>", methods=["DELETE"])
    def api_remove_card(card_id):
        with lock:
            removed = store.remove_card(card_id)
        if not removed:
            return _not_found(card_id)
        return _result({"removed": card_id})

    @app.route("/api/cards/<int:card_id>", methods=["PUT"])
    def api_update_card(card_id):
        data = _json_body()
        updates = {k: data[k] for k in ("title", "color") if k in data}
        if not updates:
            return jsonify({"error": "title or color is required"}), 400
        bad = [k for k, v in updates.items() if not isinstance(v, str)]
        if bad:
            return jsonify({"error": f"{', '.join(bad)} must be a string"}), 400
        with lock:
            if store.get_card(card_id) is None:
                return _not_found(card_id)
            for field, value in updates.items():
                store.edit_card_field(card_id, field, value)
            card = store.get_card(card_id)
        return _result({"card": card.to_dict()})

    @app.route("/api/cards/<int:card_id>/items", methods=["POST"])
    def api_add_item(card_id):
        data = _json_body()
        text = data.get("text", "")
        if not isinstance(text, str):
            return jsonify({"error": "text must be a string"}), 400
        with lock:
            card = store.get_card(card_id)
            if card is None:
                return _not_found(card_id)
            if not store.add_item(card_id, text):
                return jsonify({"error": "item text is empty or the card already has 5 items"}), 422
            role = store.role_of(card_id)
        return _result({"card": card.to_dict(), "column": role.value}, 201)

    @app.route("/api/cards/<int:card_id>/items/<int:item_index>", methods=["PUT"])
    def api_update_item(card_id, item_index):
        data = _json_body()
        if "completed" not in data and "text" not in data:
            return jsonify({"error": "completed or text is required"}), 400
        if "completed" in data and not isinstance(data["completed"], bool):
            return jsonify({"error": "completed must be true or false"}), 400
        if "text" in data and not isinstance(data["text"], str):
            return jsonify({"error": "text must be a string"}), 400
        with lock:
            card = store.get_card(card_id)
            if card is None:
                return _not_found(card_id)
            if not 0 <= item_index < len(card.items):
                return jsonify({"error": f"Card {card_id} has no item #{item_index}"}), 404
            if "text" in data:
                store.edit_item_text(card_id, item_index, data["text"])
            if "completed" in data:
                store.set_item_completed(card_id, item_index, data["completed"])
            role = store.role_of(card_id)
        return _result({"card": card.to_dict(), "column": role.value})

    @app.route("/health")
    def health():
        error = store.last_persistence_error
        return jsonify({
            "status": "ok",
            "backend": backend,
            "persisted": store.persisted,
            "last_persistence_error": str(error) if error else None,
        })

    return app


def main(argv=None):
    parser = argparse.ArgumentParser(description="Note Board Server")
    parser.add_argument("--config", help="Path to noteboard.yaml (overrides NOTEBOARD_CONFIG)")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    args = parser.parse_args(argv)

    cfg = Config.load(args.config)
    setup_logging(cfg.log_level)
    adapter = PersistenceAdapter(build_slot(cfg), key=cfg.storage_key)
    store = BoardStore.open(adapter, default_color=cfg.default_color)
    app = create_app(store, backend=cfg.backend)

    host = args.host or cfg.host
    port = args.port or cfg.port
    logger.info(f"Note board serving on http://{host}:{port} ({cfg.backend} backend): {store}")
    app.run(host=host, port=port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
