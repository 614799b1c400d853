import logging
from os import getenv

from flask import Flask, jsonify, render_template, request
from flask_cors import CORS

from board import RevealState
from config import BoardConfig
from errors import InvalidTransition
from jservice import JServiceClient
from sessions import GameSession, SessionStore
from utils import env_bool, env_int, utc_now_iso

app = Flask(__name__, template_folder="templates", static_folder="static")
CORS(app, resources={r"/api/*": {"origins": "*"}})

app.config["JSON_SORT_KEYS"] = False

BOARD_CONFIG = BoardConfig.from_env()
API_CLIENT = JServiceClient.from_config(BOARD_CONFIG)

app.config["BOARD_CONFIG"] = BOARD_CONFIG
app.config["SESSION_STORE"] = SessionStore(
    lambda: GameSession(API_CLIENT, config=BOARD_CONFIG),
    ttl=BOARD_CONFIG.session_ttl,
    max_sessions=BOARD_CONFIG.max_sessions,
)
app.config["STARTED_AT"] = utc_now_iso()


# -----------------------------
# Helpers
# -----------------------------
def store() -> SessionStore:
    return app.config["SESSION_STORE"]


def get_session_or_404(session_id):
    session = store().get(session_id)
    if session is None:
        return None, (jsonify({"ok": False, "error": "Session not found"}), 404)
    return session, None


# -----------------------------
# Routes
# -----------------------------

@app.get("/")
def index():
    cfg = app.config["BOARD_CONFIG"]
    return render_template(
        "board.html",
        num_categories=cfg.num_categories,
        num_rows=cfg.num_questions_per_cat,
    )

@app.get("/api/health")
def health():
    cfg = app.config["BOARD_CONFIG"]
    return jsonify({
        "ok": True,
        "started_at": app.config["STARTED_AT"],
        "sessions": len(store()),
        "config": cfg.summary(),
    })

@app.post("/api/session")
def create_session():
    data = request.get_json(silent=True) or {}
    session = store().create()
    if data.get("start", True):
        session.start()
    app.logger.info("Created session %s", session.id)
    return jsonify({"ok": True, "session_id": session.id, "status": session.status}), 201

@app.post("/api/session/<session_id>/start")
def start_session(session_id):
    session, err = get_session_or_404(session_id)
    if err:
        return err
    session.start()
    return jsonify({"ok": True, "session_id": session.id, "status": session.status})

@app.post("/api/session/<session_id>/restart")
def restart_session(session_id):
    session, err = get_session_or_404(session_id)
    if err:
        return err
    session.restart()
    return jsonify({"ok": True, "session_id": session.id, "status": session.status})

@app.get("/api/session/<session_id>/board")
def session_board(session_id):
    session, err = get_session_or_404(session_id)
    if err:
        return err
    return jsonify({"ok": True, **session.to_public_dict()})

@app.post("/api/session/<session_id>/clue/<int:category_index>/<int:row>/advance")
def advance_clue(session_id, category_index, row):
    session, err = get_session_or_404(session_id)
    if err:
        return err

    data = request.get_json(silent=True) or {}
    target = data.get("to")
    if target is not None:
        try:
            target = RevealState(target)
        except ValueError:
            return jsonify({"ok": False, "error": f"Unknown state {target!r}"}), 400

    try:
        clue = session.advance_clue(category_index, row, target)
    except LookupError as e:
        # IndexError is a LookupError too
        status = 404 if isinstance(e, IndexError) else 409
        return jsonify({"ok": False, "error": str(e)}), status
    except InvalidTransition as e:
        return jsonify({"ok": False, "error": str(e)}), 409

    return jsonify({
        "ok": True,
        "category": category_index,
        "row": row,
        "clue": clue.to_public_dict(),
    })


if __name__ == "__main__":
    logging.basicConfig(
        level=getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.run(host="0.0.0.0", port=env_int("PORT", 5000), debug=env_bool("FLASK_DEBUG", False))
