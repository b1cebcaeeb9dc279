import atexit
import logging
import os

from flask import Flask, jsonify

from tripdraw import config
from tripdraw.firebase.catalog_store import FirestoreCatalog
from tripdraw.firebase.draw_store import FirestoreDrawStore
from tripdraw.firebase.firebase_config import get_db
from tripdraw.firebase.sponsor_store import FirestoreSponsorStore
from tripdraw.routes.draw_routes import create_draw_bp
from tripdraw.services.draw_engine import DrawEngine
from tripdraw.services.ledger import DedupLedger, GuestSessionStore
from tripdraw.services.quota import QuotaGovernor
from tripdraw.services.reorder_adapter import ReorderAdapter
from tripdraw.services.rewards import RewardRoller


def build_engine(db=None):
    """Wire the draw engine against Firestore and the configured advisory service."""
    db = db or get_db()
    draw_store = FirestoreDrawStore(db)

    guest_store = GuestSessionStore(
        ttl_seconds=config.GUEST_LEDGER_TTL_SECONDS,
        limit=config.DRAW_DEDUP_LIMIT,
        sweep_interval=config.GUEST_SWEEP_INTERVAL_SECONDS,
    )
    guest_store.start()
    atexit.register(guest_store.close)

    return DrawEngine(
        catalog=FirestoreCatalog(db),
        draw_store=draw_store,
        ledger=DedupLedger(draw_store, guest_store, config.DRAW_DEDUP_LIMIT),
        quota=QuotaGovernor(
            draw_store,
            ceiling=config.DAILY_DRAW_LIMIT,
            exempt_identities=config.DRAW_EXEMPT_IDENTITIES,
            timezone=config.QUOTA_TIMEZONE,
        ),
        reorder_adapter=ReorderAdapter(api_key=config.REORDER_API_KEY),
        reward_roller=RewardRoller(FirestoreSponsorStore(db), config.DEFAULT_REWARD_DROP_RATE),
        catalog_limit=config.CATALOG_FETCH_LIMIT,
    )


def create_app(engine=None):
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    app = Flask(__name__)
    app.secret_key = os.environ.get('FLASK_SECRET_KEY', 'a_fallback_secret_key_for_dev_only')

    engine = engine or build_engine()
    app.register_blueprint(create_draw_bp(engine))

    @app.errorhandler(401)
    def unauthorized(e):
        return jsonify({"success": False, "error": e.description, "code": "UNAUTHORIZED"}), 401

    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({"status": "ok"})

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True, port=int(os.environ.get("PORT", 5000)))
