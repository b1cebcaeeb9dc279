# tripdraw/routes/draw_routes.py
from flask import Blueprint, current_app, g, jsonify, request

from tripdraw.errors import DrawRejected
from user_auth.utils import identity_required


def create_draw_bp(engine):
    """Create and return the draw blueprint around a wired DrawEngine."""
    draw_bp = Blueprint('draw_bp', __name__, url_prefix='/draw')

    @draw_bp.route('/itinerary', methods=['POST'])
    @identity_required
    def draw_itinerary():
        identity = g.identity
        data = request.get_json(silent=True)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            return jsonify({"success": False, "error": "Request body must be a JSON object.", "code": "INVALID_PARAMS"}), 400

        count = data.get('count', data.get('itemCount'))
        region_id = data.get('regionId')

        try:
            result = engine.draw(
                identity,
                city=data.get('city'),
                district=data.get('district'),
                target_count=count,
                pace=data.get('pace'),
                region_id=str(region_id) if region_id is not None else None,
            )
        except DrawRejected as e:
            current_app.logger.info(f"Draw rejected for {identity.key}: {e.code} {e.detail}")
            return jsonify(e.to_dict()), e.http_status
        except Exception as e:
            current_app.logger.error(f"Draw failed for {identity.key}: {e}", exc_info=True)
            return jsonify({
                "success": False,
                "error": "The draw service is temporarily unavailable, please try again later.",
                "code": "INTERNAL_ERROR",
            }), 500

        return jsonify(engine.to_response(result)), 200

    @draw_bp.route('/quota', methods=['GET'])
    @identity_required
    def draw_quota():
        identity = g.identity
        try:
            status = engine.quota_status(identity)
        except Exception as e:
            current_app.logger.error(f"Quota lookup failed for {identity.key}: {e}", exc_info=True)
            return jsonify({"success": False, "error": "Could not read quota.", "code": "INTERNAL_ERROR"}), 500
        return jsonify({"success": True, **status}), 200

    return draw_bp
