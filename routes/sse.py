import logging
import bleach
from flask import Blueprint, Response, request, jsonify, g
from classes.validators import validate_length
from utils.utils import login_required, admin_required, get_broadcaster

logger = logging.getLogger(__name__)

sse_bp = Blueprint("sse", __name__)


def stream_frames(broadcaster, handle):
    """Yield frames until the channel closes; the server closing the generator on disconnect unsubscribes."""
    try:
        while True:
            frame = handle.channel.read()
            if frame is None:
                break
            yield frame
    finally:
        broadcaster.unsubscribe(handle)


# Live progress updates
@sse_bp.route("/progress", methods=["GET"])
@login_required
def progress_stream():
    broadcaster = get_broadcaster()
    handle = broadcaster.subscribe(g.user.user_id, g.user.role, username=g.user.username)

    return Response(
        stream_frames(broadcaster, handle),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@sse_bp.route("/system-message", methods=["POST"])
@admin_required
def system_message():
    data = request.get_json(silent=True) or {}
    message = bleach.clean(validate_length("Message", data.get("message"), 500), tags=[], strip=True)
    message_type = data.get("type", "info")
    if message_type not in ("info", "warning", "error"):
        message_type = "info"

    delivered = get_broadcaster().system_message(message, message_type)
    return jsonify({"message": "System message sent", "delivered": delivered}), 200
