import bleach
from flask import Blueprint, request, jsonify
from sqlalchemy import func
from classes.errors import InvalidRequest, NotFound
from classes.validators import validate_length, validate_position
from models import db
from models.videos import Video
from utils.utils import login_required, admin_required

videos_bp = Blueprint("videos", __name__)

ALLOWED_DESCRIPTION_TAGS = ["b", "i", "u", "strong", "em", "p", "br", "ul", "ol", "li", "a", "blockquote"]


def get_active_video_or_404(video_id):
    video = Video.query.filter_by(id=video_id, is_deleted=False).first()
    if not video:
        raise NotFound("Video not found")
    return video


def clean_description(value):
    description = validate_length("Description", value or "", 1000, min_length=0)
    return bleach.clean(description, tags=ALLOWED_DESCRIPTION_TAGS, strip=True)


def get_json_object():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequest("Request body must be a JSON object.")
    return data


@videos_bp.route("", methods=["GET"])
@login_required
def list_videos():
    query = Video.query.filter_by(is_deleted=False)
    folder = request.args.get("folder")
    if folder:
        query = query.filter_by(folder=folder)
    videos = query.order_by(Video.folder, Video.position, Video.id).all()
    return jsonify({"videos": [video.to_dict() for video in videos]}), 200


@videos_bp.route("/folders", methods=["GET"])
@login_required
def list_folders():
    rows = (
        db.session.query(Video.folder, func.count(Video.id))
        .filter(Video.is_deleted.is_(False))
        .group_by(Video.folder)
        .order_by(Video.folder)
        .all()
    )
    return jsonify({"folders": [{"name": folder, "video_count": count} for folder, count in rows]}), 200


@videos_bp.route("/<int:video_id>", methods=["GET"])
@login_required
def get_video(video_id):
    return jsonify({"video": get_active_video_or_404(video_id).to_dict()}), 200


@videos_bp.route("", methods=["POST"])
@admin_required
def create_video():
    data = get_json_object()

    video = Video(
        title=validate_length("Title", data.get("title"), 200),
        folder=validate_length("Folder", data.get("folder"), 100),
        description=clean_description(data["description"]) if data.get("description") is not None else None,
        url=data.get("url"),
        position=validate_position(data.get("position", 0)),
    )
    db.session.add(video)
    db.session.commit()

    return jsonify({"message": "Video created successfully", "video": video.to_dict()}), 201


@videos_bp.route("/<int:video_id>", methods=["PUT"])
@admin_required
def update_video(video_id):
    video = get_active_video_or_404(video_id)
    data = get_json_object()

    if "title" in data:
        video.title = validate_length("Title", data["title"], 200)
    if "folder" in data:
        video.folder = validate_length("Folder", data["folder"], 100)
    if "description" in data:
        video.description = clean_description(data["description"])
    if "url" in data:
        video.url = data["url"]
    if "position" in data:
        video.position = validate_position(data["position"])

    db.session.commit()
    return jsonify({"message": "Video updated successfully", "video": video.to_dict()}), 200


@videos_bp.route("/<int:video_id>", methods=["DELETE"])
@admin_required
def delete_video(video_id):
    video = get_active_video_or_404(video_id)
    video.is_deleted = True
    db.session.commit()
    return jsonify({"message": "Video deleted successfully"}), 200
