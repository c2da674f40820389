from models import db
from utils.helpers import format_datetime, utcnow


class ProgressAudit(db.Model):
    """Append-only history of progress changes. Rows are never updated or deleted."""
    __tablename__ = "progress_audit"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)  # actor
    target_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    video_id = db.Column(db.Integer, db.ForeignKey("videos.id"), nullable=False)
    completed_after = db.Column(db.Boolean, nullable=False)
    changed_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "actor_id": self.user_id,
            "user_id": self.target_user_id,
            "video_id": self.video_id,
            "completed": self.completed_after,
            "changed_at": format_datetime(self.changed_at),
        }
