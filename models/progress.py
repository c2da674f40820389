from models import db
from utils.helpers import format_datetime, utcnow


class Progress(db.Model):
    __tablename__ = "progress"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    video_id = db.Column(db.Integer, db.ForeignKey("videos.id"), nullable=False)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("user_id", "video_id", name="unique_user_video"),
    )

    def __repr__(self):
        return f"<Progress user={self.user_id} video={self.video_id} completed={self.completed}>"

    def to_dict(self):
        return {
            "video_id": self.video_id,
            "completed": self.completed,
            "updated_at": format_datetime(self.updated_at),
        }
