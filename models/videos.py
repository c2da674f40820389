from models import db


class Video(db.Model):
    __tablename__ = "videos"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    url = db.Column(db.String(500), nullable=True)
    folder = db.Column(db.String(100), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=db.func.now(), nullable=False)
    updated_at = db.Column(db.DateTime, default=db.func.now(), onupdate=db.func.now(), nullable=False)

    def __repr__(self):
        return f"<Video {self.title} ({self.folder}#{self.position})>"

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description if self.description is not None else "",
            "url": self.url,
            "folder": self.folder,
            "position": self.position,
        }
