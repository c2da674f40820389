import logging
import math

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from classes.errors import InvalidReference, NotFound, Unavailable
from models import db
from models.progress import Progress
from models.progress_audit import ProgressAudit
from models.users import User
from models.videos import Video
from utils.helpers import completion_percentage, format_datetime, utcnow

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ProgressManager:
    """Reads and writes per-user video completion.

    Writes follow one order: authorize, rate limit, validate, persist the whole
    batch in a single transaction (upsert + audit row per update), and only
    after commit summarize and broadcast.
    """

    def __init__(self, auth_service, broadcaster, rate_limiter, clock=utcnow):
        self.auth_service = auth_service
        self.broadcaster = broadcaster
        self.rate_limiter = rate_limiter
        self.clock = clock

    # Lookups

    @staticmethod
    def get_active_user(username):
        user = User.query.filter_by(username=username, is_deleted=False).first()
        if not user:
            raise NotFound("User not found")
        return user

    @staticmethod
    def validate_video_ids(video_ids):
        wanted = set(video_ids)
        found = {
            row.id for row in
            db.session.query(Video.id).filter(Video.id.in_(wanted), Video.is_deleted.is_(False))
        }
        missing = wanted - found
        if missing:
            raise InvalidReference(f"Unknown or deleted video ids: {sorted(missing)}")

    # Summaries

    @staticmethod
    def folder_summary(user_id):
        """Per-folder ``{total, completed, percentage}`` over non-deleted videos."""
        videos = (
            db.session.query(Video.id, Video.folder)
            .filter(Video.is_deleted.is_(False))
            .order_by(Video.folder, Video.position)
            .all()
        )
        completed_ids = {
            row.video_id for row in
            db.session.query(Progress.video_id).filter(Progress.user_id == user_id, Progress.completed.is_(True))
        }

        summary = {}
        for video in videos:
            folder = summary.setdefault(video.folder, {"total": 0, "completed": 0, "percentage": 0.0})
            folder["total"] += 1
            if video.id in completed_ids:
                folder["completed"] += 1

        for folder in summary.values():
            folder["percentage"] = completion_percentage(folder["completed"], folder["total"])
        return summary

    def get_progress(self, actor, username):
        self.auth_service.require_self_or_admin(actor, username)
        user = self.get_active_user(username)

        records = Progress.query.filter_by(user_id=user.id).all()
        progress = {
            str(record.video_id): {
                "completed": record.completed,
                "updated_at": format_datetime(record.updated_at),
            }
            for record in records
        }
        last_updated = max((record.updated_at for record in records), default=None)

        return {
            "progress": progress,
            "progressSummary": self.folder_summary(user.id),
            "lastUpdated": format_datetime(last_updated),
        }

    def get_summary(self, actor, username):
        self.auth_service.require_self_or_admin(actor, username)
        user = self.get_active_user(username)

        summary = self.folder_summary(user.id)
        folders = [
            {
                "folder": name,
                "total_videos": folder["total"],
                "completed_videos": folder["completed"],
                "completion_percentage": folder["percentage"],
            }
            for name, folder in summary.items()
        ]
        total_videos = sum(folder["total"] for folder in summary.values())
        total_completed = sum(folder["completed"] for folder in summary.values())

        return {
            "folders": folders,
            "overall": {
                "totalVideos": total_videos,
                "totalCompleted": total_completed,
                "percentage": completion_percentage(total_completed, total_videos),
            },
        }

    # Updates

    def update_progress(self, actor, username, updates):
        """Apply ``[(video_id, completed), ...]`` for ``username`` on behalf of ``actor``.

        All-or-nothing: an invalid reference or a failed write leaves no
        record or audit row behind.
        """
        self.auth_service.require_self_or_admin(actor, username)
        if not actor.is_admin:
            self.rate_limiter.hit(f"progress:{actor.user_id}")

        subject = self.get_active_user(username)
        self.validate_video_ids([video_id for video_id, _ in updates])

        try:
            updated = self._apply(actor, subject.id, updates)
        except IntegrityError:
            # A concurrent first write to the same (user, video) won the insert; the retry updates it
            db.session.rollback()
            logger.info("Retrying progress batch for %s after concurrent insert", username)
            try:
                updated = self._apply(actor, subject.id, updates)
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error("Progress update for %s failed: %s", username, e)
                raise Unavailable(str(e))
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error("Progress update for %s failed: %s", username, e)
            raise Unavailable(str(e))

        logger.info("User %s updated %d progress record(s) for %s", actor.username, len(updated), username)

        summary = self.folder_summary(subject.id)
        self.broadcaster.broadcast({
            "type": "progress_update",
            "user_id": subject.id,
            "username": subject.username,
            "updated_by": actor.user_id,
            "updates": updated,
            "updated_at": format_datetime(self.clock()),
        })

        return {
            "message": "Progress updated successfully",
            "updatedProgress": updated,
            "progressSummary": summary,
        }

    def _apply(self, actor, subject_id, updates):
        now = self.clock()
        records = []
        for video_id, completed in updates:
            record = (
                Progress.query
                .filter_by(user_id=subject_id, video_id=video_id)
                .with_for_update()
                .first()
            )
            if record is None:
                record = Progress(user_id=subject_id, video_id=video_id)
                db.session.add(record)
            record.completed = completed
            record.updated_at = now

            db.session.add(ProgressAudit(
                user_id=actor.user_id,
                target_user_id=subject_id,
                video_id=video_id,
                completed_after=completed,
                changed_at=now,
            ))
            records.append(record)

        db.session.commit()
        # A video repeated in one batch maps to one row; report each row once, last write wins
        unique = {record.video_id: record for record in records}
        return [record.to_dict() for record in unique.values()]

    # Admin views

    def all_users_progress(self, actor, folder=None, incomplete_only=False, page=1, limit=20):
        self.auth_service.require_role(actor, "admin")
        limit = min(limit, MAX_PAGE_SIZE)

        video_query = db.session.query(Video.id).filter(Video.is_deleted.is_(False))
        if folder:
            video_query = video_query.filter(Video.folder == folder)
        video_ids = [row.id for row in video_query]
        total_videos = len(video_ids)

        completed_counts = {}
        if video_ids:
            completed_counts = dict(
                db.session.query(Progress.user_id, func.count(Progress.id))
                .filter(Progress.completed.is_(True), Progress.video_id.in_(video_ids))
                .group_by(Progress.user_id)
                .all()
            )
        last_activity = dict(
            db.session.query(Progress.user_id, func.max(Progress.updated_at))
            .group_by(Progress.user_id)
            .all()
        )

        rows = []
        for user in User.query.filter_by(is_deleted=False).all():
            completed = completed_counts.get(user.id, 0)
            percentage = completion_percentage(completed, total_videos)
            if incomplete_only and total_videos and completed >= total_videos:
                continue
            rows.append({
                "id": user.id,
                "username": user.username,
                "name": user.name,
                "role": user.role,
                "total_videos": total_videos,
                "completed_videos": completed,
                "completion_percentage": percentage,
                "last_activity": format_datetime(last_activity.get(user.id)),
            })

        rows.sort(key=lambda row: (-row["completion_percentage"], row["username"]))
        total = len(rows)
        start = (page - 1) * limit

        return {
            "users": rows[start:start + limit],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }

    def audit_history(self, actor, username, limit=100):
        self.auth_service.require_role(actor, "admin")
        user = self.get_active_user(username)
        entries = (
            ProgressAudit.query
            .filter_by(target_user_id=user.id)
            .order_by(ProgressAudit.changed_at.desc(), ProgressAudit.id.desc())
            .limit(min(limit, MAX_PAGE_SIZE))
            .all()
        )
        return {"username": user.username, "entries": [entry.to_dict() for entry in entries]}
