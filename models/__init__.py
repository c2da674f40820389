from flask_sqlalchemy import SQLAlchemy

# Initialize SQLAlchemy
db = SQLAlchemy()

# Import models
from models.users import User
from models.videos import Video
from models.progress import Progress
from models.progress_audit import ProgressAudit
from models.sessions import UserSession
