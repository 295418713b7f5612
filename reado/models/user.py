import uuid
from datetime import datetime, timezone
from reado.extensions import db


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    google_id = db.Column(db.String(64), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(320), nullable=False, index=True)
    picture = db.Column(db.String(1000), nullable=False)
    access_token = db.Column(db.Text, nullable=False)
    refresh_token = db.Column(db.Text, nullable=True)
    token_expiry = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    last_login = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    bookmarks = db.relationship(
        'Bookmark',
        backref='user',
        order_by='Bookmark.position',
        cascade='all, delete-orphan',
    )
    comments = db.relationship('Comment', backref='author', lazy='dynamic')
