import uuid
from reado.extensions import db


class Bookmark(db.Model):
    __tablename__ = 'bookmarks'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    book_id = db.Column(db.String(100), nullable=False)
    page = db.Column(db.Integer, nullable=False)
    color = db.Column(db.String(20), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'book_id', 'page', name='uq_bookmark_user_book_page'),
        db.Index('ix_bookmarks_user', 'user_id'),
    )
