import uuid
from datetime import datetime, timezone
from reado.extensions import db

LIKE = 'like'
DISLIKE = 'dislike'

SPOILER_NONE = 'none'
SPOILER_USER = 'user'
SPOILER_LLM = 'llm'


class Comment(db.Model):
    __tablename__ = 'comments'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    book_id = db.Column(db.String(100), nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    page = db.Column(db.Integer, nullable=True)
    percent = db.Column(db.Float, nullable=True)
    text = db.Column(db.Text, nullable=True)
    likes = db.Column(db.Integer, nullable=False, default=0)
    dislikes = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
    nsfw = db.Column(db.Boolean, nullable=False, default=False)
    spoiler_is_spoiler = db.Column(db.Boolean, nullable=False, default=False)
    spoiler_source = db.Column(db.String(10), nullable=False, default=SPOILER_NONE)
    spoiler_confidence = db.Column(db.Float, nullable=True)
    version = db.Column(db.Integer, nullable=False)

    reactions = db.relationship(
        'CommentReaction',
        backref='comment',
        cascade='all, delete-orphan',
        lazy='selectin',
    )

    __mapper_args__ = {'version_id_col': version}

    __table_args__ = (
        db.CheckConstraint('percent IS NULL OR (percent >= 0 AND percent <= 100)', name='ck_comment_percent'),
        db.CheckConstraint("spoiler_source IN ('none', 'user', 'llm')", name='ck_comment_spoiler_source'),
        db.Index('ix_comments_book_page', 'book_id', 'page'),
        db.Index('ix_comments_user', 'user_id'),
    )

    def _voters(self, polarity):
        return [r.user_id for r in self.reactions if r.polarity == polarity]

    @property
    def liked_by(self):
        return self._voters(LIKE)

    @property
    def disliked_by(self):
        return self._voters(DISLIKE)

    def reaction_of(self, user_id):
        for reaction in self.reactions:
            if reaction.user_id == user_id:
                return reaction
        return None


class CommentReaction(db.Model):
    """One row per (comment, user): a user holds at most one polarity."""
    __tablename__ = 'comment_reactions'

    comment_id = db.Column(db.String(36), db.ForeignKey('comments.id', ondelete='CASCADE'), primary_key=True)
    user_id = db.Column(db.String(36), primary_key=True)
    polarity = db.Column(db.String(10), nullable=False)

    __table_args__ = (
        db.CheckConstraint("polarity IN ('like', 'dislike')", name='ck_reaction_polarity'),
    )
