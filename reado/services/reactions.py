"""Like/dislike ledger for comments.

A user holds at most one reaction per comment (enforced by the
comment_reactions primary key). Reacting with the polarity you already
hold removes it; reacting with the other polarity switches it.

Concurrent reactions to one comment are serialized optimistically: every
change bumps ``comments.version`` and a flush against a stale version
raises ``StaleDataError``, after which the whole read-modify-write is
retried from a fresh read.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from reado.extensions import db
from reado.models.comment import Comment, CommentReaction, LIKE, DISLIKE
from reado.services.comments import CommentNotFound, ReactionConflict

logger = logging.getLogger(__name__)

POLARITIES = (LIKE, DISLIKE)
MAX_ATTEMPTS = 10

_COUNTERS = {LIKE: 'likes', DISLIKE: 'dislikes'}


def _bump(comment, polarity, delta):
    attr = _COUNTERS[polarity]
    setattr(comment, attr, max(0, (getattr(comment, attr) or 0) + delta))


def apply_reaction(comment, user_id, polarity):
    """Apply the toggle rules to a loaded comment without committing."""
    existing = comment.reaction_of(user_id)
    if existing is not None and existing.polarity == polarity:
        comment.reactions.remove(existing)
        _bump(comment, polarity, -1)
        return

    if existing is not None:
        # Switching costs the old vote first
        _bump(comment, existing.polarity, -1)
        existing.polarity = polarity
    else:
        comment.reactions.append(CommentReaction(user_id=user_id, polarity=polarity))
    _bump(comment, polarity, 1)


def react(comment_id, user_id, polarity):
    """Toggle ``user_id``'s ``polarity`` reaction on a comment and persist it."""
    if polarity not in POLARITIES:
        raise ValueError(f'Unknown polarity: {polarity}')

    for attempt in range(1, MAX_ATTEMPTS + 1):
        comment = db.session.get(Comment, comment_id, populate_existing=True)
        if comment is None:
            raise CommentNotFound(comment_id)

        apply_reaction(comment, user_id, polarity)
        try:
            db.session.commit()
            return comment
        except (StaleDataError, IntegrityError) as e:
            db.session.rollback()
            logger.info(
                'Concurrent update on comment %s (attempt %d/%d): %s',
                comment_id, attempt, MAX_ATTEMPTS, type(e).__name__,
            )

    raise ReactionConflict('Comment is being updated too often, please retry')


def vote_status(comment_id, user_id):
    comment = db.session.get(Comment, comment_id)
    if comment is None:
        raise CommentNotFound(comment_id)
    reaction = comment.reaction_of(user_id)
    return {
        'hasLiked': reaction is not None and reaction.polarity == LIKE,
        'hasDisliked': reaction is not None and reaction.polarity == DISLIKE,
    }
