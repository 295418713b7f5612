"""Comment submission with toxicity screening and background spoiler tagging.

Submission is synchronous up to the point the comment is stored:

    1. toxicity check (Perspective); unavailable means nsfw=False
    2. provisional spoiler state from the author's own flag
    3. persist, return to the caller

If the author did not flag the comment as a spoiler, an LLM classification
is then handed to a thread pool. It never blocks or fails the request. When
it succeeds, the verdict is written with a single conditional UPDATE that
skips comments whose spoiler source is "user", so an author's flag always
wins over the classifier.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait

from sqlalchemy.exc import SQLAlchemyError

from reado.extensions import db
from reado.models.comment import Comment, SPOILER_NONE, SPOILER_USER, SPOILER_LLM
from reado.models.user import User
from reado.services.comments import CommentValidationError, optional_int, optional_percent
from reado.services.spoilers import SpoilerClassifier
from reado.services.toxicity import ToxicityScorer

logger = logging.getLogger(__name__)


def initial_spoiler_state(user_marked_spoiler):
    """Map the author's tri-state flag to (is_spoiler, source)."""
    if user_marked_spoiler is True:
        return True, SPOILER_USER
    # False and "not given" both start out as undetermined
    return False, SPOILER_NONE


class ModerationPipeline:
    def __init__(self, app=None, scorer=None, classifier=None):
        self.scorer = scorer
        self.classifier = classifier
        self.app = None
        self.executor = None
        self._pending = set()
        self._lock = threading.Lock()
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        if self.scorer is None:
            self.scorer = ToxicityScorer(
                api_key=app.config['PERSPECTIVE_API_KEY'],
                threshold=app.config['NSFW_THRESHOLD'],
                timeout=app.config['PERSPECTIVE_TIMEOUT'],
            )
        if self.classifier is None:
            self.classifier = SpoilerClassifier(
                api_key=app.config['OPENROUTER_API_KEY'],
                model=app.config['OPENROUTER_MODEL'],
                timeout=app.config['OPENROUTER_TIMEOUT'],
            )
        self.executor = ThreadPoolExecutor(
            max_workers=app.config['MODERATION_WORKERS'],
            thread_name_prefix='spoiler-classifier',
        )
        app.extensions['moderation'] = self

        if not self.scorer.enabled:
            app.logger.info('Perspective API not configured, NSFW screening disabled')
        if not self.classifier.enabled:
            app.logger.info('OpenRouter not configured, spoiler classification disabled')

    # ------------------------------------------------------------------
    # Synchronous part
    # ------------------------------------------------------------------

    def submit(self, data):
        """Validate, screen and store a comment. Returns the stored Comment."""
        if not isinstance(data, dict):
            raise CommentValidationError('Request body is required')

        book_id = data.get('bookId')
        user_id = data.get('userId')
        if not book_id or not isinstance(book_id, str):
            raise CommentValidationError('bookId is required')
        if not user_id or not isinstance(user_id, str):
            raise CommentValidationError('userId is required')

        text = data.get('text')
        if text is not None and not isinstance(text, str):
            raise CommentValidationError('text must be a string')
        page = optional_int(data, 'page')
        percent = optional_percent(data)

        if db.session.get(User, user_id) is None:
            raise CommentValidationError('User not found')

        user_marked = data.get('userMarkedSpoiler')
        nsfw = self.scorer.is_nsfw(text or '')
        is_spoiler, source = initial_spoiler_state(user_marked)

        comment = Comment(
            book_id=book_id,
            user_id=user_id,
            page=page,
            percent=percent,
            text=text,
            nsfw=nsfw,
            spoiler_is_spoiler=is_spoiler,
            spoiler_source=source,
        )
        db.session.add(comment)
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.warning('Could not store comment on %s: %s', book_id, e)
            raise CommentValidationError('Could not save comment')

        # Load everything the response needs before the classifier can run
        db.session.refresh(comment)
        comment.author  # noqa: B018
        logger.info(
            'Stored comment %s on %s (nsfw=%s, spoiler_source=%s)',
            comment.id, book_id, nsfw, source,
        )

        if user_marked is not True:
            self.schedule_classification(
                comment.id,
                text or '',
                book_title=data.get('bookTitle'),
                page=page,
                page_range=data.get('pageRange'),
            )
        return comment

    # ------------------------------------------------------------------
    # Background part
    # ------------------------------------------------------------------

    def schedule_classification(self, comment_id, text, book_title=None, page=None, page_range=None):
        """Queue spoiler classification. Returns the Future, or None if skipped."""
        if not self.classifier.enabled:
            logger.debug('Skipping spoiler classification for %s', comment_id)
            return None
        future = self.executor.submit(
            self._classify, comment_id, text, book_title, page, page_range,
        )
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future):
        with self._lock:
            self._pending.discard(future)

    def _classify(self, comment_id, text, book_title, page, page_range):
        try:
            verdict = self.classifier.classify(
                text, book_title=book_title, page=page, page_range=page_range,
            )
            if verdict is None:
                logger.info('No spoiler verdict for comment %s, keeping provisional state', comment_id)
                return False
            with self.app.app_context():
                return self.apply_verdict(comment_id, verdict)
        except Exception:
            logger.exception('Spoiler classification failed for comment %s', comment_id)
            return False

    def apply_verdict(self, comment_id, verdict):
        """Store a classifier verdict unless the author flagged the comment.

        Returns True if a row was updated.
        """
        try:
            updated = (
                Comment.query
                .filter(Comment.id == comment_id, Comment.spoiler_source != SPOILER_USER)
                .update(
                    {
                        Comment.spoiler_is_spoiler: verdict.is_spoiler,
                        Comment.spoiler_source: SPOILER_LLM,
                        Comment.spoiler_confidence: verdict.confidence,
                        Comment.version: Comment.version + 1,
                    },
                    synchronize_session=False,
                )
            )
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        if updated:
            logger.info(
                'Comment %s classified: is_spoiler=%s confidence=%.2f',
                comment_id, verdict.is_spoiler, verdict.confidence,
            )
        else:
            logger.info('Comment %s gone or flagged by its author, verdict dropped', comment_id)
        return bool(updated)

    def drain(self, timeout=None):
        """Wait for queued classifications to finish."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self, wait_for_pending=False):
        if self.executor is not None:
            self.executor.shutdown(wait=wait_for_pending)
