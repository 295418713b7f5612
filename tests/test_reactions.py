import json
import threading
import uuid

import pytest

from reado.extensions import db
from reado.models.comment import Comment, LIKE, DISLIKE
from reado.services.comments import CommentNotFound
from reado.services.reactions import react, vote_status
from tests.conftest import TEST_USER_ID, OTHER_USER_ID


def _create_comment(client, **overrides):
    payload = {
        'bookId': 'book-123',
        'userId': TEST_USER_ID,
        'page': 5,
        'text': 'What a chapter',
    }
    payload.update(overrides)
    resp = client.post('/comments', data=json.dumps(payload), content_type='application/json')
    assert resp.status_code == 201
    return resp.get_json()['id']


def _vote(client, comment_id, polarity, user_id=OTHER_USER_ID):
    return client.patch(
        f'/comments/{comment_id}/{polarity}',
        data=json.dumps({'userId': user_id}),
        content_type='application/json',
    )


class TestLike:
    """PATCH /comments/<id>/like"""

    def test_like_adds_user(self, client):
        comment_id = _create_comment(client)
        resp = _vote(client, comment_id, 'like')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['likes'] == 1
        assert data['likedBy'] == [OTHER_USER_ID]
        assert data['userId']['id'] == TEST_USER_ID

    def test_like_twice_toggles_off(self, client):
        comment_id = _create_comment(client)
        _vote(client, comment_id, 'like')
        data = _vote(client, comment_id, 'like').get_json()
        assert data['likes'] == 0
        assert data['likedBy'] == []

    def test_dislike_after_like_switches(self, client):
        comment_id = _create_comment(client)
        _vote(client, comment_id, 'like')
        data = _vote(client, comment_id, 'dislike').get_json()
        assert data['likes'] == 0
        assert data['dislikes'] == 1
        assert data['likedBy'] == []
        assert data['dislikedBy'] == [OTHER_USER_ID]

    def test_likes_from_different_users_accumulate(self, client):
        comment_id = _create_comment(client)
        _vote(client, comment_id, 'like', user_id=TEST_USER_ID)
        data = _vote(client, comment_id, 'like', user_id=OTHER_USER_ID).get_json()
        assert data['likes'] == 2
        assert sorted(data['likedBy']) == sorted([TEST_USER_ID, OTHER_USER_ID])

    def test_missing_user_id_returns_400(self, client):
        comment_id = _create_comment(client)
        resp = client.patch(f'/comments/{comment_id}/like', data=json.dumps({}), content_type='application/json')
        assert resp.status_code == 400

    def test_missing_comment_returns_404(self, client):
        resp = _vote(client, 'nonexistent-id', 'like')
        assert resp.status_code == 404

    def test_array_body_returns_400(self, client):
        comment_id = _create_comment(client)
        resp = client.patch(f'/comments/{comment_id}/like', data=json.dumps(['x']), content_type='application/json')
        assert resp.status_code == 400

    def test_non_string_user_id_returns_400(self, client):
        comment_id = _create_comment(client)
        for _ in range(2):
            resp = _vote(client, comment_id, 'like', user_id=42)
            assert resp.status_code == 400

        data = client.get(f'/comments/{comment_id}').get_json()
        assert data['likes'] == 0
        assert data['likedBy'] == []


class TestDislike:
    """PATCH /comments/<id>/dislike"""

    def test_dislike_twice_toggles_off(self, client):
        comment_id = _create_comment(client)
        _vote(client, comment_id, 'dislike')
        data = _vote(client, comment_id, 'dislike').get_json()
        assert data['dislikes'] == 0
        assert data['dislikedBy'] == []

    def test_like_after_dislike_switches(self, client):
        comment_id = _create_comment(client)
        _vote(client, comment_id, 'dislike')
        data = _vote(client, comment_id, 'like').get_json()
        assert data['dislikes'] == 0
        assert data['likes'] == 1

    def test_missing_comment_returns_404(self, client):
        resp = _vote(client, 'nonexistent-id', 'dislike')
        assert resp.status_code == 404


class TestVoteStatus:
    """GET /comments/<id>/vote-status"""

    def test_no_vote(self, client):
        comment_id = _create_comment(client)
        resp = client.get(f'/comments/{comment_id}/vote-status?userId={OTHER_USER_ID}')
        assert resp.status_code == 200
        assert resp.get_json() == {'hasLiked': False, 'hasDisliked': False}

    def test_reflects_current_vote(self, client):
        comment_id = _create_comment(client)
        _vote(client, comment_id, 'dislike')
        resp = client.get(f'/comments/{comment_id}/vote-status?userId={OTHER_USER_ID}')
        assert resp.get_json() == {'hasLiked': False, 'hasDisliked': True}

    def test_missing_user_id_returns_400(self, client):
        comment_id = _create_comment(client)
        assert client.get(f'/comments/{comment_id}/vote-status').status_code == 400

    def test_missing_comment_returns_404(self, client):
        resp = client.get(f'/comments/nonexistent-id/vote-status?userId={OTHER_USER_ID}')
        assert resp.status_code == 404


class TestLedgerService:
    """reado.services.reactions called directly."""

    def test_counter_never_goes_negative(self, app, client):
        comment_id = _create_comment(client)
        react(comment_id, OTHER_USER_ID, LIKE)

        # Corrupt the counter, then un-like: the floor holds at zero
        comment = db.session.get(Comment, comment_id)
        comment.likes = 0
        db.session.commit()
        comment = react(comment_id, OTHER_USER_ID, LIKE)
        assert comment.likes == 0
        assert comment.liked_by == []

    def test_unknown_polarity_rejected(self, app, client):
        comment_id = _create_comment(client)
        with pytest.raises(ValueError):
            react(comment_id, OTHER_USER_ID, 'love')

    def test_not_found(self, app):
        with pytest.raises(CommentNotFound):
            react('nonexistent-id', OTHER_USER_ID, LIKE)
        with pytest.raises(CommentNotFound):
            vote_status('nonexistent-id', OTHER_USER_ID)


class TestConcurrentReactions:
    """Many users reacting to one comment at the same time."""

    def _create_comment(self, app):
        comment = Comment(book_id='book-123', user_id=TEST_USER_ID, page=1, text='busy comment')
        db.session.add(comment)
        db.session.commit()
        return comment.id

    def _run_concurrently(self, app, calls):
        barrier = threading.Barrier(len(calls))
        errors = []

        def worker(user_id, polarity):
            with app.app_context():
                barrier.wait()
                try:
                    react(comment_id, user_id, polarity)
                except Exception as e:  # surfaced through the assertion below
                    errors.append(e)

        comment_id = self.comment_id
        threads = [threading.Thread(target=worker, args=call) for call in calls]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)
        assert errors == []

    def test_no_lost_likes(self, file_app):
        self.comment_id = self._create_comment(file_app)
        users = [str(uuid.uuid4()) for _ in range(6)]

        self._run_concurrently(file_app, [(u, LIKE) for u in users])

        db.session.expire_all()
        comment = db.session.get(Comment, self.comment_id)
        assert comment.likes == 6
        assert sorted(comment.liked_by) == sorted(users)

    def test_sets_stay_disjoint(self, file_app):
        self.comment_id = self._create_comment(file_app)
        users = [str(uuid.uuid4()) for _ in range(3)]
        calls = [(u, LIKE) for u in users] + [(users[0], DISLIKE), (users[1], DISLIKE)]

        self._run_concurrently(file_app, calls)

        db.session.expire_all()
        comment = db.session.get(Comment, self.comment_id)
        assert not set(comment.liked_by) & set(comment.disliked_by)
        assert comment.likes == len(comment.liked_by)
        assert comment.dislikes == len(comment.disliked_by)
