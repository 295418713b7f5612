from unittest.mock import patch, MagicMock
from urllib.parse import urlparse, parse_qs

import jwt
import requests

from reado.middleware.auth import issue_token
from reado.extensions import db
from reado.models.user import User
from tests.conftest import TEST_USER_ID


def _json_response(payload):
    resp = MagicMock()
    resp.raise_for_status.return_value = None
    resp.json.return_value = payload
    return resp


def _token_for(app, user_id):
    with app.test_request_context():
        return issue_token(db.session.get(User, user_id))


class TestGoogleRedirect:
    """GET /users/auth/google"""

    def test_redirects_to_google(self, client):
        resp = client.get('/users/auth/google')
        assert resp.status_code == 302
        location = urlparse(resp.headers['Location'])
        assert location.netloc == 'accounts.google.com'
        params = parse_qs(location.query)
        assert params['client_id'] == ['test-client-id']
        assert params['response_type'] == ['code']
        assert params['scope'] == ['profile email']

    def test_unconfigured_redirects_to_login_error(self, app, client):
        app.config['GOOGLE_CLIENT_ID'] = ''
        resp = client.get('/users/auth/google')
        assert resp.status_code == 302
        assert resp.headers['Location'].endswith('/login?error=oauth_failed')


class TestGoogleCallback:
    """GET /users/auth/google/callback"""

    def test_missing_code_redirects_to_login_error(self, client):
        resp = client.get('/users/auth/google/callback')
        assert resp.status_code == 302
        assert resp.headers['Location'].endswith('/login?error=oauth_failed')

    def test_provider_error_redirects_to_login_error(self, client):
        resp = client.get('/users/auth/google/callback?error=access_denied')
        assert resp.headers['Location'].endswith('/login?error=oauth_failed')

    def test_token_exchange_failure(self, client):
        with patch('reado.api.auth.requests.post', side_effect=requests.ConnectionError('down')):
            resp = client.get('/users/auth/google/callback?code=abc')
        assert resp.headers['Location'].endswith('/login?error=oauth_failed')

    def test_successful_sign_in(self, app, client):
        tokens = {'access_token': 'google-access', 'refresh_token': 'google-refresh'}
        info = {
            'id': 'google-callback-user',
            'name': 'Callback User',
            'email': 'callback@example.com',
            'picture': 'https://example.com/cb.png',
        }
        with patch('reado.api.auth.requests.post', return_value=_json_response(tokens)) as mock_post, \
                patch('reado.api.auth.requests.get', return_value=_json_response(info)) as mock_get:
            resp = client.get('/users/auth/google/callback?code=abc')

        assert mock_post.call_args.kwargs['data']['code'] == 'abc'
        assert mock_get.call_args.kwargs['headers']['Authorization'] == 'Bearer google-access'

        assert resp.status_code == 302
        location = urlparse(resp.headers['Location'])
        assert location.path == '/reading'
        token = parse_qs(location.query)['token'][0]

        payload = jwt.decode(token, 'test-secret', algorithms=['HS256'])
        assert payload['name'] == 'Callback User'

        user = User.query.filter_by(google_id='google-callback-user').one()
        assert payload['sub'] == user.id
        assert user.refresh_token == 'google-refresh'

        me = client.get('/users/me', headers={'Authorization': f'Bearer {token}'})
        assert me.status_code == 200
        assert me.get_json()['email'] == 'callback@example.com'


class TestRequireAuth:
    """GET /users/me"""

    def test_valid_token(self, app, client):
        token = _token_for(app, TEST_USER_ID)
        resp = client.get('/users/me', headers={'Authorization': f'Bearer {token}'})
        assert resp.status_code == 200
        assert resp.get_json()['id'] == TEST_USER_ID

    def test_missing_token(self, client):
        resp = client.get('/users/me')
        assert resp.status_code == 401

    def test_garbage_token(self, client):
        resp = client.get('/users/me', headers={'Authorization': 'Bearer not-a-jwt'})
        assert resp.status_code == 401
        assert resp.get_json()['error'] == 'Invalid token'

    def test_wrong_secret(self, client):
        token = jwt.encode({'sub': TEST_USER_ID}, 'other-secret', algorithm='HS256')
        resp = client.get('/users/me', headers={'Authorization': f'Bearer {token}'})
        assert resp.status_code == 401

    def test_expired_token(self, client):
        token = jwt.encode({'sub': TEST_USER_ID, 'exp': 1}, 'test-secret', algorithm='HS256')
        resp = client.get('/users/me', headers={'Authorization': f'Bearer {token}'})
        assert resp.status_code == 401
        assert resp.get_json()['error'] == 'Token expired'

    def test_unknown_user(self, client):
        token = jwt.encode({'sub': 'no-such-user'}, 'test-secret', algorithm='HS256')
        resp = client.get('/users/me', headers={'Authorization': f'Bearer {token}'})
        assert resp.status_code == 401
