import uuid

from fastapi.testclient import TestClient

from colang.main import app

client = TestClient(app)

PASSWORD = "pass12345"
REDIRECT = "colang://auth/callback"


def _email():
    return f"user-{uuid.uuid4().hex[:10]}@example.com"


def _register(email=None, password=PASSWORD):
    email = email or _email()
    r = client.post('/api/auth/register', json={'name': 'Tester', 'email': email, 'password': password})
    assert r.status_code == 200, r.text
    return email, r.json()['access_token']


def _auth(token):
    return {'Authorization': f'Bearer {token}'}


def test_health_and_request_id():
    r = client.get('/api/health')
    assert r.status_code == 200
    assert r.json() == {'ok': True}
    assert 'X-Request-ID' in r.headers
    r2 = client.get('/api/health', headers={'X-Request-ID': 'abc123'})
    assert r2.headers['X-Request-ID'] == 'abc123'


def test_register_login_and_me():
    email, token = _register()
    me = client.get('/api/auth/me', headers=_auth(token))
    assert me.status_code == 200
    assert me.json()['email'] == email
    assert 'password' not in me.text and 'hash' not in me.text
    login = client.post('/api/auth/login', json={'email': email.upper(), 'password': PASSWORD})
    assert login.status_code == 200
    assert login.json()['user']['email'] == email
    assert client.get('/api/auth/me', headers=_auth(login.json()['access_token'])).status_code == 200


def test_register_validation():
    short = client.post('/api/auth/register', json={'email': _email(), 'password': 'short'})
    assert short.status_code == 400
    blank = client.post('/api/auth/register', json={'email': '   ', 'password': PASSWORD})
    assert blank.status_code == 400
    email, _ = _register()
    dup = client.post('/api/auth/register', json={'email': email, 'password': PASSWORD})
    assert dup.status_code == 409
    missing = client.post('/api/auth/register', json={'email': _email()})
    assert missing.status_code == 422


def test_login_failures_are_indistinguishable():
    email, _ = _register()
    wrong = client.post('/api/auth/login', json={'email': email, 'password': 'wrong-password'})
    unknown = client.post('/api/auth/login', json={'email': _email(), 'password': PASSWORD})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json() == {'detail': 'invalid credentials'}


def test_bearer_failures():
    missing = client.get('/api/auth/me')
    assert missing.status_code == 401
    garbage = client.get('/api/auth/me', headers=_auth('not.a.token'))
    assert garbage.status_code == 401
    assert garbage.json() == {'detail': 'invalid token'}


def test_desktop_code_exchange_works_once():
    _, token = _register()
    created = client.post('/api/auth/desktop/code', json={'redirect_uri': REDIRECT, 'state': 'xyz'},
                          headers=_auth(token))
    assert created.status_code == 200
    body = created.json()
    assert body['state'] == 'xyz' and body['redirect_uri'] == REDIRECT
    assert len(body['code']) == 43
    exchanged = client.post('/api/auth/desktop/token', json={'code': body['code'], 'redirect_uri': REDIRECT})
    assert exchanged.status_code == 200
    desktop_token = exchanged.json()['access_token']
    assert client.get('/api/auth/me', headers=_auth(desktop_token)).status_code == 200
    again = client.post('/api/auth/desktop/token', json={'code': body['code'], 'redirect_uri': REDIRECT})
    assert again.status_code == 401
    assert again.json() == {'detail': 'invalid or expired code'}


def test_desktop_code_requires_auth_and_fields():
    anon = client.post('/api/auth/desktop/code', json={'redirect_uri': REDIRECT, 'state': 'x'})
    assert anon.status_code == 401
    _, token = _register()
    blank = client.post('/api/auth/desktop/code', json={'redirect_uri': REDIRECT, 'state': ' '}, headers=_auth(token))
    assert blank.status_code == 400
    bad_code = client.post('/api/auth/desktop/token', json={'code': 'nope', 'redirect_uri': REDIRECT})
    assert bad_code.status_code == 401


def test_change_password():
    email, token = _register()
    wrong = client.put('/api/account/password', json={'current_password': 'nope-nope', 'new_password': 'newpass123'},
                       headers=_auth(token))
    assert wrong.status_code == 401
    too_short = client.put('/api/account/password', json={'current_password': PASSWORD, 'new_password': 'x'},
                           headers=_auth(token))
    assert too_short.status_code == 400
    ok = client.put('/api/account/password', json={'current_password': PASSWORD, 'new_password': 'newpass123'},
                    headers=_auth(token))
    assert ok.status_code == 200
    assert client.post('/api/auth/login', json={'email': email, 'password': PASSWORD}).status_code == 401
    assert client.post('/api/auth/login', json={'email': email, 'password': 'newpass123'}).status_code == 200


def test_deactivated_account_is_locked_out():
    email, token = _register()
    r = client.post('/api/account/deactivate', json={'password': PASSWORD}, headers=_auth(token))
    assert r.status_code == 200
    login = client.post('/api/auth/login', json={'email': email, 'password': PASSWORD})
    assert login.status_code == 401
    assert login.json() == {'detail': 'invalid credentials'}
    me = client.get('/api/auth/me', headers=_auth(token))
    assert me.status_code == 401
    assert me.json() == {'detail': 'invalid token'}


def test_deactivation_voids_outstanding_desktop_codes():
    _, token = _register()
    created = client.post('/api/auth/desktop/code', json={'redirect_uri': REDIRECT, 'state': 's'},
                          headers=_auth(token))
    assert created.status_code == 200
    r = client.post('/api/account/deactivate', json={'password': PASSWORD}, headers=_auth(token))
    assert r.status_code == 200
    exchanged = client.post('/api/auth/desktop/token',
                            json={'code': created.json()['code'], 'redirect_uri': REDIRECT})
    assert exchanged.status_code == 401
    assert exchanged.json() == {'detail': 'invalid or expired code'}
