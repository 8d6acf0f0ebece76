"""
Pytest fixtures for Orderdesk backend tests.

Every test gets its own app bound to a fresh data file under tmp_path.
"""

import pytest
from orderdesk import create_app


SETUP_SECRET = "S3CRET"


@pytest.fixture(scope='function')
def data_file(tmp_path):
    return tmp_path / "commandes.json"


@pytest.fixture(scope='function')
def config_overrides():
    """Override per test module to change app config."""
    return {}


@pytest.fixture(scope='function')
def app(data_file, config_overrides):
    """Create application for testing."""
    config = {
        'TESTING': True,
        'DATA_FILE': str(data_file),
        'SETUP_SECRET': SETUP_SECRET,
        'BCRYPT_ROUNDS': 4,
        'SESSION_BACKEND': 'store',
        'ORDER_MERGE_POLICY': 'merge',
    }
    config.update(config_overrides)
    app = create_app(config)

    with app.app_context():
        yield app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def runner(app):
    return app.test_cli_runner()


def setup_pin(client, slot: str | None, pin: str):
    body = {'setupSecret': SETUP_SECRET, 'pin': pin}
    if slot is not None:
        body['slot'] = slot
    return client.post('/api/pin/setup', json=body)


def login(client, pin: str) -> str:
    """Helper to log in by PIN and return the session token."""
    response = client.post('/api/pin/login', json={'pin': pin})
    assert response.status_code == 200, response.get_json()
    return response.get_json()['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def owner_token(client):
    assert setup_pin(client, 'owner', '1234').status_code == 200
    return login(client, '1234')


@pytest.fixture(scope='function')
def chef_token(client):
    assert setup_pin(client, 'chef', '5678').status_code == 200
    return login(client, '5678')


@pytest.fixture(scope='function')
def owner_headers(owner_token):
    return auth_headers(owner_token)


@pytest.fixture(scope='function')
def chef_headers(chef_token):
    return auth_headers(chef_token)
