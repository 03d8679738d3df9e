"""Shared pytest fixtures for testing."""
import os
import shutil
import tempfile
import time

import pytest

# Settings are read when irrigation.config is first imported, so the test
# database and the quiet defaults must be in place before the app is imported.
_TEMP_DIR = tempfile.mkdtemp()
_DB_PATH = os.path.join(_TEMP_DIR, 'test_irrigation.db')

os.environ['DATABASE_URL'] = f'sqlite+aiosqlite:///{_DB_PATH}'
os.environ['MQTT_ENABLED'] = 'false'
os.environ['LOG_FILE'] = ''
os.environ['LLM_API_KEY'] = ''
os.environ['DEFAULT_ADMIN_EMAIL'] = 'admin@irrigation.local'
os.environ['DEFAULT_ADMIN_PASSWORD'] = 'Admin@123'

from fastapi.testclient import TestClient  # noqa: E402

from irrigation.config import settings  # noqa: E402
from irrigation.main import app  # noqa: E402
from irrigation.routers import ai  # noqa: E402
from irrigation.weather import WeatherCache  # noqa: E402


class FakeTextGenerator:
    """Stands in for the chat completions client; returns a canned reply."""

    def __init__(self, reply='Tout va bien'):
        self.reply = reply
        self.calls = []

    async def generate(self, system, prompt):
        self.calls.append((system, prompt))
        return self.reply


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_TEMP_DIR, ignore_errors=True)


@pytest.fixture
def fake_generator():
    """Fake assistant wired into the chat endpoint."""
    generator = FakeTextGenerator()
    app.dependency_overrides[ai.get_text_generator] = lambda: generator
    yield generator
    app.dependency_overrides.pop(ai.get_text_generator, None)


@pytest.fixture
def client():
    """Test client on a fresh database; the lifespan creates tables and the default account."""
    app.state.weather_cache = WeatherCache(settings.WEATHER_CACHE_TTL_SECONDS)
    with TestClient(app) as c:
        yield c
    # Engines are disposed by the lifespan, so the file can go
    if os.path.exists(_DB_PATH):
        os.remove(_DB_PATH)


@pytest.fixture
def admin_headers(client):
    """Bearer headers of the bootstrap developer account."""
    response = client.post('/api/auth/login', json={
        'email': settings.DEFAULT_ADMIN_EMAIL,
        'password': settings.DEFAULT_ADMIN_PASSWORD,
    })
    assert response.status_code == 200
    return {'Authorization': f"Bearer {response.json()['accessToken']}"}


@pytest.fixture
def make_user(client):
    """Sign up a user and return (user_id, headers)."""
    def _make_user(email, name='Grower', password='secret123'):
        response = client.post('/api/auth/signup', json={
            'name': name, 'email': email, 'password': password,
        })
        assert response.status_code == 201
        body = response.json()
        return body['user']['id'], {'Authorization': f"Bearer {body['accessToken']}"}
    return _make_user


@pytest.fixture
def register_device(client, admin_headers):
    """Register a device for an owner through the developer account."""
    def _register_device(device_id, owner_user_id):
        response = client.post('/api/devices', headers=admin_headers, json={
            'deviceId': device_id, 'ownerUserId': owner_user_id,
        })
        assert response.status_code == 201
        return response.json()['device']
    return _register_device


@pytest.fixture
def make_zone(client):
    """Create a zone on a device; returns the zone dict."""
    def _make_zone(headers, device_id, name='Tomatoes', **extra):
        payload = {
            'name': name,
            'plantType': 'tomato',
            'soilType': 'loam',
            'deviceId': device_id,
        }
        payload.update(extra)
        response = client.post('/api/zones', headers=headers, json=payload)
        assert response.status_code == 201, response.text
        return response.json()['zone']
    return _make_zone


@pytest.fixture
def post_reading(client):
    """Post one reading for a device with a user or device token."""
    def _post_reading(headers, device_id, soil_moisture, temp, timestamp=None, humidity=55):
        response = client.post('/api/data', headers=headers, json={
            'deviceId': device_id,
            'timestamp': int(time.time()) if timestamp is None else timestamp,
            'sensorData': {
                'global': {'temp': temp, 'pressure': 1013},
                'locals': [{'sensorId': 1, 'soilMoisture': soil_moisture, 'temp': temp, 'humidity': humidity}],
            },
        })
        assert response.status_code == 200, response.text
        return response
    return _post_reading


@pytest.fixture
def grower(make_user, register_device, make_zone):
    """A user owning one device with one zone."""
    user_id, headers = make_user('grower@example.com')
    device = register_device('ESP32-GROWER', user_id)
    zone = make_zone(headers, device['deviceId'])
    return {'id': user_id, 'headers': headers, 'device': device, 'zone': zone}
