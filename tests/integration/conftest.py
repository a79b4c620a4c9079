"""Fixtures running the development appointment API in process."""
import pytest

from mock_api import create_app

BASE_URL = "http://medflow.test"


class FlaskClientResponse:
    """The parts of requests.Response the HTTP store reads."""

    def __init__(self, response):
        self.status_code = response.status_code
        self._response = response

    def json(self):
        data = self._response.get_json(silent=True)
        if data is None:
            raise ValueError("Response body is not JSON")
        return data


class FlaskClientSession:
    """requests-style session that forwards to a Flask test client."""

    def __init__(self, client, base_url=BASE_URL):
        self.client = client
        self.base_url = base_url

    def _open(self, method, url, params=None, json=None, **kwargs):
        path = url[len(self.base_url):]
        return FlaskClientResponse(
            self.client.open(path, method=method, query_string=params, json=json)
        )

    def get(self, url, **kwargs):
        return self._open("GET", url, **kwargs)

    def put(self, url, **kwargs):
        return self._open("PUT", url, **kwargs)

    def patch(self, url, **kwargs):
        return self._open("PATCH", url, **kwargs)

    def post(self, url, **kwargs):
        return self._open("POST", url, **kwargs)


@pytest.fixture
def app(store):
    app = create_app(store)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def client_session(client):
    return FlaskClientSession(client)
