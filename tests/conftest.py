"""Shared fixtures: an in-memory TSME portal behind a real TSMEScraper."""

import json
from urllib.parse import urlsplit

import pytest
import requests

from tsme_metering.providers import SUEZ_ENDPOINTS
from tsme_metering.scraper import TSMEScraper


def make_response(status=200, text=None, json_body=None, url=""):
    response = requests.Response()
    response.status_code = status
    body = json.dumps(json_body) if json_body is not None else (text or "")
    response._content = body.encode("utf-8")
    response.encoding = "utf-8"
    response.url = url
    return response


def login_page(payload=None, marker="window.tsme_data = JSON.parse"):
    """Build a login page embedding payload the way the portal does.

    The object is JSON-encoded, then encoded again as a JavaScript string
    literal with slashes escaped.
    """
    if payload is None:
        payload = {"csrfToken": "token-123"}
    inner = json.dumps(payload)
    literal = json.dumps(inner)[1:-1].replace("/", "\\/")
    return (
        "<html><head><title>Je me connecte</title>"
        "<script>var dataLayer = [];</script>"
        f'<script>{marker}("{literal}");</script>'
        "</head><body><form method='post'></form></body></html>"
    )


def dashboard_page(href="https://www.toutsurmoneau.fr/mon-compte-en-ligne/tableau-de-bord"):
    return (
        "<html><head>"
        f'<link rel="canonical" href="{href}">'
        "</head><body>Tableau de bord</body></html>"
    )


def envelope(content, message="OK", code="00"):
    return {"code": code, "message": message, "content": content}


class FakePortal:
    """Routes session requests to canned responses and records them."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method, path, response):
        self.routes.setdefault((method, path), []).append(response)

    def count(self, method, path):
        return sum(1 for call in self.calls if call[0] == method and call[1] == path)

    def request(self, method, url, **kwargs):
        path = urlsplit(url).path
        self.calls.append((method, path, kwargs))
        responses = self.routes.get((method, path))
        if not responses:
            raise AssertionError(f"Unexpected request: {method} {path}")
        # The last response keeps being served once the queue is drained
        return responses.pop(0) if len(responses) > 1 else responses[0]


@pytest.fixture
def portal():
    return FakePortal()


@pytest.fixture
def client(portal, monkeypatch):
    scraper = TSMEScraper(SUEZ_ENDPOINTS, "user@example.com", "secret")
    monkeypatch.setattr(scraper.session, "request", portal.request)
    return scraper


@pytest.fixture
def logged_in_portal(portal):
    portal.add("GET", SUEZ_ENDPOINTS.login_endpoint, make_response(text=login_page()))
    portal.add("POST", SUEZ_ENDPOINTS.login_endpoint, make_response(text=dashboard_page()))
    return portal
