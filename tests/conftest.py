import io
import re
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.app import create_app
from marketplace.available_cache import TtlCache
from marketplace.entities import Base, utcnow
from marketplace.errors import Unauthorized
from marketplace.mailer import Mailer

PASSWORD = "Passw0rd!"


class RecordingMailer(Mailer):
    def __init__(self):
        super().__init__(host="", username="", password="", from_addr="")
        self.outbox = []

    def send(self, to_email, subject, body):
        self.outbox.append({"to": to_email, "subject": subject, "body": body})
        return True

    def sent_to(self, email):
        return [m for m in self.outbox if m["to"] == email]

    def last_otp(self, email):
        for mail in reversed(self.sent_to(email)):
            match = re.search(r"code is (\d{6})", mail["body"])
            if match:
                return match.group(1)
        return None

    def last_link_token(self, email):
        for mail in reversed(self.sent_to(email)):
            match = re.search(r"/verify-email/(\w+)", mail["body"])
            if match:
                return match.group(1)
        return None


def fake_google_verifier(credential):
    if credential == "bad-credential":
        raise Unauthorized("Invalid Google credential")
    return {"email": credential, "name": "Google User"}


def make_png(width=1600, height=400, color=(200, 30, 30)):
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def future_iso(days):
    return (utcnow() + timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def cache():
    return TtlCache()


@pytest.fixture
def app(session_factory, mailer, cache):
    return create_app(
        session_factory=session_factory,
        cache=cache,
        mailer=mailer,
        google_verifier=fake_google_verifier,
        jwt_secret="test-secret",
        rate_limit_max=100000,
    )


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_user(client, mailer):
    """Registers, verifies and logs in a user; returns id, email and auth headers."""
    def _make(name, email, role):
        r = client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": PASSWORD, "role": role},
        )
        assert r.status_code == 201, r.text
        r = client.post("/api/auth/verify-otp", json={"email": email, "otp": mailer.last_otp(email)})
        assert r.status_code == 200, r.text
        r = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
        assert r.status_code == 200, r.text
        # tests switch users through the Authorization header
        client.cookies.clear()
        body = r.json()
        return {
            "id": body["user"]["id"],
            "email": email,
            "token": body["token"],
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }

    return _make


@pytest.fixture
def owner(make_user):
    return make_user("Olivia Owner", "owner@example.com", "owner")


@pytest.fixture
def advertiser(make_user):
    return make_user("Adam Advertiser", "adv@example.com", "advertiser")


AD_SPACE_FORM = {
    "title": "Mall Billboard",
    "description": "Large billboard at the main entrance",
    "address": "1 Main Street",
    "footfall": "5000",
    "footfallType": "Daily",
    "baseMonthlyRate": "1200",
    "availabilityStart": "2026-01-01",
}


@pytest.fixture
def create_ad_space(client):
    def _create(user, files=None, **overrides):
        data = dict(AD_SPACE_FORM, **overrides)
        r = client.post("/api/adSpaces/add", data=data, files=files, headers=user["headers"])
        assert r.status_code == 201, r.text
        return r.json()

    return _create


@pytest.fixture
def send_request(client):
    def _send(user, ad_space_id, duration_type="months", value=3, requirements=None):
        return client.post(
            "/api/requests/send",
            json={
                "adSpaceId": ad_space_id,
                "duration": {"type": duration_type, "value": value},
                "requirements": requirements,
            },
            headers=user["headers"],
        )

    return _send
