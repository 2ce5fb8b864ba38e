from fastapi.testclient import TestClient

from marketplace.app import create_app
from marketplace.middleware import SlidingWindowLimiter


def test_rate_limit_returns_429(session_factory, mailer, cache):
    app = create_app(session_factory=session_factory, cache=cache, mailer=mailer,
                     jwt_secret="test-secret", rate_limit_max=3, rate_limit_window=60)
    client = TestClient(app)

    for _ in range(3):
        assert client.get("/api/health").status_code == 200

    r = client.get("/api/health")
    assert r.status_code == 429
    assert r.json() == {"message": "Too many requests, please try again later"}
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_security_headers(client):
    r = client.get("/api/health")
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Frame-Options"] == "SAMEORIGIN"
    assert r.headers["Referrer-Policy"] == "no-referrer"


def test_sliding_window_limiter_is_per_key():
    limiter = SlidingWindowLimiter(limit=2, window_seconds=60)
    assert not limiter.is_limited("a")
    assert not limiter.is_limited("a")
    assert limiter.is_limited("a")
    assert not limiter.is_limited("b")


def test_sliding_window_expires_old_hits():
    limiter = SlidingWindowLimiter(limit=1, window_seconds=0)
    assert not limiter.is_limited("a")
    limiter._hits["a"][0] -= 1
    assert not limiter.is_limited("a")


def test_sliding_window_forgets_idle_clients():
    limiter = SlidingWindowLimiter(limit=5, window_seconds=60, sweep_every=3)
    assert not limiter.is_limited("a")
    assert not limiter.is_limited("b")
    for key in ("a", "b"):
        limiter._hits[key][0] -= 120

    assert not limiter.is_limited("c")
    assert set(limiter._hits) == {"c"}


def test_unexpected_errors_become_500(session_factory, mailer, cache):
    app = create_app(session_factory=session_factory, cache=cache, mailer=mailer, jwt_secret="test-secret")

    @app.get("/api/boom")
    def boom():
        raise RuntimeError("boom")

    r = TestClient(app, raise_server_exceptions=False).get("/api/boom")
    assert r.status_code == 500
    assert r.json() == {"message": "Something went wrong!"}
