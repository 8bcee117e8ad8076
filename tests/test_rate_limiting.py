"""
Tests for rate limiting functionality.

Limits are counted per client address by slowapi; the autouse fixture in
conftest resets counters between tests.
"""

import pytest

from origin_backend.core.config import settings
from origin_backend.main import app

pytestmark = pytest.mark.integration


def limit_count(rate: str) -> int:
    return int(rate.split("/")[0])


class TestRateLimiting:
    """Test that rate limited endpoints answer 429 once the limit is spent."""

    def test_limiter_attached_to_app(self):
        assert app.state.limiter is not None

    def test_generate_endpoint_is_limited(self, client, auth_headers):
        """Requests beyond the generate limit are rejected with 429."""
        allowed = limit_count(settings.rate_limit_generate_endpoints)

        statuses = [
            client.post("/generate", json={"prompt": ""}, headers=auth_headers).status_code
            for _ in range(allowed + 1)
        ]

        assert statuses[:allowed] == [400] * allowed
        assert statuses[-1] == 429

    def test_chain_endpoint_is_limited(self, client):
        allowed = limit_count(settings.rate_limit_chain_endpoints)

        statuses = [
            client.post("/api/rep", json={"action": "nope"}).status_code
            for _ in range(allowed + 1)
        ]

        assert statuses[-1] == 429
        assert 429 not in statuses[:allowed]

    def test_health_is_not_limited(self, client):
        for _ in range(50):
            assert client.get("/health").status_code == 200
