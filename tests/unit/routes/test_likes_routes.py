"""Tests for the likes routes in application/routes/likes.py."""

from unittest.mock import MagicMock, patch

import pytest
from quart import Quart

from application.routes.common.error_handlers import register_error_handlers
from application.routes.common.request_id import register_request_id
from application.routes.likes import likes_bp
from application.services.likes.ledger_service import LikesLedgerService
from application.services.likes.rate_limiter import FixedWindowRateLimiter, RateLimitRule
from common.service.profile_store import InMemoryProfileStore
from common.utils.jwt_utils import generate_user_token

LIKES_URL = "/api/user/likes"


@pytest.fixture
def likes_service():
    return LikesLedgerService(InMemoryProfileStore(), retry_base_delay=0)


@pytest.fixture
def rate_limiter():
    return FixedWindowRateLimiter({"read": RateLimitRule(5, 60.0), "write": RateLimitRule(3, 60.0)})


@pytest.fixture
def app(likes_service, rate_limiter):
    """Create test application."""
    app = Quart(__name__)
    register_error_handlers(app)
    register_request_id(app)
    app.register_blueprint(likes_bp)
    with patch("application.routes.likes.get_likes_service", return_value=likes_service), patch(
        "application.routes.likes.get_likes_rate_limiter", return_value=rate_limiter
    ):
        yield app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


def auth(user_id="user_1", **kwargs):
    return {"Authorization": f"Bearer {generate_user_token(user_id, **kwargs)}"}


def toggle_body(table="Ghazlen", record_id="rec1"):
    return {"action": "toggle", "table": table, "recordId": record_id}


class TestAuthentication:
    """Tests for token handling."""

    @pytest.mark.asyncio
    async def test_missing_token_is_unauthorized(self, client):
        response = await client.get(LIKES_URL)

        assert response.status_code == 401
        assert await response.get_json() == {"error": "unauthorized"}

    @pytest.mark.asyncio
    async def test_expired_token_is_unauthorized(self, client):
        response = await client.get(LIKES_URL, headers=auth(expiry_hours=-1))

        assert response.status_code == 401
        assert (await response.get_json())["error"] == "unauthorized"


class TestGetLikes:
    """Tests for GET /likes."""

    @pytest.mark.asyncio
    async def test_snapshot_from_token_is_served_without_fresh(self, client):
        headers = auth(likes={"books": ["b1"]})

        response = await client.get(LIKES_URL, headers=headers)

        data = await response.get_json()
        assert response.status_code == 200
        assert data["likes"]["books"] == ["b1"]
        assert set(data["likes"]) == {"books", "ashaar", "ghazlen", "nazmen", "rubai", "shaer"}
        assert isinstance(data["timestamp"], int)

    @pytest.mark.asyncio
    async def test_fresh_reads_the_ledger(self, client):
        headers = auth(likes={"books": ["stale"]})
        await client.post(LIKES_URL, json=toggle_body(), headers=headers)

        response = await client.get(f"{LIKES_URL}?fresh=true", headers=headers)

        data = await response.get_json()
        assert data["likes"]["books"] == []
        assert data["likes"]["ghazlen"] == ["rec1"]


class TestPostLikes:
    """Tests for POST /likes."""

    @pytest.mark.asyncio
    async def test_toggle_twice_round_trips(self, client):
        # Act
        first = await client.post(LIKES_URL, json=toggle_body(), headers=auth())
        second = await client.post(LIKES_URL, json=toggle_body(), headers=auth())

        # Assert
        first_data = await first.get_json()
        second_data = await second.get_json()
        assert (first_data["liked"], first_data["count"]) == (True, 1)
        assert (second_data["liked"], second_data["count"]) == (False, 0)
        assert second_data["likes"]["ghazlen"] == []

    @pytest.mark.asyncio
    async def test_merge_unions_and_reports_ok(self, client):
        await client.post(LIKES_URL, json=toggle_body(record_id="g1"), headers=auth())

        response = await client.post(
            LIKES_URL,
            json={"action": "merge", "likes": {"ghazlen": ["g2"], "shaer": ["p1"], "junk": ["x"]}},
            headers=auth(),
        )

        data = await response.get_json()
        assert response.status_code == 200
        assert data["ok"] is True
        assert data["likes"]["ghazlen"] == ["g1", "g2"]
        assert data["likes"]["shaer"] == ["p1"]

    @pytest.mark.parametrize(
        "body,error_code",
        [
            (toggle_body(table="Blogs"), "invalid_table"),
            (toggle_body(record_id=None), "missing_record_id"),
            ({"action": "delete"}, "validation_error"),
            ({"table": "Ghazlen"}, "validation_error"),
        ],
    )
    @pytest.mark.asyncio
    async def test_bad_requests(self, client, body, error_code):
        response = await client.post(LIKES_URL, json=body, headers=auth())

        assert response.status_code == 400
        assert (await response.get_json())["error"] == error_code

    @pytest.mark.asyncio
    async def test_unresolved_race_is_409(self, client, likes_service):
        from common.exception import ConcurrentUpdate

        with patch.object(likes_service, "toggle", side_effect=ConcurrentUpdate("busy")):
            response = await client.post(LIKES_URL, json=toggle_body(), headers=auth())

        assert response.status_code == 409
        assert (await response.get_json())["error"] == "concurrent_update"


class TestRateLimiting:
    """Tests for per-user limits."""

    @pytest.mark.asyncio
    async def test_writes_over_limit_are_rejected_without_touching_ledger(
        self, client, likes_service
    ):
        # Act: three toggles are admitted, the fourth is not
        statuses = []
        for _ in range(4):
            response = await client.post(LIKES_URL, json=toggle_body(), headers=auth())
            statuses.append(response.status_code)

        # Assert
        assert statuses == [200, 200, 200, 429]
        assert (await response.get_json())["error"] == "rate_limited"
        assert response.headers["Retry-After"] == "60"
        ledger = await likes_service.get("user_1", fresh=True)
        assert ledger.ghazlen == ["rec1"]

    @pytest.mark.asyncio
    async def test_limits_are_per_user(self, client):
        for _ in range(3):
            await client.post(LIKES_URL, json=toggle_body(), headers=auth("user_1"))

        response = await client.post(LIKES_URL, json=toggle_body(), headers=auth("user_2"))

        assert response.status_code == 200


class TestCorsAndRequestId:
    """Tests for response headers."""

    @pytest.mark.asyncio
    async def test_preflight_from_same_origin(self, client):
        response = await client.options(LIKES_URL, headers={"Origin": "http://localhost"})

        assert response.status_code == 204
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost"
        assert response.headers["Access-Control-Allow-Methods"] == "GET,POST,OPTIONS"
        assert response.headers["Access-Control-Allow-Headers"] == "Content-Type, Authorization"
        assert "Origin" in response.headers["Vary"]

    @pytest.mark.asyncio
    async def test_foreign_origin_gets_no_allow_header(self, client):
        response = await client.options(LIKES_URL, headers={"Origin": "https://evil.example"})

        assert "Access-Control-Allow-Origin" not in response.headers

    @pytest.mark.asyncio
    async def test_allow_listed_origin(self, client):
        config_service = MagicMock()
        config_service.get_likes_config.return_value.allowed_origins = ["https://app.example"]

        with patch("application.routes.common.cors.get_config_service", return_value=config_service):
            response = await client.get(
                LIKES_URL, headers={"Origin": "https://app.example", **auth()}
            )

        assert response.headers["Access-Control-Allow-Origin"] == "https://app.example"

    @pytest.mark.asyncio
    async def test_request_id_is_echoed_or_generated(self, client):
        echoed = await client.get(LIKES_URL, headers={"X-Request-ID": "abc-123", **auth()})
        generated = await client.get(LIKES_URL, headers=auth())

        assert echoed.headers["X-Request-ID"] == "abc-123"
        assert len(generated.headers["X-Request-ID"]) == 32

    @pytest.mark.asyncio
    async def test_error_responses_carry_request_id(self, client):
        response = await client.get(LIKES_URL, headers={"X-Request-ID": "err-1"})

        assert response.status_code == 401
        assert response.headers["X-Request-ID"] == "err-1"
