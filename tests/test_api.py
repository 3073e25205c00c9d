"""
API tests over an in-process ASGI transport, plus a terminal flow driven
end to end through the HTTP gateway.
"""

from decimal import Decimal
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

import cinema_pos.cache as cache_module
from cinema_pos.database import get_db
from cinema_pos.main import app
from cinema_pos.pos.coordinator import ClickOutcome
from cinema_pos.pos.gateway import HttpBookingGateway
from cinema_pos.pos.session import PosBookingSession
from cinema_pos.utils.auth import create_operator_token
from cinema_pos.utils.retry import RetryConfig

BASE_URL = "http://testserver"


@pytest_asyncio.fixture
async def api_app(session_factory, redis_client, monkeypatch):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    monkeypatch.setattr(cache_module.cache, "client", redis_client)
    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


def auth_headers(user_id: str = "cashier-1", terminal: str = "T1") -> dict:
    token = create_operator_token(user_id, terminal=terminal)
    return {"Authorization": f"Bearer {token.access_token}"}


@pytest_asyncio.fixture
async def client(api_app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=api_app), base_url=BASE_URL) as client:
        yield client


class TestCatalogEndpoints:
    async def test_requires_authentication(self, client, cinema):
        response = await client.get(f"/api/v1/showtimes/{cinema.showtime_id}")

        assert response.status_code in (401, 403)

    async def test_get_showtime_and_room(self, client, cinema):
        headers = auth_headers()

        showtime = (await client.get(f"/api/v1/showtimes/{cinema.showtime_id}", headers=headers)).json()
        room = (await client.get(f"/api/v1/rooms/{showtime['room_id']}", headers=headers)).json()

        assert Decimal(showtime["price"]) == Decimal("100000")
        assert room["id"] == str(cinema.room_id)
        assert {seat["seat_number"] for seat in room["seats"]} == {"A1", "A2", "A3", "B1", "B2", "B3"}
        assert len(room["seat_layout"]) == 8

    async def test_unknown_showtime(self, client, cinema):
        response = await client.get(f"/api/v1/showtimes/{uuid4()}", headers=auth_headers())

        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "NOT_FOUND"

    async def test_food_drinks(self, client, cinema):
        response = await client.get("/api/v1/food-drinks", headers=auth_headers())

        assert response.status_code == 200
        assert {item["name"] for item in response.json()["items"]} == {"Popcorn", "Cola"}


class TestHoldEndpoints:
    async def test_hold_conflict_and_release(self, client, cinema):
        first, second = auth_headers("cashier-1", "T1"), auth_headers("cashier-2", "T2")
        body = {"showtime_id": str(cinema.showtime_id), "seat_id": str(cinema.seats["A1"])}

        held = await client.post("/api/v1/rooms/hold-seat", json=body, headers=first)
        conflict = await client.post("/api/v1/rooms/hold-seat", json=body, headers=second)

        assert held.status_code == 200
        assert held.json()["expires_at"]
        assert conflict.status_code == 409
        assert conflict.json()["detail"]["error_code"] == "SEAT_NOT_AVAILABLE"

        listed = (await client.get(
            f"/api/v1/rooms/showtimes/{cinema.showtime_id}/held-seats", headers=second
        )).json()
        assert [(seat["seat_id"], seat["held_by_me"]) for seat in listed["seats"]] == [
            (str(cinema.seats["A1"]), False)
        ]

        released = await client.post("/api/v1/rooms/release-seat", json=body, headers=first)
        assert released.status_code == 200
        assert (await client.post("/api/v1/rooms/hold-seat", json=body, headers=second)).status_code == 200

    async def test_same_operator_on_two_terminals_does_not_share_holds(self, client, cinema):
        body = {"showtime_id": str(cinema.showtime_id), "seat_id": str(cinema.seats["A2"])}

        await client.post("/api/v1/rooms/hold-seat", json=body, headers=auth_headers("cashier-1", "T1"))
        response = await client.post("/api/v1/rooms/hold-seat", json=body, headers=auth_headers("cashier-1", "T2"))

        assert response.status_code == 409

    async def test_booking_without_hold_is_stale(self, client, cinema):
        response = await client.post(
            "/api/v1/bookings",
            json={"showtime_id": str(cinema.showtime_id), "seat_ids": [str(cinema.seats["A1"])]},
            headers=auth_headers(),
        )

        assert response.status_code == 409
        assert response.json()["detail"]["error_code"] == "SEAT_HOLD_EXPIRED"

    async def test_invalid_body(self, client, cinema):
        response = await client.post(
            "/api/v1/bookings",
            json={"showtime_id": str(cinema.showtime_id), "seat_ids": []},
            headers=auth_headers(),
        )

        assert response.status_code == 422


class TestHealth:
    async def test_health_reports_redis(self, client):
        response = await client.get("/health")

        assert response.json()["status"] == "healthy"


@pytest_asyncio.fixture
async def terminal(api_app):
    clients = []

    def factory(user_id: str, terminal_name: str) -> PosBookingSession:
        http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=api_app), base_url=BASE_URL)
        clients.append(http_client)
        gateway = HttpBookingGateway(
            base_url=BASE_URL,
            token=create_operator_token(user_id, terminal=terminal_name).access_token,
            client=http_client,
            retry_config=RetryConfig(max_attempts=1, base_delay=0, jitter=False),
        )
        return PosBookingSession(gateway)

    yield factory
    for http_client in clients:
        await http_client.aclose()


class TestTerminalFlow:
    async def test_two_terminals_book_through_the_api(self, terminal, cinema):
        showtime_id = str(cinema.showtime_id)
        first, second = terminal("cashier-1", "T1"), terminal("cashier-2", "T2")
        await first.open(showtime_id)
        await second.open(showtime_id)

        assert (await first.click("B2")).outcome == ClickOutcome.HELD
        assert set(first.selection.seat_numbers) == {"B1", "B2"}
        assert (await second.click("B1")).outcome == ClickOutcome.CONFLICT
        assert second.selection.is_empty()

        first.set_food_quantity(str(cinema.cola_id), 1)
        assert first.quote().total == Decimal("290000")
        result = await first.finalize()

        assert result.booking.total_price == Decimal("290000")
        assert first.selection.is_empty()

        await second.aggregator.refresh()
        assert second.aggregator.is_booked(str(cinema.seats["B1"]))
        assert (await second.click("B1")).outcome == ClickOutcome.REJECTED

    async def test_close_releases_holds_through_the_api(self, terminal, cinema):
        showtime_id = str(cinema.showtime_id)
        first, second = terminal("cashier-1", "T1"), terminal("cashier-2", "T2")
        await first.open(showtime_id)
        await second.open(showtime_id)
        await first.click("A1")

        assert await first.close() == 1

        assert (await second.click("A1")).outcome == ClickOutcome.HELD
