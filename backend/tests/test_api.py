"""API tests for the booking engine service."""
from datetime import date, datetime, timedelta

import pytest

from booking_engine.models import Holidays, Services


@pytest.fixture
def next_monday():
    today = date.today()
    return today + timedelta(days=7 - today.weekday())


@pytest.fixture
def local_iso(world):
    """ISO-8601 with the location's offset for that day."""
    def _iso(day: date, hour: int, minute: int = 0) -> str:
        return datetime(day.year, day.month, day.day, hour, minute, tzinfo=world.tz).isoformat()
    return _iso


def parse(value: str) -> datetime:
    return datetime.fromisoformat(value)


def test_health_endpoint(client):
    """Test health check endpoint."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"database": "ok", "redis": None}


class TestAvailabilityEndpoint:
    def test_returns_providers_and_times(self, client, world, next_monday, local_iso):
        response = client.get("/availability", params={
            "location_id": world.location_id,
            "service_id": world.haircut_id,
            "date": next_monday.isoformat(),
        })

        assert response.status_code == 200
        data = response.json()
        assert data["closed"] is False
        assert data["timezone"] == "Europe/Berlin"
        assert data["granularity_minutes"] == 30
        assert [p["provider_id"] for p in data["providers"]] == [world.anna_id, world.ben_id]
        assert parse(data["available_times"][0]) == parse(local_iso(next_monday, 9))

    def test_provider_filter(self, client, world, next_monday):
        response = client.get("/availability", params={
            "location_id": world.location_id,
            "service_id": world.haircut_id,
            "date": next_monday.isoformat(),
            "provider_ids": [world.ben_id],
        })

        assert response.status_code == 200
        assert [p["provider_id"] for p in response.json()["providers"]] == [world.ben_id]

    def test_holiday_marks_day_closed(self, client, db, world, next_monday):
        db.add(Holidays(location_id=world.location_id, holiday_date=next_monday.isoformat()))
        db.commit()

        response = client.get("/availability", params={
            "location_id": world.location_id,
            "service_id": world.haircut_id,
            "date": next_monday.isoformat(),
        })

        data = response.json()
        assert data["closed"] is True
        assert data["available_times"] == []

    def test_misconfigured_service_is_unavailable(self, client, db, world, next_monday):
        db.get(Services, world.haircut_id).duration_key = "forever"
        db.commit()

        response = client.get("/availability", params={
            "location_id": world.location_id,
            "service_id": world.haircut_id,
            "date": next_monday.isoformat(),
        })

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "storage_error"

    def test_past_date_rejected(self, client, world):
        response = client.get("/availability", params={
            "location_id": world.location_id,
            "service_id": world.haircut_id,
            "date": (date.today() - timedelta(days=1)).isoformat(),
        })

        assert response.status_code == 400

    def test_unknown_service(self, client, world, next_monday):
        response = client.get("/availability", params={
            "location_id": world.location_id,
            "service_id": 999,
            "date": next_monday.isoformat(),
        })

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "validation_error"


class TestBookingsEndpoints:
    def _payload(self, world, start, **extra):
        return {"service_id": world.haircut_id, "customer_id": world.customer_id, "start": start, **extra}

    def test_create_with_provider(self, client, world, next_monday, local_iso):
        response = client.post("/bookings", json=self._payload(
            world, local_iso(next_monday, 10), provider_id=world.anna_id,
        ))

        assert response.status_code == 201
        data = response.json()
        assert data["provider_id"] == world.anna_id
        assert data["status"] == "pending"
        assert data["is_deleted"] is False
        assert parse(data["start"]) == parse(local_iso(next_monday, 10))
        assert parse(data["end"]) == parse(local_iso(next_monday, 10, 30))

    def test_overlapping_request_conflicts(self, client, world, next_monday, local_iso):
        first = client.post("/bookings", json=self._payload(
            world, local_iso(next_monday, 14), provider_id=world.anna_id, end=local_iso(next_monday, 14, 30),
        ))
        second = client.post("/bookings", json=self._payload(
            world, local_iso(next_monday, 14, 15), provider_id=world.anna_id, end=local_iso(next_monday, 14, 45),
        ))

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["detail"]["error"] == "conflict"

    def test_provider_omitted_picks_one(self, client, world, next_monday, local_iso):
        response = client.post("/bookings", json=self._payload(
            world, local_iso(next_monday, 11), location_id=world.location_id,
        ))

        assert response.status_code == 201
        assert response.json()["provider_id"] == world.anna_id

    def test_no_eligible_provider(self, client, db, world, next_monday, local_iso):
        massage = Services(name="Massage", duration_key="60_minutes")
        db.add(massage)
        db.commit()

        response = client.post("/bookings", json={
            "service_id": massage.id,
            "location_id": world.location_id,
            "start": local_iso(next_monday, 11),
        })

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "no_eligible_provider"

    def test_naive_start_rejected(self, client, world, next_monday):
        response = client.post("/bookings", json=self._payload(
            world, f"{next_monday.isoformat()}T10:00:00", provider_id=world.anna_id,
        ))

        assert response.status_code == 422
        assert response.json()["detail"]["error"] == "validation_error"

    def test_missing_service_is_request_error(self, client, world, next_monday, local_iso):
        response = client.post("/bookings", json={"start": local_iso(next_monday, 10)})

        assert response.status_code == 422

    def test_get_booking(self, client, world, next_monday, local_iso):
        created = client.post("/bookings", json=self._payload(
            world, local_iso(next_monday, 10), provider_id=world.anna_id,
        )).json()

        response = client.get(f"/bookings/{created['id']}")

        assert response.status_code == 200
        assert response.json()["id"] == created["id"]
        assert client.get("/bookings/999").status_code == 404

    def test_reschedule(self, client, world, next_monday, local_iso):
        created = client.post("/bookings", json=self._payload(
            world, local_iso(next_monday, 10), provider_id=world.anna_id,
        )).json()

        response = client.patch(f"/bookings/{created['id']}", json={"start": local_iso(next_monday, 15)})

        assert response.status_code == 200
        assert parse(response.json()["start"]) == parse(local_iso(next_monday, 15))
        assert parse(response.json()["end"]) == parse(local_iso(next_monday, 15, 30))

    def test_cancel_and_restore(self, client, world, next_monday, local_iso):
        created = client.post("/bookings", json=self._payload(
            world, local_iso(next_monday, 10), provider_id=world.anna_id,
        )).json()

        canceled = client.delete(f"/bookings/{created['id']}")
        assert canceled.status_code == 200
        assert canceled.json()["is_deleted"] is True

        restored = client.post(f"/bookings/{created['id']}/restore")
        assert restored.status_code == 200
        assert restored.json()["is_deleted"] is False

    def test_cancel_unknown(self, client, world):
        response = client.delete("/bookings/999")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"


class TestSlotsEndpoints:
    def test_calendar_marks_closed_days(self, client, world, next_monday):
        saturday = next_monday + timedelta(days=5)

        response = client.get("/slots/calendar", params={
            "location_id": world.location_id,
            "start_date": next_monday.isoformat(),
            "end_date": (next_monday + timedelta(days=6)).isoformat(),
        })

        assert response.status_code == 200
        data = response.json()
        days = {d["date"]: d for d in data["days"]}
        assert len(days) == 7
        assert days[next_monday.isoformat()]["open"] == "09:00"
        assert days[saturday.isoformat()]["closed"] is True
        assert data["cached_days"] == 0

    def test_calendar_unknown_location(self, client, world):
        response = client.get("/slots/calendar", params={"location_id": 999})

        assert response.status_code == 404

    def test_grid_places_bookings(self, client, world, next_monday, local_iso):
        client.post("/bookings", json=self._booking(world, local_iso(next_monday, 10)))

        response = client.get("/slots/grid", params={
            "location_id": world.location_id,
            "date": next_monday.isoformat(),
        })

        assert response.status_code == 200
        data = response.json()
        assert data["slots"][0] == "09:00"
        assert len(data["slots"]) == 16
        rows = {row["provider_id"]: row for row in data["providers"]}
        assert rows[world.anna_id]["appointments"][0]["start_index"] == 2
        assert rows[world.anna_id]["appointments"][0]["span"] == 1
        assert rows[world.ben_id]["appointments"] == []

    def _booking(self, world, start):
        return {
            "provider_id": world.anna_id,
            "service_id": world.haircut_id,
            "customer_id": world.customer_id,
            "start": start,
        }

    def test_invalidate_without_redis(self, client, world):
        response = client.post("/slots/invalidate", params={"location_id": world.location_id})

        assert response.status_code == 200
        assert response.json() == {"location_id": world.location_id, "deleted_keys": 0, "dates": "all"}
