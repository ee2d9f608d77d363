"""
Locust Load Test Suite

The API has no catalog endpoints, so seed an event first and pass its id:
  LOAD_EVENT_ID=1 locust -f locustfile.py --tags concurrency  # Test overselling
  LOAD_EVENT_ID=1 locust -f locustfile.py --tags seats        # Test seat double-booking
  LOAD_EVENT_ID=1 locust -f locustfile.py --tags edge         # Test bad input
  LOAD_EVENT_ID=1 locust -f locustfile.py                     # All tests

Identity is sent the way the gateway forwards it (X-User-ID).
"""

import os
import random
from locust import HttpUser, task, between, tag, events

EVENT_ID = int(os.environ.get("LOAD_EVENT_ID", "1"))
SEAT_ROWS = "ABCDE"


def random_user_headers():
    return {"X-User-ID": str(random.randint(1, 1_000_000))}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Load testing bookings against event {EVENT_ID}")
    print("=" * 60)


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    print("\nVerify afterwards:")
    print(f"  GET /api/v1/events/{EVENT_ID}/inventory   -> consistent must be true")
    print(f"  GET /api/v1/events/{EVENT_ID}/seats       -> no label twice")


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many users fight for a small event

    Run: LOAD_EVENT_ID=X locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    Successful bookings must never exceed the event's capacity, and
    available_tickets must end at capacity minus admitted quantity.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = random_user_headers()

    @tag("concurrency")
    @task
    def book_last_tickets(self):
        with self.client.post("/api/v1/bookings/",
            json={"event_id": EVENT_ID, "quantity": 1},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()  # 409: sold out, expected once inventory runs out
            elif resp.status_code == 400 and resp.json().get("code") == "USER_QUOTA_EXCEEDED":
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class SeatContentionUser(HttpUser):
    """
    TEST 2: Seat contention - everyone wants the same few seats

    Run: LOAD_EVENT_ID=X locust -f locustfile.py --tags seats -u 100 -r 50 --run-time 30s

    Each seat label must end up held by at most one active booking.
    """
    wait_time = between(0, 0.2)

    def on_start(self):
        self.headers = random_user_headers()

    @tag("seats")
    @task
    def book_popular_seat(self):
        seat = f"{random.choice(SEAT_ROWS)}{random.randint(1, 4)}"
        with self.client.post("/api/v1/bookings/",
            json={"event_id": EVENT_ID, "quantity": 1, "seat_numbers": [seat]},
            headers=self.headers,
            name="/api/v1/bookings/ [seat]",
            catch_response=True
        ) as resp:
            if resp.status_code == 201 or resp.status_code == 409:
                resp.success()
            elif resp.status_code == 400:
                resp.success()  # per-user quota reached
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("seats", "read")
    @task(2)
    def view_seat_ledger(self):
        self.client.get(f"/api/v1/events/{EVENT_ID}/seats", name="/api/v1/events/{id}/seats")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = random_user_headers()

    def _expect(self, payload, expected, headers=None, name=None):
        with self.client.post("/api/v1/bookings/",
            json=payload,
            headers=self.headers if headers is None else headers,
            name=name,
            catch_response=True
        ) as resp:
            if resp.status_code in expected:
                resp.success()
            else:
                resp.failure(f"Expected {expected}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        self._expect({"event_id": 999999, "quantity": 1}, (404,), name="edge: unknown event")

    @tag("edge")
    @task
    def zero_quantity(self):
        self._expect({"event_id": EVENT_ID, "quantity": 0}, (400,), name="edge: zero quantity")

    @tag("edge")
    @task
    def huge_quantity(self):
        self._expect({"event_id": EVENT_ID, "quantity": 999999}, (400,), name="edge: huge quantity")

    @tag("edge")
    @task
    def duplicate_seats(self):
        self._expect(
            {"event_id": EVENT_ID, "quantity": 2, "seat_numbers": ["A1", "A1"]},
            (400,),
            name="edge: duplicate seats",
        )

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/bookings/",
            data="not json at all",
            headers=self.headers,
            name="edge: malformed json",
            catch_response=True
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_identity(self):
        self._expect({"event_id": EVENT_ID, "quantity": 1}, (401,), headers={}, name="edge: no identity")


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: LOAD_EVENT_ID=X locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Mostly reads, some bookings, and a share of those later cancelled.
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = random_user_headers()
        self.booking_ids = []

    @task(50)
    def view_event(self):
        self.client.get(f"/api/v1/events/{EVENT_ID}", name="/api/v1/events/{id}")

    @task(10)
    def book_tickets(self):
        resp = self.client.post("/api/v1/bookings/",
            json={"event_id": EVENT_ID, "quantity": random.randint(1, 3)},
            headers=self.headers)
        if resp.status_code == 201:
            self.booking_ids.append(resp.json()["id"])

    @task(3)
    def cancel_booking(self):
        if self.booking_ids:
            booking_id = self.booking_ids.pop()
            self.client.post(f"/api/v1/bookings/{booking_id}/cancel",
                headers=self.headers,
                name="/api/v1/bookings/{id}/cancel")

    @task(2)
    def list_my_bookings(self):
        self.client.get("/api/v1/bookings/", headers=self.headers)
