"""
Locust Load Test Suite

Event creation needs an organizer account. By default the seeded demo
organizer is used (start the API with SEED_DEMO_DATA=true), or set
LOCUST_ORGANIZER_EMAIL / LOCUST_ORGANIZER_PASSWORD.

Run scenarios:
  locust -f locustfile.py --tags contention   # Many users, few seats
  locust -f locustfile.py --tags churn        # Register/withdraw promotion churn
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
import string
from locust import HttpUser, task, between, tag, events
from datetime import datetime, timezone, timedelta

ORGANIZER_EMAIL = os.getenv("LOCUST_ORGANIZER_EMAIL", "organizer@example.com")
ORGANIZER_PASSWORD = os.getenv("LOCUST_ORGANIZER_PASSWORD", "organizer123")
PASSWORD = "loadtest123"

# Shared state
EVENT_IDS = []
CONTENTION_EVENT_ID = None
CHURN_EVENT_ID = None


def random_email():
    return f"load_{random.randint(10000, 99999)}_{random.randint(0, 9999)}@test.com"


def random_username():
    return "u_" + "".join(random.choices(string.ascii_lowercase, k=8))


def signup(client) -> dict:
    """Register a throwaway attendee and return auth headers ({} on failure)."""
    email = random_email()
    client.post("/api/v1/auth/register", json={
        "email": email,
        "username": random_username(),
        "password": PASSWORD,
    })
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    if resp.status_code == 200:
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return {}


def organizer_headers(client) -> dict:
    resp = client.post("/api/v1/auth/login", json={"email": ORGANIZER_EMAIL, "password": ORGANIZER_PASSWORD})
    if resp.status_code == 200:
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}
    return {}


def create_event(client, headers: dict, title: str, capacity: int, auto_approve: bool = True):
    future = (datetime.now(timezone.utc) + timedelta(days=30)).isoformat()
    resp = client.post("/api/v1/events/",
        json={
            "title": title,
            "description": f"{capacity} seats only",
            "date": future,
            "location": "Test",
            "capacity": capacity,
            "auto_approve": auto_approve,
        },
        headers=headers,
    )
    if resp.status_code == 201:
        return resp.json()["id"]
    return None


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print(f"SETUP: contention events are created by {ORGANIZER_EMAIL}")
    print("="*60)


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - 100 users → 10 seats

    Run: locust -f locustfile.py --tags contention -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT approved_count, capacity FROM events WHERE id = X;
      SELECT COUNT(*) FROM participants WHERE event_id = X AND status = 'approved';
    Both counts must match and stay ≤ 10; pending queue_position must run 1..N.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = signup(self.client)
        self.registered = False

        if not CONTENTION_EVENT_ID:
            admin = organizer_headers(self.client)
            if admin:
                event_id = create_event(self.client, admin, "Contention Test Event", 10)
                if event_id:
                    globals()["CONTENTION_EVENT_ID"] = event_id
                    print(f"\n✓ Created event {event_id} with 10 seats\n")

    @tag("contention")
    @task
    def register_for_limited_seats(self):
        """Everyone fights for the same 10 seats; the rest queue up."""
        if not CONTENTION_EVENT_ID or not self.headers or self.registered:
            return

        with self.client.post(f"/api/v1/events/{CONTENTION_EVENT_ID}/register",
            headers=self.headers,
            catch_response=True,
            name="/api/v1/events/{id}/register",
        ) as resp:
            if resp.status_code == 201:
                self.registered = True
                resp.success()
            elif resp.status_code == 409:
                self.registered = True
                resp.success()  # Expected: already registered
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ChurnUser(HttpUser):
    """
    TEST 2: Churn - register and withdraw in a loop on a 5 seat event

    Run: locust -f locustfile.py --tags churn -u 50 -r 10 --run-time 60s

    Every withdrawal of an approved participant promotes the head of the
    queue, so this exercises promotion and renumbering under load.
    """
    wait_time = between(0.05, 0.3)

    def on_start(self):
        self.headers = signup(self.client)

        if not CHURN_EVENT_ID:
            admin = organizer_headers(self.client)
            if admin:
                event_id = create_event(self.client, admin, "Churn Test Event", 5)
                if event_id:
                    globals()["CHURN_EVENT_ID"] = event_id

    @tag("churn")
    @task(3)
    def register(self):
        if not CHURN_EVENT_ID or not self.headers:
            return
        with self.client.post(f"/api/v1/events/{CHURN_EVENT_ID}/register",
            headers=self.headers,
            catch_response=True,
            name="/api/v1/events/{id}/register [churn]",
        ) as resp:
            if resp.status_code in [201, 409]:
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("churn")
    @task(2)
    def withdraw(self):
        if not CHURN_EVENT_ID or not self.headers:
            return
        with self.client.post(f"/api/v1/events/{CHURN_EVENT_ID}/withdraw",
            headers=self.headers,
            catch_response=True,
            name="/api/v1/events/{id}/withdraw",
        ) as resp:
            if resp.status_code in [200, 404]:
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("churn")
    @task(1)
    def occupancy(self):
        if CHURN_EVENT_ID:
            self.client.get(f"/api/v1/events/{CHURN_EVENT_ID}/occupancy",
                name="/api/v1/events/{id}/occupancy")


class ThroughputUser(HttpUser):
    """
    TEST 3: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        """Hammer the cached endpoint."""
        page = random.randint(1, 5)
        self.client.get(f"/api/v1/events/?page={page}&page_size=20",
            name="/api/v1/events/ [cached]")

    @tag("throughput", "read")
    @task(3)
    def get_event_detail(self):
        if EVENT_IDS:
            event_id = random.choice(EVENT_IDS)
            self.client.get(f"/api/v1/events/{event_id}",
                name="/api/v1/events/{id}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = signup(self.client)

    @tag("edge")
    @task
    def invalid_event_id(self):
        """Register for a non-existent event."""
        with self.client.post("/api/v1/events/999999/register",
            headers=self.headers,
            catch_response=True,
            name="/api/v1/events/{missing}/register",
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def withdraw_unregistered(self):
        with self.client.post("/api/v1/events/999999/withdraw",
            headers=self.headers,
            catch_response=True,
            name="/api/v1/events/{missing}/withdraw",
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def approve_without_rights(self):
        """Attendees may not administer events."""
        with self.client.post("/api/v1/events/1/participants/1/approve",
            headers=self.headers,
            catch_response=True,
            name="/api/v1/events/{id}/participants/{pid}/approve",
        ) as resp:
            if resp.status_code in [403, 404]:
                resp.success()
            else:
                resp.failure(f"Expected 403/404, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/events/1/register",
            data="not json at all",
            headers={**self.headers, "Content-Type": "application/json"},
            catch_response=True,
            name="/api/v1/events/{id}/register [garbage]",
        ) as resp:
            if resp.status_code in [400, 404, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/404/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/events/1/register",
            catch_response=True,
            name="/api/v1/events/{id}/register [no auth]",
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")


class RealisticUser(HttpUser):
    """
    TEST 5: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing
      - Some registrations and withdrawals
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = signup(self.client)
        self.registered_for = set()

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events/?page=1&page_size=20")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}",
                name="/api/v1/events/{id}")

    @task(10)
    def register(self):
        if EVENT_IDS and self.headers:
            event_id = random.choice(EVENT_IDS)
            resp = self.client.post(f"/api/v1/events/{event_id}/register",
                headers=self.headers,
                name="/api/v1/events/{id}/register")
            if resp.status_code == 201:
                self.registered_for.add(event_id)

    @task(3)
    def withdraw(self):
        if self.registered_for and self.headers:
            event_id = self.registered_for.pop()
            self.client.post(f"/api/v1/events/{event_id}/withdraw",
                headers=self.headers,
                name="/api/v1/events/{id}/withdraw")

    @task(2)
    def my_registrations(self):
        if self.headers:
            self.client.get("/api/v1/registrations/me", headers=self.headers)
