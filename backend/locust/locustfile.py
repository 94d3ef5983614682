"""
Locust Load Test Suite

The scenarios run against seeded data; export before starting:
  LOAD_EVENT_ID        published event id
  LOAD_STAFF_TOKEN     bearer token of a user with door access to the event
  LOAD_QR_TOKEN        pass token of a registration for the event
  LOAD_LINK_CODE       active direct booking link code (throughput scenario)

Run scenarios:
  locust -f locustfile.py --tags checkin      # Repeated scans of one pass
  locust -f locustfile.py --tags throughput   # Cached booking link reads
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
import uuid

from locust import HttpUser, task, between, tag, events

EVENT_ID = os.environ.get("LOAD_EVENT_ID", "")
STAFF_TOKEN = os.environ.get("LOAD_STAFF_TOKEN", "")
QR_TOKEN = os.environ.get("LOAD_QR_TOKEN", "")
LINK_CODE = os.environ.get("LOAD_LINK_CODE", "")


def staff_headers() -> dict:
    return {"Authorization": f"Bearer {STAFF_TOKEN}"} if STAFF_TOKEN else {}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Event: {EVENT_ID or '<unset>'}  link: {LINK_CODE or '<unset>'}")
    print("=" * 60)


class RepeatedScanUser(HttpUser):
    """
    TEST 1: Idempotent check-in - many door scanners, one pass

    Run: locust -f locustfile.py --tags checkin -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM checkins WHERE registration_id = X;
    Should be exactly 1, and exactly one response carried duplicate=false.
    """
    wait_time = between(0, 0.1)

    @tag("checkin")
    @task
    def scan_same_pass(self):
        if not EVENT_ID or not QR_TOKEN:
            return

        with self.client.post(
            f"/api/v1/events/{EVENT_ID}/checkin",
            json={"qr_token": QR_TOKEN},
            headers=staff_headers(),
            name="/api/v1/events/{id}/checkin",
            catch_response=True,
        ) as resp:
            if resp.status_code == 200:
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - booking link cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def view_booking_link(self):
        if LINK_CODE:
            self.client.get(f"/api/v1/book/{LINK_CODE}", name="/api/v1/book/{code} [cached]")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def forged_pass(self):
        with self.client.post(
            f"/api/v1/events/{EVENT_ID or 'missing'}/checkin",
            json={"qr_token": "not.a.token"},
            headers=staff_headers(),
            name="/api/v1/events/{id}/checkin [forged]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 404])

    @tag("edge")
    @task
    def unknown_registration(self):
        with self.client.post(
            f"/api/v1/events/{EVENT_ID or 'missing'}/checkin",
            json={"registration_id": str(uuid.uuid4())},
            headers=staff_headers(),
            name="/api/v1/events/{id}/checkin [unknown]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post(
            f"/api/v1/events/{EVENT_ID or 'missing'}/checkin",
            json={"registration_id": str(uuid.uuid4())},
            name="/api/v1/events/{id}/checkin [no auth]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [401])

    @tag("edge")
    @task
    def malformed_booking(self):
        with self.client.post(
            f"/api/v1/events/{EVENT_ID or 'missing'}/tables/book",
            json={"table_id": "x", "guest_name": "Load", "guest_email": "not-an-email"},
            name="/api/v1/events/{id}/tables/book [bad]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def unknown_link(self):
        code = "".join(random.choices("abcdefghjkmnpqrstuvwxyz23456789", k=10))
        with self.client.get(
            f"/api/v1/book/{code}",
            name="/api/v1/book/{code} [unknown]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])
