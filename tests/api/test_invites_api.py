"""
HTTP tests for the invite endpoints.
"""
import pytest
from fastapi.testclient import TestClient

from app.api import create_app
from app.api.deps import CALLER_HEADER
from tests.conftest import ALICE, BOB, CAROL, DAVE, FIXED_BIND_TIME


@pytest.fixture
def client(invite_service, access_control):
    app = create_app(invite_service, access_control, default_page_size=2, max_page_size=5)
    with TestClient(app) as test_client:
        yield test_client


def _as(identity):
    return {CALLER_HEADER: identity}


class TestBindEndpoint:
    """POST /invites/bind"""

    def test_bind(self, client):
        """Successful bind returns child, parent and bind_time"""
        response = client.post("/invites/bind", json={"parent": BOB}, headers=_as(ALICE))

        assert response.status_code == 200
        assert response.json() == {"child": ALICE, "parent": BOB, "bind_time": FIXED_BIND_TIME}

    def test_missing_caller_header(self, client):
        """No caller header is a 401"""
        response = client.post("/invites/bind", json={"parent": BOB})
        assert response.status_code == 401

    def test_blank_caller_header(self, client):
        """Whitespace caller header is a 401"""
        response = client.post("/invites/bind", json={"parent": BOB}, headers=_as("   "))
        assert response.status_code == 401

    def test_self_reference(self, client):
        """Self-bind maps to 400 self_reference"""
        response = client.post("/invites/bind", json={"parent": ALICE}, headers=_as(ALICE))

        assert response.status_code == 400
        assert response.json()["error"] == "self_reference"

    def test_none_parent(self, client):
        """Empty parent maps to 400 invalid_identity"""
        response = client.post("/invites/bind", json={"parent": ""}, headers=_as(ALICE))

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_identity"

    def test_already_bound(self, client):
        """Rebind maps to 409 already_bound"""
        client.post("/invites/bind", json={"parent": BOB}, headers=_as(ALICE))
        response = client.post("/invites/bind", json={"parent": CAROL}, headers=_as(ALICE))

        assert response.status_code == 409
        assert response.json()["error"] == "already_bound"

    def test_cycle(self, client):
        """2-cycle maps to 409 cycle_detected"""
        client.post("/invites/bind", json={"parent": ALICE}, headers=_as(BOB))
        response = client.post("/invites/bind", json={"parent": BOB}, headers=_as(ALICE))

        assert response.status_code == 409
        assert response.json()["error"] == "cycle_detected"

    def test_request_id_used_as_correlation_id(self, client, event_sink):
        """X-Request-Id flows into the emitted event"""
        headers = {**_as(ALICE), "X-Request-Id": "req-42"}
        client.post("/invites/bind", json={"parent": BOB}, headers=headers)

        assert event_sink.events[0].correlation_id == "req-42"


class TestReadEndpoints:
    """GET endpoints"""

    def test_get_user(self, client):
        """User record includes the counters"""
        client.post("/invites/bind", json={"parent": BOB}, headers=_as(ALICE))

        response = client.get(f"/invites/users/{BOB}")

        assert response.status_code == 200
        assert response.json() == {
            "identity": BOB,
            "parent": "0x0000000000000000000000000000000000000000",
            "first_num": 1,
            "second_num": 0,
            "bind_time": 0,
        }

    def test_check_bind(self, client):
        """check-bind flips to False once the caller is bound"""
        assert client.get(
            "/invites/check-bind", params={"parent": BOB}, headers=_as(ALICE)
        ).json()["eligible"] is True

        client.post("/invites/bind", json={"parent": BOB}, headers=_as(ALICE))

        response = client.get("/invites/check-bind", params={"parent": CAROL}, headers=_as(ALICE))
        assert response.json() == {"caller": ALICE, "parent": CAROL, "eligible": False}

    def test_records_default_page(self, client):
        """Without params the configured default size is used"""
        for child in (BOB, CAROL, DAVE):
            client.post("/invites/bind", json={"parent": ALICE}, headers=_as(child))

        response = client.get(f"/invites/records/{ALICE}")

        body = response.json()
        assert response.status_code == 200
        assert body["total"] == 3
        assert body["size"] == 2
        assert [item["addr"] for item in body["items"]] == [DAVE, CAROL]

    def test_records_second_page(self, client):
        """Second page holds the oldest record"""
        for child in (BOB, CAROL, DAVE):
            client.post("/invites/bind", json={"parent": ALICE}, headers=_as(child))

        body = client.get(f"/invites/records/{ALICE}", params={"page": 2, "size": 2}).json()

        assert body["items"] == [{"addr": BOB, "bind_time": FIXED_BIND_TIME}]

    def test_records_huge_page(self, client):
        """A page number beyond 64 bits returns an empty page, not a 500"""
        for child in (BOB, CAROL, DAVE):
            client.post("/invites/bind", json={"parent": ALICE}, headers=_as(child))

        response = client.get(f"/invites/records/{ALICE}", params={"page": str(10 ** 78), "size": 2})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert body["items"] == []

    def test_records_invalid_page(self, client):
        """Page 0 maps to 400 invalid_page"""
        response = client.get(f"/invites/records/{ALICE}", params={"page": 0})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_page"

    def test_records_size_above_max(self, client):
        """Size above the configured maximum is a 422"""
        response = client.get(f"/invites/records/{ALICE}", params={"size": 6})
        assert response.status_code == 422

    def test_health(self, client):
        """Health endpoint answers ok"""
        assert client.get("/health").json() == {"status": "ok"}
