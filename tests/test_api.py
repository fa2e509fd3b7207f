"""HTTP surface: envelope, status codes and the end-to-end feed/upvote flow."""

import io
import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from civiceye.core.config import settings
from civiceye.core.errors import StoreUnavailableError
from civiceye.core.security import make_access_token
from civiceye.db.session import build_store, store_errors
from civiceye.main import create_app
from civiceye.routers.issues import _read_upload


def _create(client, headers, **fields):
    data = {
        "title": "Broken street light",
        "description": "Light pole not working since Monday",
        "category": "SAFETY",
        "location": json.dumps({"latitude": 12.9716, "longitude": 77.5946}),
    }
    data.update(fields)
    return client.post("/issues", data=data, headers=headers)


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_requires_token(client):
    r = client.get("/issues/feed")
    assert r.status_code == 401
    assert r.json()["success"] is False


def test_bad_token(client):
    r = client.get("/issues/feed", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


def test_end_to_end_feed_and_upvotes(client, auth):
    r = _create(client, auth("alice"))
    assert r.status_code == 201
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "Issue reported successfully"
    issue = body["data"]
    assert issue["status"] == "OPEN"
    assert issue["isCallerIssue"] is True
    assert issue["reporter"] == {"id": issue["reporter"]["id"], "name": "Alice", "avatar": None}
    issue_id = issue["id"]

    def feed_ids(params):
        page = client.get("/issues/feed", params=params, headers=auth("bob")).json()["data"]
        return [item["id"] for item in page["items"]]

    assert issue_id in feed_ids({"latitude": 12.97, "longitude": 77.59, "radius": 5})
    assert issue_id not in feed_ids({"latitude": 12.97, "longitude": 77.59, "radius": 0.01})
    assert issue_id not in feed_ids({"latitude": 13.15, "longitude": 77.59, "radius": 5})

    first = client.post(f"/issues/{issue_id}/upvote", headers=auth("bob")).json()
    assert first["data"] == {"upvoted": True, "upvoteCount": 1}
    assert first["message"] == "Issue upvoted"
    second = client.post(f"/issues/{issue_id}/upvote", headers=auth("sam")).json()
    assert second["data"]["upvoteCount"] == 2
    again = client.post(f"/issues/{issue_id}/upvote", headers=auth("bob")).json()
    assert again["data"] == {"upvoted": False, "upvoteCount": 1}
    assert again["message"] == "Upvote removed"

    item = client.get("/issues/feed", headers=auth("sam")).json()["data"]["items"][0]
    assert item["upvoteCount"] == 1
    assert item["callerHasUpvoted"] is True
    assert "email" not in item["reporter"]


def test_invalid_location(client, auth):
    r = _create(client, auth("alice"), location=json.dumps({"latitude": 120, "longitude": 77}))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_location"


def test_missing_title(client, auth):
    r = _create(client, auth("alice"), title="   ")
    assert r.status_code == 400
    assert r.json()["error"] == {"code": "validation_error", "field": "title"}


def test_create_with_image(client, auth):
    r = client.post(
        "/issues",
        data={"title": "Garbage dump", "description": "Near the park", "category": "sanitation",
              "latitude": "12.95", "longitude": "77.6", "tags": "garbage,park"},
        files=[("images", ("dump.png", b"\x89PNG\r\n", "image/png"))],
        headers=auth("alice"),
    )
    assert r.status_code == 201
    issue = r.json()["data"]
    assert issue["tags"] == ["garbage", "park"]
    assert len(issue["images"]) == 1
    assert issue["images"][0]["url"].endswith(issue["images"][0]["filename"])


def test_pagination_envelope(client, auth):
    for i in range(3):
        _create(client, auth("alice"), title=f"Issue {i}")
    data = client.get("/issues", params={"limit": 2}, headers=auth("bob")).json()["data"]
    assert (data["total"], data["totalPages"], data["hasNextPage"], data["hasPrevPage"]) == (3, 2, True, False)
    assert client.get("/issues", params={"page": 0}, headers=auth("bob")).status_code == 400


def test_private_issue_gates(client, auth):
    issue_id = _create(client, auth("alice"), visibility="private").json()["data"]["id"]
    assert client.get(f"/issues/{issue_id}", headers=auth("bob")).status_code == 403
    assert client.post(f"/issues/{issue_id}/upvote", headers=auth("bob")).status_code == 403
    assert client.get(f"/issues/{issue_id}", headers=auth("alice")).status_code == 200
    mine = client.get("/issues/my", headers=auth("alice")).json()["data"]
    assert [i["id"] for i in mine["items"]] == [issue_id]


def test_update_status_and_assignment(client, auth, users):
    issue_id = _create(client, auth("alice")).json()["data"]["id"]

    r = client.put(f"/issues/{issue_id}", json={"title": "Street light fixed?", "status": "CLOSED"},
                   headers=auth("alice"))
    assert r.status_code == 200
    assert r.json()["data"]["title"] == "Street light fixed?"
    assert r.json()["data"]["status"] == "OPEN"

    assert client.put(f"/issues/{issue_id}", json={"title": "x"}, headers=auth("bob")).status_code == 403
    assert client.patch(f"/issues/{issue_id}/status", json={"status": "RESOLVED"},
                        headers=auth("alice")).status_code == 403

    r = client.patch(f"/issues/{issue_id}/assignment", json={"assignedTo": users["sam"].id},
                     headers=auth("ada"))
    assert r.json()["data"]["assignedTo"] == {"id": users["sam"].id, "name": "Sam"}

    r = client.patch(f"/issues/{issue_id}/status", json={"status": "RESOLVED"}, headers=auth("sam"))
    assert r.status_code == 200
    assert r.json()["data"]["resolvedAt"] is not None

    r = client.patch(f"/issues/{issue_id}/status", json={"status": "IN_PROGRESS"}, headers=auth("ada"))
    assert r.status_code == 400
    assert r.json()["error"]["field"] == "status"


def test_comments(client, auth):
    issue_id = _create(client, auth("alice")).json()["data"]["id"]
    r = client.post(f"/issues/{issue_id}/comment", json={"comment": "  Seen it too "}, headers=auth("bob"))
    assert r.status_code == 201
    assert r.json()["data"]["comment"] == "Seen it too"
    assert r.json()["data"]["user"]["name"] == "Bob"

    too_long = client.post(f"/issues/{issue_id}/comment", json={"comment": "x" * 501}, headers=auth("bob"))
    assert too_long.status_code == 400

    client.post(f"/issues/{issue_id}/comment", json={"comment": "Second"}, headers=auth("alice"))
    listed = client.get(f"/issues/{issue_id}/comments", headers=auth("sam")).json()["data"]
    assert [c["comment"] for c in listed] == ["Seen it too", "Second"]

    detail = client.get(f"/issues/{issue_id}", headers=auth("sam")).json()["data"]
    assert detail["commentCount"] == 2
    assert len(detail["comments"]) == 2


def test_delete(client, auth):
    issue_id = _create(client, auth("alice")).json()["data"]["id"]
    client.post(f"/issues/{issue_id}/upvote", headers=auth("bob"))
    assert client.delete(f"/issues/{issue_id}", headers=auth("bob")).status_code == 403
    r = client.delete(f"/issues/{issue_id}", headers=auth("alice"))
    assert r.json() == {"success": True, "message": "Issue deleted successfully"}
    assert client.get(f"/issues/{issue_id}", headers=auth("alice")).status_code == 404
    assert client.delete(f"/issues/{issue_id}", headers=auth("alice")).status_code == 404
    assert client.post(f"/issues/{issue_id}/upvote", headers=auth("bob")).status_code == 404


def test_stats(client, auth):
    _create(client, auth("alice"))
    _create(client, auth("alice"), category="TRAFFIC")
    summary = client.get("/issues/stats/summary", headers=auth("ada")).json()["data"]
    assert summary["summary"]["total"] == 2
    assert summary["summary"]["inProgress"] == 0
    assert {c["category"] for c in summary["categories"]} == {"SAFETY", "TRAFFIC"}

    mine = client.get("/issues/stats/mine", headers=auth("alice")).json()["data"]
    assert mine == {"totalIssues": 2, "resolvedIssues": 0, "totalUpvotes": 0}

    assert client.get("/issues/stats/summary", params={"range": "bogus"},
                      headers=auth("ada")).status_code == 400


def test_feed_echoes_applied_parameters(client, auth):
    params = {"latitude": 12.97, "longitude": 77.59, "radius": 5, "category": "safety"}
    info = client.get("/issues/feed", params=params, headers=auth("bob")).json()["data"]["feedInfo"]
    assert info == {
        "radius": 5.0,
        "location": {"latitude": 12.97, "longitude": 77.59},
        "category": "SAFETY",
        "includeResolved": False,
    }

    info = client.get("/issues/feed", params={"includeResolved": "true"},
                      headers=auth("bob")).json()["data"]["feedInfo"]
    assert info["location"] is None
    assert info["category"] == "all"
    assert info["includeResolved"] is True


def test_unrecognised_flag_rejected(client, auth):
    r = client.get("/issues/feed", params={"includeResolved": "maybe"}, headers=auth("bob"))
    assert r.status_code == 400
    assert r.json()["error"] == {"code": "validation_error", "field": "includeResolved"}
    r = client.get("/issues", params={"myIssues": "sometimes"}, headers=auth("bob"))
    assert r.status_code == 400


def test_upload_read_is_bounded():
    upload = SimpleNamespace(filename="big.png", content_type="image/png", file=io.BytesIO(b"x" * 100))
    image = _read_upload(upload, 10)
    assert len(image.data) == 11
    assert (image.filename, image.content_type) == ("big.png", "image/png")


def test_oversized_upload_rejected(client, auth, monkeypatch):
    monkeypatch.setattr(settings, "max_file_size", 8)
    r = client.post(
        "/issues",
        data={"title": "Garbage dump", "description": "Near the park", "category": "SANITATION",
              "latitude": "12.95", "longitude": "77.6"},
        files=[("images", ("dump.png", b"\x89PNG\r\n" + b"\x00" * 64, "image/png"))],
        headers=auth("alice"),
    )
    assert r.status_code == 400
    assert r.json()["error"]["field"] == "images"


def test_store_outage_returns_503(tmp_path, media):
    # the parent directory does not exist so every connection attempt fails
    store = build_store(f"sqlite:///{tmp_path / 'missing' / 'civiceye.db'}", timeout=1.0)
    headers = {"Authorization": f"Bearer {make_access_token('alice@example.com', 'citizen')}"}
    with TestClient(create_app(store=store, media=media)) as c:
        r = c.get("/issues/feed", headers=headers)
    assert r.status_code == 503
    assert r.headers["Retry-After"] == "1"
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "store_unavailable"


def test_store_errors_translates_operational_error():
    @store_errors
    def lookup():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    with pytest.raises(StoreUnavailableError):
        lookup()


def test_unhandled_error_hides_detail(store, media):
    app = create_app(store=store, media=media)

    @app.get("/boom")
    def boom():
        raise RuntimeError("secret detail")

    with TestClient(app, raise_server_exceptions=False) as c:
        r = c.get("/boom")
    assert r.status_code == 500
    body = r.json()
    assert body["error"]["code"] == "internal_error"
    assert len(body["error"]["correlationId"]) == 32
    assert "secret detail" not in r.text
