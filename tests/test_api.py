import pytest
from fastapi.testclient import TestClient

from conftest import insert_rows
from mergeusers.api.routes.merge import get_merge_tool
from mergeusers.core.errors import ConfigurationError, configuration_error_to_http
from mergeusers.db.session import get_db
from mergeusers.main import app
from mergeusers.services.merge_log_service import log_merge


@pytest.fixture()
def client(make_tool, db):
    tool = make_tool()
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_merge_tool] = lambda: tool
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_merge_then_browse_logs(client, engine):
    insert_rows(engine, "forum_posts", [{"id": 1, "userid": 5, "usermodified": 5, "message": "x"}])

    body = client.post("/merges", json={"to_user_id": 2, "from_user_id": 5}).json()
    assert body["success"] is True
    assert body["log_id"] is not None

    merges = client.get("/merges", params={"from_user_id": 5}).json()["merges"]
    assert [m["id"] for m in merges] == [body["log_id"]]
    assert merges[0]["log"] == body["log"]

    detail = client.get(f"/merges/{body['log_id']}").json()
    assert (detail["to_user_id"], detail["from_user_id"], detail["success"]) == (2, 5, True)

    assert client.get("/users/deletable").json() == {"user_ids": [5]}
    assert client.get("/users/5/deletable").json() == {"user_id": 5, "deletable": True}
    assert client.get("/users/2/deletable").json() == {"user_id": 2, "deletable": False}


def test_rejected_merge_is_not_an_http_error(client):
    resp = client.post("/merges", json={"to_user_id": 5, "from_user_id": 5})
    assert resp.status_code == 200
    assert resp.json() == {"success": False, "log": ["Trying to merge the same user (id = 5)"], "log_id": None}


def test_unknown_merge_log_is_404(client):
    assert client.get("/merges/999").status_code == 404


def test_list_paging(client, db):
    ids = [log_merge(db, 2, uid, True, [], timemodified=100 + uid) for uid in (5, 7)]
    merges = client.get("/merges", params={"limit": 1, "offset": 1}).json()["merges"]
    assert [m["id"] for m in merges] == [ids[0]]


def test_misconfigured_engine_is_503(client):
    def broken():
        raise configuration_error_to_http(ConfigurationError("no default merger"))

    app.dependency_overrides[get_merge_tool] = broken
    resp = client.post("/merges", json={"to_user_id": 2, "from_user_id": 5})
    assert resp.status_code == 503
    assert "no default merger" in resp.json()["detail"]
