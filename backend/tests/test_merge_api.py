import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import make_collection, make_feature


@pytest.fixture
def merge_client(monkeypatch):
    import core.config as cfg

    # TestClient talks plain HTTP, secure cookies would never be sent back
    monkeypatch.setattr(cfg, "COOKIE_SECURE", False, raising=False)
    monkeypatch.delenv("KEY_MAPPING_VARIANT", raising=False)

    from api.merge import router as merge_router

    app = FastAPI()
    app.include_router(merge_router, prefix="/api")
    return TestClient(app)


def _upload(client, *named_documents):
    files = []
    for name, document in named_documents:
        payload = document if isinstance(document, bytes) else json.dumps(document).encode()
        files.append(("files", (name, payload, "application/geo+json")))
    return client.post("/api/files", files=files)


FLOOR = make_collection(
    make_feature({"id": 1, "name": "a1"}),
    make_feature({"id": 2, "name": "a2"}),
)
POI = make_collection(make_feature({"id": 3, "name": "b1", "opening_ye": 1999}))


def test_upload_returns_listing_and_sets_session_cookie(merge_client):
    resp = _upload(merge_client, ("mall_floor_1.geojson", FLOOR), ("notes.json", POI))
    assert resp.status_code == 200, resp.text
    body = resp.json()

    assert merge_client.cookies.get("session_id")
    # The cookie is httponly, the body must not hand it to scripts
    assert "session_id" not in body
    assert [(f["name"], f["category"], f["feature_count"]) for f in body["files"]] == [
        ("mall_floor_1.geojson", "floor", 2),
        ("notes.json", None, 1),
    ]
    assert all(f["id"] for f in body["files"])


def test_upload_without_category_is_rejected_and_nothing_is_added(merge_client):
    resp = _upload(merge_client, ("notes.json", POI))
    assert resp.status_code == 400
    assert "_floor_" in resp.json()["detail"]

    listing = merge_client.get("/api/files").json()
    assert listing["files"] == []


def test_upload_with_malformed_json_names_the_file(merge_client):
    _upload(merge_client, ("mall_floor_1.geojson", FLOOR))

    resp = _upload(merge_client, ("mall_poi_1.json", POI), ("mall_sector_1.json", b"{broken"))
    assert resp.status_code == 400
    assert "mall_sector_1.json" in resp.json()["detail"]

    names = [f["name"] for f in merge_client.get("/api/files").json()["files"]]
    assert names == ["mall_floor_1.geojson"]


def test_upload_with_nan_is_rejected(merge_client):
    raw = (
        b'{"type": "FeatureCollection", "features": [{"type": "Feature", '
        b'"geometry": null, "properties": {"height": NaN}}]}'
    )
    resp = _upload(merge_client, ("mall_floor_1.geojson", raw))
    assert resp.status_code == 400
    assert "mall_floor_1.geojson" in resp.json()["detail"]
    assert merge_client.get("/api/files").json()["files"] == []


def test_upload_without_files_asks_for_a_category(merge_client):
    from services.merge.engine import CATEGORY_REQUIRED_MESSAGE

    resp = merge_client.post("/api/files")
    assert resp.status_code == 400
    assert resp.json()["detail"] == CATEGORY_REQUIRED_MESSAGE


def test_upload_over_size_limit_is_rejected(merge_client, monkeypatch):
    import core.config as cfg

    monkeypatch.setattr(cfg, "MAX_FILE_SIZE", 5, raising=False)
    resp = _upload(merge_client, ("mall_floor_1.geojson", FLOOR))
    assert resp.status_code == 413
    assert "mall_floor_1.geojson" in resp.json()["detail"]
    assert merge_client.get("/api/files").json()["files"] == []


def test_subsequent_uploads_append(merge_client):
    _upload(merge_client, ("mall_floor_1.geojson", FLOOR))
    resp = _upload(merge_client, ("mall_poi_1.json", POI))
    assert [f["name"] for f in resp.json()["files"]] == ["mall_floor_1.geojson", "mall_poi_1.json"]


def test_reorder_changes_listing_and_merge_order(merge_client):
    _upload(merge_client, ("mall_floor_1.geojson", FLOOR), ("mall_poi_1.json", POI))

    resp = merge_client.post(
        "/api/files/reorder", json={"source_index": 1, "destination_index": 0}
    )
    assert resp.status_code == 200
    assert [f["name"] for f in resp.json()["files"]] == ["mall_poi_1.json", "mall_floor_1.geojson"]

    merged = json.loads(merge_client.post("/api/merge").content)
    assert [f["id"] for f in merged["features"]] == [3, 1, 2]


def test_reorder_without_destination_is_noop(merge_client):
    _upload(merge_client, ("mall_floor_1.geojson", FLOOR), ("mall_poi_1.json", POI))
    resp = merge_client.post("/api/files/reorder", json={"source_index": 1})
    assert resp.status_code == 200
    assert [f["name"] for f in resp.json()["files"]] == ["mall_floor_1.geojson", "mall_poi_1.json"]


def test_reorder_out_of_range_is_rejected(merge_client):
    _upload(merge_client, ("mall_floor_1.geojson", FLOOR))
    resp = merge_client.post(
        "/api/files/reorder", json={"source_index": 0, "destination_index": 4}
    )
    assert resp.status_code == 400
    assert "out of range" in resp.json()["detail"]


def test_merge_with_empty_working_set_returns_no_content(merge_client):
    resp = merge_client.post("/api/merge")
    assert resp.status_code == 204
    assert resp.content == b""
    assert "content-disposition" not in resp.headers


def test_merge_downloads_result_txt(merge_client):
    _upload(merge_client, ("mall_floor_1.geojson", FLOOR), ("mall_poi_1.json", POI))

    resp = merge_client.post("/api/merge")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.headers["content-disposition"] == 'attachment; filename="result.txt"'

    text = resp.content.decode("utf-8")
    assert text.startswith('{\n  "type": "FeatureCollection"')
    merged = json.loads(text)
    assert merged["features"][0] == {
        "id": 1,
        "type": "Feature",
        "geometry": FLOOR["features"][0]["geometry"],
        "properties": {"name": "a1", "data_type": "floor"},
    }
    assert merged["features"][2]["properties"] == {
        "name": "b1",
        "opening_year": 1999,
        "data_type": "poi",
    }


def test_sessions_have_separate_working_sets(merge_client):
    _upload(merge_client, ("mall_floor_1.geojson", FLOOR))

    other = TestClient(merge_client.app)
    assert other.get("/api/files").json()["files"] == []
    assert other.post("/api/merge").status_code == 204


def test_invalid_session_cookie_is_replaced(merge_client):
    merge_client.cookies.set("session_id", "short")
    resp = merge_client.get("/api/files")
    assert resp.status_code == 200
    set_cookie = resp.headers["set-cookie"]
    assert set_cookie.startswith("session_id=")
    assert not set_cookie.startswith("session_id=short;")
    assert "session_id" not in resp.json()


def test_key_mappings_endpoint_follows_configured_variant(merge_client, monkeypatch):
    resp = merge_client.get("/api/merge/key-mappings")
    body = resp.json()
    assert body["variant"] == "extended"
    assert body["mappings"][0] == {"prefix": "created_da", "canonical": "created_date"}
    assert body["mappings"][-1] == {"prefix": "store_numb", "canonical": "store_number"}

    monkeypatch.setenv("KEY_MAPPING_VARIANT", "base")
    body = merge_client.get("/api/merge/key-mappings").json()
    assert body["variant"] == "base"
    assert len(body["mappings"]) == 8


def test_merge_uses_base_variant_when_configured(merge_client, monkeypatch):
    monkeypatch.setenv("KEY_MAPPING_VARIANT", "base")
    document = make_collection(make_feature({"store_numb": "B1-07"}))
    _upload(merge_client, ("mall_poi_1.json", document))

    merged = json.loads(merge_client.post("/api/merge").content)
    assert merged["features"][0]["properties"] == {"store_numb": "B1-07", "data_type": "poi"}


def test_merge_keeps_lone_surrogate_as_escape(merge_client):
    raw = b'{"features": [{"type": "Feature", "geometry": null, "properties": {"name": "\\ud800"}}]}'
    assert _upload(merge_client, ("mall_poi_1.json", raw)).status_code == 200

    resp = merge_client.post("/api/merge")
    assert resp.status_code == 200
    assert b'"name": "\\ud800"' in resp.content
