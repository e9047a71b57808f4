"""
Tests for the link HTTP API.
"""
import pytest

from domains.core.exceptions import StorageError

API = "/api/v1/links"


def _create(client, source=("note", "A"), target=("project", "P"), metadata=None):
    payload = {
        "source_type": source[0],
        "source_id": source[1],
        "target_type": target[0],
        "target_id": target[1],
    }
    if metadata is not None:
        payload["metadata"] = metadata
    return client.post(f"{API}/", json=payload)


class TestHealth:

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestLinkCrud:

    def test_create_link(self, client, summaries):
        summaries.add("project", "P", {"name": "Screen"})

        response = _create(client, metadata={"label": "uses"})

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["source_type"] == "note"
        assert body["data"]["metadata"] == '{"label": "uses"}'

    def test_get_link_with_summaries(self, client, summaries):
        summaries.add("project", "P", {"name": "Screen"})
        link_id = _create(client).json()["data"]["id"]

        response = client.get(f"{API}/{link_id}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == link_id
        assert data["target_summary"] == {"name": "Screen"}
        assert data["source_summary"] is None

    def test_get_missing_link(self, client):
        response = client.get(f"{API}/does-not-exist")

        assert response.status_code == 404
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "NOT_FOUND"

    def test_delete_link(self, client):
        link_id = _create(client).json()["data"]["id"]

        response = client.delete(f"{API}/{link_id}")
        assert response.status_code == 204
        assert response.content == b""

        assert client.get(f"{API}/{link_id}").status_code == 404
        assert client.delete(f"{API}/{link_id}").status_code == 404

    def test_invalid_entity_type(self, client):
        response = _create(client, source=("spreadsheet", "A"))

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]["field"] == "source_type"

    def test_missing_field_is_400(self, client):
        response = client.post(f"{API}/", json={"source_type": "note", "source_id": "A"})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        fields = {e["field"] for e in body["details"]["validation_errors"]}
        assert fields == {"target_type", "target_id"}

    def test_request_id_header(self, client):
        response = client.get(f"{API}/", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    def test_blank_entity_id(self, client):
        response = _create(client, target=("project", "   "))
        assert response.status_code == 400

    def test_storage_failure_is_500(self, client, store, monkeypatch):
        def broken_create(data):
            raise StorageError("创建关联失败")

        monkeypatch.setattr(store, "create", broken_create)

        response = _create(client)

        assert response.status_code == 500
        assert response.json()["code"] == "STORAGE_ERROR"


class TestListAndSearch:

    def test_pagination(self, client):
        for i in range(3):
            _create(client, source=("note", f"N{i}"))

        response = client.get(f"{API}/", params={"page": 2, "limit": 2})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total"] == 3
        assert len(data["links"]) == 1
        assert data["links"][0]["source_id"] == "N0"
        assert data["pagination"]["has_next"] is False
        assert data["pagination"]["has_prev"] is True
        assert data["pagination"]["total_pages"] == 2

    def test_filters(self, client):
        _create(client, source=("note", "A"))
        _create(client, source=("note", "B"))

        data = client.get(f"{API}/", params={"source_id": "B"}).json()["data"]

        assert data["total"] == 1
        assert data["links"][0]["source_id"] == "B"

    @pytest.mark.parametrize("params", [{"page": 0}, {"page": "abc"}, {"limit": 0}, {"limit": 101}])
    def test_invalid_paging(self, client, params):
        assert client.get(f"{API}/", params=params).status_code == 400

    def test_search(self, client):
        _create(client, metadata="derived from run 7")
        _create(client, source=("note", "B"), metadata="unrelated")

        response = client.get(f"{API}/search/run 7")

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data) == 1
        assert data[0]["metadata"] == "derived from run 7"

    def test_search_is_case_sensitive(self, client):
        _create(client, metadata="Derived")

        assert client.get(f"{API}/search/derived").json()["data"] == []


class TestEntityViews:

    @pytest.fixture
    def links(self, client):
        return {
            "out": _create(client, source=("note", "A"), target=("project", "P")).json()["data"],
            "in": _create(client, source=("experiment", "E"), target=("note", "A")).json()["data"],
        }

    def test_backlinks(self, client, links):
        data = client.get(f"{API}/backlinks/note/A").json()["data"]
        assert [link["id"] for link in data] == [links["in"]["id"]]

    def test_outgoing(self, client, links):
        data = client.get(f"{API}/outgoing/note/A").json()["data"]
        assert [link["id"] for link in data] == [links["out"]["id"]]

    def test_connections(self, client, links):
        data = client.get(f"{API}/connections/note/A").json()["data"]

        assert data["total"] == 2
        assert data["backlinks"][0]["id"] == links["in"]["id"]
        assert data["outgoing"][0]["id"] == links["out"]["id"]

    def test_unknown_type_rejected(self, client):
        assert client.get(f"{API}/backlinks/folder/A").status_code == 400

    def test_remove_entity_links(self, client, store, links):
        response = client.delete(f"{API}/entity/note/A")

        assert response.status_code == 200
        assert response.json()["data"]["deleted"] == 2
        assert store.count() == 0


class TestBidirectional:

    def test_creates_mirrored_pair(self, client):
        response = client.post(f"{API}/bidirectional", json={
            "source_type": "protocol",
            "source_id": "PR",
            "target_type": "recipe",
            "target_id": "R",
        })

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["forward"]["source_id"] == "PR"
        assert data["reverse"]["source_id"] == "R"
        assert data["reverse"]["target_type"] == "protocol"

    def test_pair_is_not_coupled(self, client, store):
        data = client.post(f"{API}/bidirectional", json={
            "source_type": "note", "source_id": "A",
            "target_type": "note", "target_id": "B",
        }).json()["data"]

        client.delete(f"{API}/{data['forward']['id']}")

        assert store.find_by_id(data["reverse"]["id"]) is not None


class TestGraph:

    def test_flat_graph(self, client, summaries):
        summaries.add("note", "A", {"title": "Plan"})
        _create(client)
        _create(client, source=("table", "T"), target=("recipe", "R"))

        data = client.get(f"{API}/graph", params={"entity_type": "note"}).json()["data"]

        assert {node["id"] for node in data["nodes"]} == {"note:A", "project:P"}
        assert len(data["edges"]) == 1
        assert "stats" not in data or data["stats"] is None
        labels = {node["id"]: node["label"] for node in data["nodes"]}
        assert labels["note:A"] == "Plan"
        assert labels["project:P"] == "project P"

    def test_expanded_graph(self, client):
        _create(client, source=("note", "A"), target=("note", "B"))
        _create(client, source=("note", "B"), target=("note", "C"))
        _create(client, source=("note", "C"), target=("note", "D"))

        response = client.get(f"{API}/graph", params={
            "entity_type": "note", "entity_id": "A", "max_depth": 2,
        })

        assert response.status_code == 200
        data = response.json()["data"]
        assert {node["id"] for node in data["nodes"]} == {"note:A", "note:B", "note:C"}
        assert data["stats"]["depth"] == 2
        assert data["stats"]["edge_count"] == 2

    def test_invalid_depth(self, client):
        response = client.get(f"{API}/graph", params={"max_depth": 0})
        assert response.status_code == 400
