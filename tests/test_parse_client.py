"""
Tests for the Parse REST client.

Requests are answered by httpx.MockTransport handlers, so the wire format
(paths, headers, query parameters, bodies) is checked without a server.
"""

import json

import httpx
import pytest

from parse_mcp.parse_client import (
    AGGREGATE_ERROR,
    CONNECTION_FAILED,
    TIMEOUT,
    ParseClient,
    ParseError,
    class_path,
    guarded,
)
from parse_mcp.values import Operation, Pointer

pytestmark = pytest.mark.anyio

SERVER_URL = "http://localhost:1337/parse"


class Recorder:
    """MockTransport handler that records requests and replies from a queue."""

    def __init__(self, *responses):
        self.requests = []
        self.responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.responses.pop(0) if self.responses else {}
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def body(self, index: int = -1):
        return json.loads(self.requests[index].content)


def make_client(recorder, **kwargs):
    return ParseClient(
        SERVER_URL,
        "app-id",
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )


def test_class_path():
    assert class_path("_User") == "users"
    assert class_path("_Role") == "roles"
    assert class_path("Game Score") == "classes/Game%20Score"


class TestRequests:

    async def test_headers(self):
        recorder = Recorder({"results": []})
        async with make_client(recorder, master_key="mk", rest_key="rk") as client:
            await client.find("Post")
        headers = recorder.last.headers
        assert headers["X-Parse-Application-Id"] == "app-id"
        assert headers["X-Parse-Master-Key"] == "mk"
        assert headers["X-Parse-REST-API-Key"] == "rk"
        assert "X-Parse-Javascript-Key" not in headers

    async def test_find_parameters(self):
        recorder = Recorder({"results": [{"objectId": "a"}]})
        async with make_client(recorder) as client:
            results = await client.find(
                "Post",
                where={"author": Pointer("_User", "u1")},
                limit=10,
                skip=5,
                order="-createdAt",
                include=["author", "category"],
                keys=["title"],
            )
        assert results == [{"objectId": "a"}]
        url = recorder.last.url
        assert url.path == "/parse/classes/Post"
        assert json.loads(url.params["where"]) == {
            "author": {"__type": "Pointer", "className": "_User", "objectId": "u1"}
        }
        assert url.params["limit"] == "10"
        assert url.params["skip"] == "5"
        assert url.params["order"] == "-createdAt"
        assert url.params["include"] == "author,category"
        assert url.params["keys"] == "title"

    async def test_count(self):
        recorder = Recorder({"results": [], "count": 42})
        async with make_client(recorder) as client:
            assert await client.count("_User", where={"active": True}) == 42
        url = recorder.last.url
        assert url.path == "/parse/users"
        assert url.params["limit"] == "0"
        assert url.params["count"] == "1"

    async def test_first_returns_none_when_empty(self):
        recorder = Recorder({"results": []})
        async with make_client(recorder) as client:
            assert await client.first("Post", order="createdAt") is None
        assert recorder.last.url.params["limit"] == "1"

    async def test_create_merges_response(self):
        recorder = Recorder({"objectId": "new1", "createdAt": "2024-01-01T00:00:00.000Z"})
        async with make_client(recorder) as client:
            created = await client.create("Post", {"title": "hi", "author": Pointer("_User", "u1")})
        assert recorder.last.method == "POST"
        assert recorder.body()["author"]["__type"] == "Pointer"
        assert created["objectId"] == "new1"
        assert created["title"] == "hi"

    async def test_update_sends_operations(self):
        recorder = Recorder({"updatedAt": "2024-01-02T00:00:00.000Z", "views": 3})
        async with make_client(recorder) as client:
            response = await client.update("Post", "p1", {"views": Operation("Increment", {"amount": 1})})
        assert recorder.last.method == "PUT"
        assert recorder.last.url.path == "/parse/classes/Post/p1"
        assert recorder.body() == {"views": {"__op": "Increment", "amount": 1}}
        assert response["views"] == 3

    async def test_run_function_unwraps_result(self):
        recorder = Recorder({"result": {"ok": True}})
        async with make_client(recorder) as client:
            assert await client.run_function("hello", {"name": "ann"}) == {"ok": True}
        assert recorder.last.url.path == "/parse/functions/hello"
        assert recorder.body() == {"name": "ann"}

    async def test_aggregate_sends_pipeline(self):
        pipeline = [{"$match": {"score": {"$gt": 10}}}]
        recorder = Recorder({"results": [{"total": 3}]})
        async with make_client(recorder) as client:
            assert await client.aggregate("Score", pipeline) == [{"total": 3}]
        assert recorder.last.url.path == "/parse/aggregate/Score"
        assert json.loads(recorder.last.url.params["pipeline"]) == pipeline

    async def test_config(self):
        recorder = Recorder({"params": {"motd": "hi"}}, {"result": True})
        async with make_client(recorder) as client:
            assert await client.get_config() == {"motd": "hi"}
            assert await client.save_config({"motd": "bye"}) is True
        assert recorder.body() == {"params": {"motd": "bye"}}


class TestBatch:

    async def test_save_all_uses_mount_path(self):
        recorder = Recorder([
            {"success": {"objectId": "a", "createdAt": "t"}},
            {"success": {"objectId": "b", "createdAt": "t"}},
        ])
        async with make_client(recorder) as client:
            saved = await client.save_all("Post", [{"title": "one"}, {"title": "two"}])
        assert recorder.last.url.path == "/parse/batch"
        requests = recorder.body()["requests"]
        assert [r["path"] for r in requests] == ["/parse/classes/Post", "/parse/classes/Post"]
        assert [s["objectId"] for s in saved] == ["a", "b"]
        assert saved[1]["title"] == "two"

    async def test_empty_batches_skip_the_network(self):
        recorder = Recorder()
        async with make_client(recorder) as client:
            assert await client.save_all("Post", []) == []
            await client.destroy_all("Post", [])
        assert recorder.requests == []

    async def test_partial_failure(self):
        recorder = Recorder([
            {"success": {}},
            {"error": {"code": 101, "error": "Object not found."}},
        ])
        async with make_client(recorder) as client:
            with pytest.raises(ParseError) as exc_info:
                await client.destroy_all("Post", ["a", "b"])
        assert exc_info.value.code == AGGREGATE_ERROR
        assert exc_info.value.message == "1 of 2 batch operations failed: Object not found."
        paths = [r["path"] for r in recorder.body()["requests"]]
        assert paths == ["/parse/classes/Post/a", "/parse/classes/Post/b"]


class TestErrors:

    async def test_parse_error_body(self):
        recorder = Recorder(httpx.Response(404, json={"code": 101, "error": "Object not found."}))
        async with make_client(recorder) as client:
            with pytest.raises(ParseError) as exc_info:
                await client.get("Post", "missing")
        assert exc_info.value.to_dict() == {"error": "Object not found.", "code": 101}

    async def test_non_json_error(self):
        recorder = Recorder(httpx.Response(502, text="Bad Gateway"))
        async with make_client(recorder) as client:
            with pytest.raises(ParseError) as exc_info:
                await client.get_config()
        assert exc_info.value.code == 502
        assert exc_info.value.message == "Bad Gateway"

    async def test_connection_failure(self):
        recorder = Recorder(httpx.ConnectError("connection refused"))
        async with make_client(recorder) as client:
            outcome = await guarded(client.find("_User", limit=1))
        assert not outcome.ok
        assert outcome.fault.code == CONNECTION_FAILED

    async def test_timeout(self):
        recorder = Recorder(httpx.ReadTimeout("too slow"))
        async with make_client(recorder) as client:
            with pytest.raises(ParseError) as exc_info:
                await client.count("Post")
        assert exc_info.value.code == TIMEOUT

    async def test_guarded_success(self):
        recorder = Recorder({"objectId": "a"})
        async with make_client(recorder) as client:
            outcome = await guarded(client.get("Post", "a"))
        assert outcome.ok
        assert outcome.value == {"objectId": "a"}
