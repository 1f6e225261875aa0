"""
Async client for the Parse Server REST API.

This is the only module that talks to the network. Every call either returns
decoded JSON or raises ParseError; callers that need to look at a failure
without aborting wrap the call with `guarded()`.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, List, Optional, Sequence
from urllib.parse import quote, urlparse

import httpx

from .values import encode_fields, encode_value

logger = logging.getLogger(__name__)

# Parse error codes produced locally (same numbers the Parse SDKs use)
CONNECTION_FAILED = 100
OBJECT_NOT_FOUND = 101
TIMEOUT = 124
AGGREGATE_ERROR = 600

# Built-in classes live under their own REST roots
SPECIAL_CLASS_PATHS = {
    "_User": "users",
    "_Role": "roles",
    "_Installation": "installations",
    "_Session": "sessions",
}


class ParseError(Exception):
    """A failure reported by (or on the way to) the Parse Server."""

    def __init__(self, code: Optional[int], message: str):
        self.code = code
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"error": self.message}
        if self.code is not None:
            data["code"] = self.code
        return data


@dataclass
class Outcome:
    """Result of a guarded backend call: either a value or a fault."""
    value: Any = None
    fault: Optional[ParseError] = None

    @property
    def ok(self) -> bool:
        return self.fault is None


async def guarded(call: Awaitable[Any]) -> Outcome:
    """Await a backend call and capture a ParseError instead of raising it."""
    try:
        return Outcome(value=await call)
    except ParseError as e:
        return Outcome(fault=e)


def class_path(class_name: str) -> str:
    """REST path for a class, honoring the built-in class roots."""
    if class_name in SPECIAL_CLASS_PATHS:
        return SPECIAL_CLASS_PATHS[class_name]
    return f"classes/{quote(class_name, safe='')}"


def _query_params(
    where: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    skip: Optional[int] = None,
    order: Optional[str] = None,
    include: Optional[Sequence[str]] = None,
    keys: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if where:
        params["where"] = json.dumps(encode_value(where))
    if limit is not None:
        params["limit"] = limit
    if skip:
        params["skip"] = skip
    if order:
        params["order"] = order
    if include:
        params["include"] = ",".join(include)
    if keys:
        params["keys"] = ",".join(keys)
    return params


class ParseClient:
    """
    Thin async wrapper over the Parse REST API.

    One instance is shared by every MCP session in the process; it holds no
    per-request state besides the pooled HTTP connection.
    """

    def __init__(
        self,
        server_url: str,
        app_id: str,
        master_key: str = "",
        js_key: str = "",
        rest_key: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            server_url: Parse Server URL including its mount path (e.g. http://localhost:1337/parse)
            app_id: Parse Application ID
            master_key: Master Key, sent on every request when set
            js_key: JavaScript Key (optional, passed through)
            rest_key: REST API Key (optional, passed through)
            timeout: Seconds before a single HTTP call is abandoned
            transport: Custom httpx transport (used by tests)
        """
        self.server_url = server_url.rstrip("/")
        self.mount_path = urlparse(self.server_url).path.rstrip("/")

        headers = {"X-Parse-Application-Id": app_id}
        if master_key:
            headers["X-Parse-Master-Key"] = master_key
        if rest_key:
            headers["X-Parse-REST-API-Key"] = rest_key
        if js_key:
            headers["X-Parse-Javascript-Key"] = js_key

        self._http = httpx.AsyncClient(
            base_url=self.server_url + "/",
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "ParseClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
    ) -> Any:
        logger.debug("Parse request: %s %s", method, path)
        try:
            response = await self._http.request(method, path, params=params, json=body)
        except httpx.TimeoutException as e:
            raise ParseError(TIMEOUT, f"Request to Parse Server timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ParseError(CONNECTION_FAILED, f"Could not reach Parse Server: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error:
            if isinstance(payload, dict) and "error" in payload:
                raise ParseError(payload.get("code"), str(payload["error"]))
            raise ParseError(
                response.status_code,
                response.text or response.reason_phrase or "Parse Server request failed",
            )
        return payload

    # === Schema ===

    async def get_schemas(self) -> List[Dict[str, Any]]:
        payload = await self._request("GET", "schemas")
        return payload.get("results", [])

    async def get_schema(self, class_name: str) -> Dict[str, Any]:
        return await self._request("GET", f"schemas/{quote(class_name, safe='')}")

    # === Queries ===

    async def find(
        self,
        class_name: str,
        where: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
        order: Optional[str] = None,
        include: Optional[Sequence[str]] = None,
        keys: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Find objects in a class.

        Args:
            class_name: Class to query
            where: Query constraints in Parse REST syntax
            limit: Maximum number of results
            skip: Number of results to skip
            order: Comma-separated sort keys, '-' prefix for descending
            include: Pointer fields to expand
            keys: Fields to return

        Returns:
            List of objects as JSON dicts
        """
        params = _query_params(where, limit, skip, order, include, keys)
        payload = await self._request("GET", class_path(class_name), params=params)
        return payload.get("results", [])

    async def first(
        self,
        class_name: str,
        where: Optional[Dict[str, Any]] = None,
        order: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        results = await self.find(class_name, where=where, limit=1, order=order)
        return results[0] if results else None

    async def count(self, class_name: str, where: Optional[Dict[str, Any]] = None) -> int:
        params = _query_params(where, limit=0)
        params["count"] = 1
        payload = await self._request("GET", class_path(class_name), params=params)
        return payload.get("count", 0)

    async def get(
        self,
        class_name: str,
        object_id: str,
        include: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        params = _query_params(include=include)
        path = f"{class_path(class_name)}/{quote(object_id, safe='')}"
        return await self._request("GET", path, params=params)

    # === Mutations ===

    async def create(self, class_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create an object; returns the sent fields merged with objectId/createdAt."""
        body = encode_fields(data)
        created = await self._request("POST", class_path(class_name), body=body)
        return {**body, **created}

    async def update(self, class_name: str, object_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Update an object; returns the server response (updatedAt plus operation results)."""
        path = f"{class_path(class_name)}/{quote(object_id, safe='')}"
        return await self._request("PUT", path, body=encode_fields(data))

    async def destroy(self, class_name: str, object_id: str) -> None:
        path = f"{class_path(class_name)}/{quote(object_id, safe='')}"
        await self._request("DELETE", path)

    async def _batch(self, requests: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        results = await self._request("POST", "batch", body={"requests": requests})
        failures = [r["error"] for r in results if isinstance(r, dict) and "error" in r]
        if failures:
            first = failures[0]
            message = first.get("error", "unknown error") if isinstance(first, dict) else str(first)
            raise ParseError(
                AGGREGATE_ERROR,
                f"{len(failures)} of {len(requests)} batch operations failed: {message}",
            )
        return [r.get("success", {}) for r in results]

    async def save_all(self, class_name: str, objects: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Create several objects with one /batch request."""
        path = f"{self.mount_path}/{class_path(class_name)}"
        bodies = [encode_fields(obj) for obj in objects]
        if not bodies:
            return []
        successes = await self._batch(
            [{"method": "POST", "path": path, "body": body} for body in bodies]
        )
        return [{**body, **success} for body, success in zip(bodies, successes)]

    async def destroy_all(self, class_name: str, object_ids: List[str]) -> None:
        """Delete several objects with one /batch request."""
        if not object_ids:
            return
        base = f"{self.mount_path}/{class_path(class_name)}"
        await self._batch(
            [{"method": "DELETE", "path": f"{base}/{quote(oid, safe='')}"} for oid in object_ids]
        )

    # === Cloud Code & aggregation ===

    async def run_function(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        payload = await self._request(
            "POST", f"functions/{quote(name, safe='')}", body=encode_value(params or {})
        )
        return payload.get("result") if isinstance(payload, dict) else payload

    async def aggregate(self, class_name: str, pipeline: List[Dict[str, Any]]) -> List[Any]:
        params = {"pipeline": json.dumps(encode_value(pipeline))}
        payload = await self._request(
            "GET", f"aggregate/{quote(class_name, safe='')}", params=params
        )
        return payload.get("results", [])

    # === Config ===

    async def get_config(self) -> Dict[str, Any]:
        payload = await self._request("GET", "config")
        return payload.get("params", {})

    async def save_config(self, params: Dict[str, Any]) -> bool:
        payload = await self._request("PUT", "config", body={"params": encode_value(params)})
        return bool(payload.get("result"))
