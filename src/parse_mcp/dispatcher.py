"""
Tool dispatch for the Parse MCP server.

`ToolDispatcher.dispatch()` is the boundary between MCP tool calls and the
Parse client. It checks local preconditions (server configured, Master Key
present, batch size) before any network call, forwards the call, and turns
every failure into an error record of the form {"error": ..., "code": ...}.
Nothing raised by a tool escapes dispatch().
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import Settings
from .parse_client import ParseClient, ParseError, guarded
from .tools import BATCH_LIMIT, TOOL_NAMES
from .values import (
    InvalidValueError,
    Operation,
    Pointer,
    Relation,
    decode_fields,
    decode_value,
    encode_value,
)

logger = logging.getLogger(__name__)

NOT_INITIALIZED_ERROR = (
    "Parse Server not initialized. "
    "Please set PARSE_SERVER_URL and PARSE_APP_ID environment variables."
)

SCHEMA_MASTER_KEY_ERROR = "Master Key is required to access schema information"

MASTER_KEY_ERRORS = {
    "get_all_schemas": SCHEMA_MASTER_KEY_ERROR,
    "get_class_schema": SCHEMA_MASTER_KEY_ERROR,
    "aggregate_class": "Master Key is required for aggregate operations",
    "update_config": "Master Key is required to update config",
}

# batch tool -> (argument holding the items, noun used in the limit error)
BATCH_ARGUMENTS = {
    "batch_create": ("objects", "objects"),
    "batch_update": ("updates", "updates"),
    "batch_delete": ("objectIds", "deletions"),
}

SAMPLE_DEFAULT_LIMIT = 5
SAMPLE_MAX_LIMIT = 20
QUERY_DEFAULT_LIMIT = 100
QUERY_MAX_LIMIT = 1000
STATISTICS_SAMPLE_SIZE = 100


class ArgumentError(ValueError):
    """Raised when a tool argument is missing or has the wrong shape."""


def _required(args: Dict[str, Any], key: str) -> Any:
    value = args.get(key)
    if value is None or value == "":
        raise ArgumentError(f"Missing required argument: {key}")
    return value


def _required_list(args: Dict[str, Any], key: str) -> List[Any]:
    value = _required(args, key)
    if not isinstance(value, list):
        raise ArgumentError(f"Argument '{key}' must be an array")
    return value


def _limit(args: Dict[str, Any], default: int, maximum: int) -> int:
    try:
        value = int(args.get("limit") or default)
    except (TypeError, ValueError):
        raise ArgumentError("Argument 'limit' must be a number") from None
    return min(value, maximum)


def _skip(args: Dict[str, Any]) -> int:
    try:
        return int(args.get("skip") or 0)
    except (TypeError, ValueError):
        raise ArgumentError("Argument 'skip' must be a number") from None


def _order(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return ",".join(part.strip() for part in value.split(",") if part.strip())


def _schema_summary(schema: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "className": schema.get("className"),
        "fields": schema.get("fields"),
        "classLevelPermissions": schema.get("classLevelPermissions"),
        "indexes": schema.get("indexes"),
    }


def _merge_saved(current: Dict[str, Any], data: Dict[str, Any], response: Dict[str, Any]) -> Dict[str, Any]:
    """Combine the fetched object, the applied changes and the save response."""
    merged = dict(current)
    for key, value in data.items():
        if isinstance(value, Operation):
            if value.kind == "Delete":
                merged.pop(key, None)
            continue
        merged[key] = encode_value(value)
    merged.update(response or {})
    return merged


def _percent(count: int, total: int) -> int:
    # round half up
    return int(count * 100 / total + 0.5)


class ToolDispatcher:
    """
    Executes tools against a Parse backend.

    The dispatcher keeps no state between calls, so one instance can serve
    every session concurrently.
    """

    def __init__(self, settings: Settings, backend: Optional[ParseClient]):
        """
        Initialize the dispatcher.

        Args:
            settings: Server settings (used for connection info and Master Key checks)
            backend: Parse client, or None when the server was not configured
        """
        self.settings = settings
        self.backend = backend
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Any]]] = {
            name: getattr(self, f"_{name}") for name in TOOL_NAMES
        }

    @property
    def initialized(self) -> bool:
        return self.backend is not None

    def _check_preconditions(self, name: str, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if not self.initialized and name != "check_connection":
            return {"error": NOT_INITIALIZED_ERROR}
        if name in MASTER_KEY_ERRORS and not self.settings.has_master_key:
            return {"error": MASTER_KEY_ERRORS[name]}
        if name in BATCH_ARGUMENTS:
            key, noun = BATCH_ARGUMENTS[name]
            items = args.get(key)
            if not isinstance(items, list):
                return {"error": f"Argument '{key}' must be an array"}
            if len(items) > BATCH_LIMIT:
                return {"error": f"Maximum {BATCH_LIMIT} {noun} per batch"}
        return None

    async def dispatch(self, name: str, args: Optional[Dict[str, Any]] = None) -> Any:
        """
        Run a tool and return its result envelope.

        Args:
            name: Registered tool name
            args: Tool arguments

        Returns:
            The tool's JSON result, or an error record {"error": str, "code"?: int}
        """
        args = args or {}
        handler = self._handlers.get(name)
        if handler is None:
            return {"error": f"Unknown tool: {name}"}

        precondition_error = self._check_preconditions(name, args)
        if precondition_error is not None:
            logger.debug("Tool %s rejected: %s", name, precondition_error["error"])
            return precondition_error

        try:
            return await handler(args)
        except ParseError as e:
            logger.warning("Tool %s failed with Parse error %s: %s", name, e.code, e.message)
            return e.to_dict()
        except (ArgumentError, InvalidValueError) as e:
            logger.debug("Tool %s rejected arguments: %s", name, e)
            return {"error": str(e)}
        except Exception as e:
            logger.exception("Tool %s raised an unexpected error", name)
            return {"error": str(e)}

    # === Connection & Health ===

    async def _check_connection(self, args: Dict[str, Any]) -> Dict[str, Any]:
        info = {
            "serverUrl": self.settings.server_url,
            "appId": self.settings.app_id,
            "hasMasterKey": self.settings.has_master_key,
        }
        if not self.initialized:
            return {"status": "error", **info, "error": NOT_INITIALIZED_ERROR}

        outcome = await guarded(self.backend.find("_User", limit=1))
        if not outcome.ok:
            return {"status": "error", **info, **outcome.fault.to_dict()}
        return {
            "status": "connected",
            **info,
            "hasJsKey": self.settings.has_js_key,
            "hasRestKey": self.settings.has_rest_key,
        }

    # === Schema ===

    async def _get_all_schemas(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        schemas = await self.backend.get_schemas()
        return [_schema_summary(schema) for schema in schemas]

    async def _get_class_schema(self, args: Dict[str, Any]) -> Dict[str, Any]:
        schema = await self.backend.get_schema(_required(args, "className"))
        return _schema_summary(schema)

    # === Data Exploration ===

    async def _get_sample_objects(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        class_name = _required(args, "className")
        limit = _limit(args, SAMPLE_DEFAULT_LIMIT, SAMPLE_MAX_LIMIT)

        include = None
        if args.get("includePointers"):
            # Schema access may be denied; fall back to plain pointers
            outcome = await guarded(self.backend.get_schema(class_name))
            if outcome.ok:
                fields = outcome.value.get("fields") or {}
                include = [
                    field for field, definition in fields.items()
                    if isinstance(definition, dict) and definition.get("type") == "Pointer"
                ]
            else:
                logger.debug("Pointer discovery for %s skipped: %s", class_name, outcome.fault)

        return await self.backend.find(
            class_name, limit=limit, order="-createdAt", include=include
        )

    async def _query_class(self, args: Dict[str, Any]) -> Dict[str, Any]:
        class_name = _required(args, "className")
        where = args.get("where")

        count = None
        if args.get("count"):
            count = await self.backend.count(class_name, where=where)

        results = await self.backend.find(
            class_name,
            where=where,
            limit=_limit(args, QUERY_DEFAULT_LIMIT, QUERY_MAX_LIMIT),
            skip=_skip(args),
            order=_order(args.get("order")),
            include=args.get("include"),
            keys=args.get("keys"),
        )
        result: Dict[str, Any] = {"results": results}
        if count is not None:
            result["count"] = count
        return result

    async def _count_objects(self, args: Dict[str, Any]) -> Dict[str, Any]:
        count = await self.backend.count(_required(args, "className"), where=args.get("where"))
        return {"count": count}

    async def _get_object_by_id(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self.backend.get(
            _required(args, "className"),
            _required(args, "objectId"),
            include=args.get("include"),
        )

    # === Relations ===

    async def _relation_target(self, class_name: str, parent: Dict[str, Any], key: str) -> Optional[str]:
        try:
            value = decode_value(parent.get(key))
        except InvalidValueError:
            value = None
        if isinstance(value, Relation):
            return value.class_name

        outcome = await guarded(self.backend.get_schema(class_name))
        if outcome.ok:
            definition = (outcome.value.get("fields") or {}).get(key) or {}
            if definition.get("type") == "Relation":
                return definition.get("targetClass")
        return None

    async def _query_relation(self, args: Dict[str, Any]) -> Any:
        parent_class = _required(args, "parentClassName")
        parent_id = _required(args, "parentObjectId")
        key = _required(args, "relationKey")

        parent = await self.backend.get(parent_class, parent_id)
        target_class = await self._relation_target(parent_class, parent, key)
        if target_class is None:
            return {"error": f"Field '{key}' of {parent_class} is not a relation"}

        where = dict(args.get("where") or {})
        where["$relatedTo"] = {"object": Pointer(parent_class, parent_id), "key": key}
        return await self.backend.find(
            target_class,
            where=where,
            limit=_limit(args, QUERY_DEFAULT_LIMIT, QUERY_MAX_LIMIT),
            skip=_skip(args),
            order=_order(args.get("order")),
        )

    async def _change_relation(self, args: Dict[str, Any], op: str) -> int:
        parent_class = _required(args, "parentClassName")
        parent_id = _required(args, "parentObjectId")
        key = _required(args, "relationKey")
        target_class = _required(args, "targetClassName")
        target_ids = _required_list(args, "targetObjectIds")

        # Fails with "Object not found" before anything is written
        await self.backend.get(parent_class, parent_id)
        if not target_ids:
            return 0
        targets = [Pointer(target_class, target_id) for target_id in target_ids]
        await self.backend.update(
            parent_class, parent_id, {key: Operation(op, {"objects": targets})}
        )
        return len(target_ids)

    async def _add_to_relation(self, args: Dict[str, Any]) -> Dict[str, Any]:
        added = await self._change_relation(args, "AddRelation")
        return {"success": True, "added": added}

    async def _remove_from_relation(self, args: Dict[str, Any]) -> Dict[str, Any]:
        removed = await self._change_relation(args, "RemoveRelation")
        return {"success": True, "removed": removed}

    # === CRUD ===

    async def _create_object(self, args: Dict[str, Any]) -> Dict[str, Any]:
        data = decode_fields(_required(args, "data"))
        return await self.backend.create(_required(args, "className"), data)

    async def _save_changes(self, class_name: str, object_id: str, raw_data: Any) -> Dict[str, Any]:
        data = decode_fields(raw_data)
        current = await self.backend.get(class_name, object_id)
        response = await self.backend.update(class_name, object_id, data)
        return _merge_saved(current, data, response)

    async def _update_object(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self._save_changes(
            _required(args, "className"),
            _required(args, "objectId"),
            _required(args, "data"),
        )

    async def _delete_object(self, args: Dict[str, Any]) -> Dict[str, Any]:
        class_name = _required(args, "className")
        object_id = _required(args, "objectId")
        await self.backend.destroy(class_name, object_id)
        return {"success": True, "deleted": {"className": class_name, "objectId": object_id}}

    # === Users & Roles ===

    async def _query_users(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self.backend.find(
            "_User",
            where=args.get("where"),
            limit=_limit(args, QUERY_DEFAULT_LIMIT, QUERY_MAX_LIMIT),
            skip=_skip(args),
            order=_order(args.get("order")),
            keys=args.get("keys"),
        )

    async def _get_roles(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        roles = await self.backend.find("_Role")
        return [
            {"name": role.get("name"), "objectId": role.get("objectId"), "ACL": role.get("ACL")}
            for role in roles
        ]

    async def _get_role_users(self, args: Dict[str, Any]) -> Any:
        role_name = _required(args, "roleName")
        role = await self.backend.first("_Role", where={"name": role_name})
        if role is None:
            return {"error": f'Role "{role_name}" not found'}
        where = {"$relatedTo": {"object": Pointer("_Role", role["objectId"]), "key": "users"}}
        return await self.backend.find("_User", where=where)

    # === Cloud Code & Aggregation ===

    async def _run_cloud_function(self, args: Dict[str, Any]) -> Any:
        return await self.backend.run_function(
            _required(args, "functionName"), args.get("params") or {}
        )

    async def _aggregate_class(self, args: Dict[str, Any]) -> List[Any]:
        return await self.backend.aggregate(
            _required(args, "className"), _required_list(args, "pipeline")
        )

    # === Batch Operations ===

    async def _batch_create(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        class_name = _required(args, "className")
        objects = [decode_fields(obj) for obj in args["objects"]]
        return await self.backend.save_all(class_name, objects)

    async def _batch_update(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        class_name = _required(args, "className")
        results = []
        for update in args["updates"]:
            if not isinstance(update, dict):
                raise ArgumentError("Each update must be an object with objectId and data")
            saved = await self._save_changes(
                class_name, _required(update, "objectId"), update.get("data") or {}
            )
            results.append(saved)
        return results

    async def _batch_delete(self, args: Dict[str, Any]) -> Dict[str, Any]:
        object_ids = args["objectIds"]
        await self.backend.destroy_all(_required(args, "className"), object_ids)
        return {"success": True, "deleted": len(object_ids)}

    # === Troubleshooting ===

    async def _validate_pointer(self, args: Dict[str, Any]) -> Dict[str, Any]:
        outcome = await guarded(
            self.backend.get(_required(args, "className"), _required(args, "objectId"))
        )
        if outcome.ok:
            return {"valid": True, "object": outcome.value}
        return {"valid": False, **outcome.fault.to_dict()}

    async def _find_orphaned_pointers(self, args: Dict[str, Any]) -> Dict[str, Any]:
        class_name = _required(args, "className")
        field = _required(args, "pointerField")

        records = await self.backend.find(
            class_name,
            where={field: {"$exists": True}},
            limit=_limit(args, QUERY_DEFAULT_LIMIT, QUERY_MAX_LIMIT),
            skip=_skip(args),
        )

        orphaned = []
        for record in records:
            try:
                pointer = decode_value(record.get(field))
            except InvalidValueError:
                continue
            if not isinstance(pointer, Pointer):
                continue
            outcome = await guarded(self.backend.get(pointer.class_name, pointer.object_id))
            if not outcome.ok:
                orphaned.append({
                    "objectId": record.get("objectId"),
                    "brokenPointer": {
                        "field": field,
                        "targetClass": pointer.class_name,
                        "targetId": pointer.object_id,
                    },
                })

        return {"checked": len(records), "orphaned": orphaned}

    async def _get_class_statistics(self, args: Dict[str, Any]) -> Dict[str, Any]:
        class_name = _required(args, "className")

        total = await self.backend.count(class_name)
        oldest = await self.backend.first(class_name, order="createdAt")
        newest = await self.backend.first(class_name, order="-createdAt")
        sample = await self.backend.find(class_name, limit=STATISTICS_SAMPLE_SIZE)

        usage: Dict[str, int] = {}
        for record in sample:
            for key in record:
                usage[key] = usage.get(key, 0) + 1

        fields = [
            {"field": key, "count": count, "percentage": _percent(count, len(sample))}
            for key, count in usage.items()
        ]
        fields.sort(key=lambda entry: entry["count"], reverse=True)

        return {
            "className": class_name,
            "totalCount": total,
            "dateRange": {
                "oldest": oldest.get("createdAt") if oldest else None,
                "newest": newest.get("createdAt") if newest else None,
            },
            "fieldUsage": {"sampleSize": len(sample), "fields": fields},
        }

    # === Config ===

    async def _get_config(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self.backend.get_config()

    async def _update_config(self, args: Dict[str, Any]) -> Dict[str, Any]:
        params = _required(args, "params")
        if not isinstance(params, dict):
            raise ArgumentError("Argument 'params' must be an object")
        return {"success": await self.backend.save_config(params)}
