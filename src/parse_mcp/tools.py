"""
Tool definitions exposed via tools/list.

Each entry carries the MCP `name`, a `description` written for the calling
agent, and an `inputSchema` in JSON Schema form. Arguments are not validated
against these schemas; they document what each tool reads.
"""

from typing import Any, Dict, List, Optional

# Maximum number of items accepted by the batch tools
BATCH_LIMIT = 50


def _schema(properties: Optional[Dict[str, Any]] = None, required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": properties or {},
        "required": required or [],
    }


def _string(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}


def _number(description: str) -> Dict[str, Any]:
    return {"type": "number", "description": description}


def _object(description: str) -> Dict[str, Any]:
    return {"type": "object", "description": description}


def _string_list(description: str) -> Dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


MODIFIES_WARNING = (
    "WARNING: this tool MODIFIES the database. "
    "Always ask the user for permission before calling it."
)

WHERE_SYNTAX = """Query constraint syntax (where):
  {"field": "value"}                          equals
  {"field": {"$ne": "value"}}                 not equals
  {"field": {"$lt": 10}} / $lte / $gt / $gte  comparisons
  {"field": {"$in": ["a", "b"]}} / $nin       membership
  {"field": {"$exists": true}}                field presence
  {"field": {"$regex": "^abc", "$options": "i"}}
  {"$or": [{...}, {...}]} / {"$and": [...]}
  {"owner": {"__type": "Pointer", "className": "_User", "objectId": "abc"}}"""


TOOLS: List[Dict[str, Any]] = [
    # === Connection & Health ===
    {
        "name": "check_connection",
        "description": (
            "Check the connection to the Parse Server.\n\n"
            "Use this FIRST. Returns the connection status, the server URL and app id in use, "
            "which optional keys are configured, and any connection error. "
            "It works even when the server is not configured."
        ),
        "inputSchema": _schema(),
    },
    # === Schema ===
    {
        "name": "get_all_schemas",
        "description": (
            "Get the schema of every class in the database.\n\n"
            "REQUIRES MASTER KEY. Returns for each class its fields and types "
            "(String, Number, Boolean, Date, Object, Array, Pointer, Relation, File, GeoPoint, "
            "Polygon, Bytes; Pointer/Relation fields name their target class), class-level "
            "permissions and indexes. Call this before querying an unfamiliar database."
        ),
        "inputSchema": _schema(),
    },
    {
        "name": "get_class_schema",
        "description": (
            "Get the schema of a single class.\n\n"
            "REQUIRES MASTER KEY. Returns fields with types, pointer/relation targets, "
            "class-level permissions and indexes."
        ),
        "inputSchema": _schema(
            {"className": _string("The name of the Parse class (e.g. \"_User\", \"Product\")")},
            ["className"],
        ),
    },
    # === Data Exploration ===
    {
        "name": "get_sample_objects",
        "description": (
            "Get a few recent objects from a class, newest first.\n\n"
            "Schemas drift over time, so real samples are the most reliable way to learn "
            "which fields are actually present and how values are formatted. "
            "limit defaults to 5 (max 20). With includePointers the pointer fields are "
            "expanded to full objects (needs schema access)."
        ),
        "inputSchema": _schema(
            {
                "className": _string("The name of the Parse class to sample"),
                "limit": _number("Number of objects to retrieve (default: 5, max: 20)"),
                "includePointers": {
                    "type": "boolean",
                    "description": "Expand pointer fields to full objects (default: false)",
                },
            },
            ["className"],
        ),
    },
    {
        "name": "query_class",
        "description": (
            "Query objects from a class with filters, sorting and pagination.\n\n"
            "limit defaults to 100 (max 1000). order takes comma-separated fields, prefix "
            "with '-' for descending (e.g. \"-createdAt,name\"). Set count to also get the "
            "total number of matches.\n\n" + WHERE_SYNTAX
        ),
        "inputSchema": _schema(
            {
                "className": _string("The name of the Parse class to query"),
                "where": _object("Query constraints as a JSON object"),
                "limit": _number("Maximum objects to return (default: 100, max: 1000)"),
                "skip": _number("Number of objects to skip for pagination"),
                "order": _string("Sort fields, comma-separated, '-' prefix for descending"),
                "include": _string_list("Pointer fields to expand to full objects"),
                "keys": _string_list("Fields to return (omit for all)"),
                "count": {"type": "boolean", "description": "Also return the total match count"},
            },
            ["className"],
        ),
    },
    {
        "name": "count_objects",
        "description": (
            "Count the objects in a class, optionally matching constraints "
            "(same where syntax as query_class). Useful before running large queries."
        ),
        "inputSchema": _schema(
            {
                "className": _string("The name of the Parse class to count"),
                "where": _object("Optional query constraints"),
            },
            ["className"],
        ),
    },
    {
        "name": "get_object_by_id",
        "description": "Get a single object by its objectId, optionally expanding pointer fields.",
        "inputSchema": _schema(
            {
                "className": _string("The name of the Parse class"),
                "objectId": _string("The objectId of the object to retrieve"),
                "include": _string_list("Pointer fields to expand to full objects"),
            },
            ["className", "objectId"],
        ),
    },
    # === Relations ===
    {
        "name": "query_relation",
        "description": (
            "Query the objects stored in a Relation field of a parent object.\n\n"
            "Relations are many-to-many links kept apart from the parent. Example: the "
            "\"comments\" relation of Post abc123. limit defaults to 100 (max 1000)."
        ),
        "inputSchema": _schema(
            {
                "parentClassName": _string("The class of the parent object"),
                "parentObjectId": _string("The objectId of the parent object"),
                "relationKey": _string("The name of the relation field"),
                "where": _object("Optional constraints on the related objects"),
                "limit": _number("Maximum objects to return (default: 100)"),
                "skip": _number("Number of objects to skip"),
                "order": _string("Field to sort by, '-' prefix for descending"),
            },
            ["parentClassName", "parentObjectId", "relationKey"],
        ),
    },
    # === Data Modification ===
    {
        "name": "create_object",
        "description": (
            "Create a new object in a class.\n\n" + MODIFIES_WARNING + "\n\n"
            "Special values in data:\n"
            "  Pointer:  {\"__type\": \"Pointer\", \"className\": \"X\", \"objectId\": \"id\"}\n"
            "  File:     {\"__type\": \"File\", \"name\": \"photo.jpg\", \"url\": \"https://...\"}\n"
            "  GeoPoint: {\"__type\": \"GeoPoint\", \"latitude\": 40.71, \"longitude\": -74.0}\n\n"
            "Returns the created object with objectId and createdAt."
        ),
        "inputSchema": _schema(
            {
                "className": _string("The class to create the object in"),
                "data": _object("Field values for the new object"),
            },
            ["className", "data"],
        ),
    },
    {
        "name": "update_object",
        "description": (
            "Update fields of an existing object.\n\n" + MODIFIES_WARNING + "\n\n"
            "Field operations in data:\n"
            "  {\"score\": {\"__op\": \"Increment\", \"amount\": 1}}\n"
            "  {\"tags\": {\"__op\": \"Add\", \"objects\": [\"new\"]}}  (also AddUnique, Remove)\n"
            "  {\"obsolete\": {\"__op\": \"Delete\"}}\n\n"
            "Tip: read the object with get_object_by_id first."
        ),
        "inputSchema": _schema(
            {
                "className": _string("The name of the class"),
                "objectId": _string("The objectId of the object to update"),
                "data": _object("Field values or operations to apply"),
            },
            ["className", "objectId", "data"],
        ),
    },
    {
        "name": "delete_object",
        "description": (
            "Permanently delete an object.\n\n"
            "DANGER: this cannot be undone. Always get explicit permission from the user and "
            "verify the object with get_object_by_id first."
        ),
        "inputSchema": _schema(
            {
                "className": _string("The name of the class"),
                "objectId": _string("The objectId of the object to delete"),
            },
            ["className", "objectId"],
        ),
    },
    {
        "name": "add_to_relation",
        "description": (
            "Add objects to a Relation field of a parent object.\n\n" + MODIFIES_WARNING
        ),
        "inputSchema": _schema(
            {
                "parentClassName": _string("The class of the parent object"),
                "parentObjectId": _string("The objectId of the parent"),
                "relationKey": _string("The name of the relation field"),
                "targetClassName": _string("The class of the objects to add"),
                "targetObjectIds": _string_list("objectIds to add to the relation"),
            },
            ["parentClassName", "parentObjectId", "relationKey", "targetClassName", "targetObjectIds"],
        ),
    },
    {
        "name": "remove_from_relation",
        "description": (
            "Remove objects from a Relation field of a parent object.\n\n" + MODIFIES_WARNING
        ),
        "inputSchema": _schema(
            {
                "parentClassName": _string("The class of the parent object"),
                "parentObjectId": _string("The objectId of the parent"),
                "relationKey": _string("The name of the relation field"),
                "targetClassName": _string("The class of the objects to remove"),
                "targetObjectIds": _string_list("objectIds to remove from the relation"),
            },
            ["parentClassName", "parentObjectId", "relationKey", "targetClassName", "targetObjectIds"],
        ),
    },
    # === Users & Roles ===
    {
        "name": "query_users",
        "description": (
            "Query the _User class. Some user fields are only visible with the Master Key; "
            "passwords are never returned. limit defaults to 100 (max 1000)."
        ),
        "inputSchema": _schema(
            {
                "where": _object("Query constraints"),
                "limit": _number("Maximum users to return (default: 100)"),
                "skip": _number("Number of users to skip"),
                "order": _string("Field to sort by, '-' prefix for descending"),
                "keys": _string_list("Fields to return"),
            }
        ),
    },
    {
        "name": "get_roles",
        "description": "List every role with its name, objectId and ACL.",
        "inputSchema": _schema(),
    },
    {
        "name": "get_role_users",
        "description": "List the users that belong to a role.",
        "inputSchema": _schema(
            {"roleName": _string("The name of the role")},
            ["roleName"],
        ),
    },
    # === Cloud Code ===
    {
        "name": "run_cloud_function",
        "description": (
            "Run a Cloud Code function and return its result.\n\n"
            "WARNING: cloud functions may modify data or have other side effects. "
            "Always ask the user for permission first."
        ),
        "inputSchema": _schema(
            {
                "functionName": _string("The name of the cloud function"),
                "params": _object("Parameters passed to the function"),
            },
            ["functionName"],
        ),
    },
    # === Aggregation ===
    {
        "name": "aggregate_class",
        "description": (
            "Run an aggregation pipeline on a class.\n\n"
            "REQUIRES MASTER KEY. Stages: $match, $group, $sort, $limit, $project, ...; "
            "operators: $sum, $avg, $min, $max, $first, $last, $push, $addToSet.\n"
            "Example: [{\"$match\": {\"status\": \"active\"}}, "
            "{\"$group\": {\"_id\": \"$category\", \"count\": {\"$sum\": 1}}}]"
        ),
        "inputSchema": _schema(
            {
                "className": _string("The name of the class to aggregate"),
                "pipeline": {"type": "array", "description": "Aggregation pipeline stages"},
            },
            ["className", "pipeline"],
        ),
    },
    # === Batch Operations ===
    {
        "name": "batch_create",
        "description": (
            f"Create up to {BATCH_LIMIT} objects in one request.\n\n" + MODIFIES_WARNING
        ),
        "inputSchema": _schema(
            {
                "className": _string("The name of the class"),
                "objects": {"type": "array", "description": f"Objects to create (max {BATCH_LIMIT})"},
            },
            ["className", "objects"],
        ),
    },
    {
        "name": "batch_update",
        "description": (
            f"Update up to {BATCH_LIMIT} objects.\n\n" + MODIFIES_WARNING + "\n\n"
            "updates is a list of {\"objectId\": \"abc\", \"data\": {...}} pairs, applied in "
            "order. Earlier updates stay applied if a later one fails."
        ),
        "inputSchema": _schema(
            {
                "className": _string("The name of the class"),
                "updates": {
                    "type": "array",
                    "description": f"List of {{objectId, data}} pairs (max {BATCH_LIMIT})",
                },
            },
            ["className", "updates"],
        ),
    },
    {
        "name": "batch_delete",
        "description": (
            f"Permanently delete up to {BATCH_LIMIT} objects.\n\n"
            "EXTREME DANGER: this cannot be undone. Get explicit permission and double-check "
            "the objectIds first."
        ),
        "inputSchema": _schema(
            {
                "className": _string("The name of the class"),
                "objectIds": _string_list(f"objectIds to delete (max {BATCH_LIMIT})"),
            },
            ["className", "objectIds"],
        ),
    },
    # === Troubleshooting ===
    {
        "name": "validate_pointer",
        "description": (
            "Check whether a pointer target exists. Returns valid plus the target object, "
            "or the lookup error."
        ),
        "inputSchema": _schema(
            {
                "className": _string("The target class of the pointer"),
                "objectId": _string("The objectId referenced by the pointer"),
            },
            ["className", "objectId"],
        ),
    },
    {
        "name": "find_orphaned_pointers",
        "description": (
            "Scan a class for pointers whose target object no longer exists.\n\n"
            "Each scanned object costs one extra lookup, so page through large classes "
            "with limit (default 100, max 1000) and skip."
        ),
        "inputSchema": _schema(
            {
                "className": _string("The class to scan"),
                "pointerField": _string("The pointer field to check"),
                "limit": _number("Maximum objects to check (default: 100)"),
                "skip": _number("Offset for pagination"),
            },
            ["className", "pointerField"],
        ),
    },
    {
        "name": "get_class_statistics",
        "description": (
            "Summarize a class: total count, oldest and newest createdAt, and how often each "
            "field is set across a sample of up to 100 objects."
        ),
        "inputSchema": _schema(
            {"className": _string("The class to analyze")},
            ["className"],
        ),
    },
    # === Config ===
    {
        "name": "get_config",
        "description": "Get all Parse Config key/value pairs.",
        "inputSchema": _schema(),
    },
    {
        "name": "update_config",
        "description": (
            "Set Parse Config values.\n\n"
            "REQUIRES MASTER KEY. WARNING: this changes server-wide configuration. "
            "Always ask the user for permission first."
        ),
        "inputSchema": _schema(
            {"params": _object("Config key/value pairs to set")},
            ["params"],
        ),
    },
]

TOOL_NAMES = [tool["name"] for tool in TOOLS]

_TOOLS_BY_NAME = {tool["name"]: tool for tool in TOOLS}


def get_tool(name: str) -> Optional[Dict[str, Any]]:
    """Return the tool definition for a name, or None."""
    return _TOOLS_BY_NAME.get(name)
