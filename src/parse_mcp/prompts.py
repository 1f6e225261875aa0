"""
Prompt templates exposed via prompts/list and prompts/get.

Prompts are guidance text for the agent; they never touch the database.
"""

from typing import Any, Dict, List, Optional

PROMPTS: List[Dict[str, Any]] = [
    {
        "name": "explore_database",
        "description": "Comprehensive prompt for exploring and understanding a Parse Server database",
        "arguments": [],
    },
    {
        "name": "troubleshoot_query",
        "description": "Help troubleshoot a query that's not returning expected results",
        "arguments": [
            {"name": "className", "description": "The class being queried", "required": True},
            {"name": "issue", "description": "Description of the issue", "required": True},
        ],
    },
    {
        "name": "safe_data_modification",
        "description": "Guidelines for safely modifying data with user approval",
        "arguments": [],
    },
]

EXPLORE_DATABASE = """# Parse Server Database Exploration Guide

Work through these steps to build an accurate picture of the database.

## Step 1: Verify the connection
Call `check_connection` and stop if the status is not "connected".

## Step 2: Read the schema
Call `get_all_schemas` to list every class with its fields, their types,
Pointer/Relation targets and class-level permissions.

## Step 3: Sample each class
Call `get_sample_objects` (5-10 objects) for each class you care about.
Real data shows which fields are actually filled in, which are optional,
and how values are formatted. Schemas can be out of date.

## Step 4: Follow relationships
- Expand pointers with the `include` argument of `query_class`
- Read many-to-many links with `query_relation`
- Check suspicious references with `validate_pointer`

## Step 5: Gather statistics
Call `get_class_statistics` for data volume, date ranges and field usage.

## Ground rules
- ALWAYS ask permission before modifying any data
- Trust sampled data over the schema when the two disagree
- Master Key calls bypass all permissions; use them with care"""

TROUBLESHOOT_QUERY = """# Query Troubleshooting Guide

**Class:** {className}
**Issue:** {issue}

## 1. Confirm the class exists
Call `get_class_schema` to check the exact class name and its fields.

## 2. Match field types
Constraint values must match the field type:
- String fields: string values
- Number fields: numeric values
- Boolean fields: true/false
- Date fields: {{"__type": "Date", "iso": "2024-01-01T00:00:00.000Z"}}
- Pointer fields: {{"__type": "Pointer", "className": "X", "objectId": "..."}}

## 3. Look at real data
Call `get_sample_objects`. Fields may be named differently than expected,
be missing on older objects, or hold a different type than documented.

## 4. Build the query up step by step
1. Query with no constraints
2. Add one constraint at a time
3. Use `count_objects` after each step to see where matches disappear

## 5. Common causes
- **No results:** field name mismatch, case sensitivity, wrong value type
- **Wrong results:** AND/OR logic, missing `include` for pointers
- **Errors:** look up the Parse error code

## 6. Check permissions
Results can be hidden by class-level permissions, object ACLs,
or a missing Master Key."""

SAFE_DATA_MODIFICATION = """# Safe Data Modification Guidelines

**Follow these rules every time you change data.**

## Before changing anything

1. **Get explicit permission.** Say exactly what will change:
   "I'm about to [action]. This will [effect]. Do you want me to proceed?"
2. **Verify the target.** Read it with `get_object_by_id` and show it to the user.
   For batch operations, show a summary of every change.
3. **Understand the impact.** Look for dependent pointers and relations and
   say whether the change can be undone.

## While changing data

4. **Start small.** Try a batch on one or two objects before running all of it.
5. **Keep a record.** Note the objectIds touched and their previous values.

## Dangerous operations

- `delete_object`: permanent data loss
- `batch_delete`: many permanent deletions at once
- `update_config`: server-wide configuration change
- `run_cloud_function`: unknown side effects

## If something goes wrong

- Note the error message and code
- List the affected objects
- Decide whether manual restoration is needed
- Tell the user immediately"""

_TEMPLATES = {
    "explore_database": EXPLORE_DATABASE,
    "troubleshoot_query": TROUBLESHOOT_QUERY,
    "safe_data_modification": SAFE_DATA_MODIFICATION,
}

MISSING_ARGUMENT = "(not specified)"


def prompt_description(name: str) -> str:
    """Return the description of a prompt, or an empty string if unknown."""
    for prompt in PROMPTS:
        if prompt["name"] == name:
            return prompt["description"]
    return ""


def render_prompt(name: str, args: Optional[Dict[str, str]] = None) -> str:
    """
    Render a prompt template.

    Args:
        name: Prompt name
        args: Template arguments (missing ones render as "(not specified)")

    Returns:
        The prompt text, or a not-found message for unknown prompts
    """
    template = _TEMPLATES.get(name)
    if template is None:
        return f'Prompt "{name}" not found.'

    args = args or {}
    values = {}
    for prompt in PROMPTS:
        if prompt["name"] == name:
            for argument in prompt["arguments"]:
                values[argument["name"]] = args.get(argument["name"]) or MISSING_ARGUMENT
    return template.format(**values)
