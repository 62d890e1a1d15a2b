"""
Service layer - tools for configured HTTP API actions.
Following SOLID: Open/Closed - new actions are data, not code.

Each ApiAction becomes one tool. Items of type "dynamic" are filled by the model
and make up the tool's argument schema; items of type "value" are fixed.
"""
import logging
import re
from typing import Any, Dict, List, Literal, Optional, Tuple, Type

from pydantic import BaseModel, Field, create_model

from agentic.agent import Tool, ToolResult
from domain.interfaces import IActionClient
from domain.models import ActionCall, CustomMessage
from infrastructure.action_client import HttpActionClient

logger = logging.getLogger(__name__)

DataType = Literal["string", "number", "boolean"]

PYTHON_TYPES: Dict[str, type] = {"string": str, "number": float, "boolean": bool}

SECRET_PLACEHOLDER = "{{secret}}"


class ApiActionDataItem(BaseModel):
    key: str
    type: Literal["dynamic", "value"] = "dynamic"
    data_type: DataType = "string"
    description: str = ""
    value: Optional[str] = None


class ApiActionItems(BaseModel):
    items: List[ApiActionDataItem] = Field(default_factory=list)


class ApiAction(BaseModel):
    """An HTTP endpoint the assistant may call on the user's behalf."""
    id: str
    title: str
    description: str
    url: str
    method: str = "get"
    data: ApiActionItems = Field(default_factory=ApiActionItems)
    headers: ApiActionItems = Field(default_factory=ApiActionItems)


def title_to_id(title: str) -> str:
    return re.sub(r"[^a-z0-9-]", "", title.lower().replace(" ", "-"))


def action_tool_id(action: ApiAction) -> str:
    """Tool name from the title, or from the action id when the title has no usable characters."""
    return title_to_id(action.title) or title_to_id(action.id)


def type_cast(value: Any, data_type: str) -> Any:
    if data_type == "number":
        return float(value)
    if data_type == "boolean":
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes")
        return bool(value)
    return str(value)


def _field_name(key: str) -> str:
    name = re.sub(r"\W", "_", key)
    if not name or name[0].isdigit() or name[0] == "_":
        name = f"field_{name}"
    return name


def build_args_schema(action: ApiAction) -> Type[BaseModel]:
    """Pydantic model over the action's dynamic data and header items."""
    fields: Dict[str, Tuple[Any, Any]] = {}
    for item in action.data.items + action.headers.items:
        if item.type != "dynamic":
            continue
        fields[_field_name(item.key)] = (
            PYTHON_TYPES[item.data_type],
            Field(alias=item.key, description=item.description)
        )
    return create_model(f"{action_tool_id(action).replace('-', '_')}_args", **fields)


def _item_value(item: ApiActionDataItem, args: Dict[str, Any]) -> Any:
    if item.type == "dynamic":
        return args.get(item.key)
    return item.value


def make_action_tools(
    actions: List[ApiAction],
    client: Optional[IActionClient] = None,
    secret: Optional[str] = None
) -> List[Tool]:
    """One tool per action."""
    client = client or HttpActionClient()
    return [_make_action_tool(action, client, secret) for action in actions]


def _make_action_tool(action: ApiAction, client: IActionClient, secret: Optional[str]) -> Tool:
    args_schema = build_args_schema(action)
    method = action.method.lower()

    async def execute(args: BaseModel) -> ToolResult:
        logger.info(f"Executing action {action.id}")
        values = args.model_dump(by_alias=True)

        data = {
            item.key: type_cast(_item_value(item, values), item.data_type)
            for item in action.data.items
            if _item_value(item, values) is not None
        }

        headers: Dict[str, str] = {}
        for item in action.headers.items:
            if item.value and SECRET_PLACEHOLDER in item.value:
                headers[item.key] = item.value.replace(SECRET_PLACEHOLDER, secret or "")
                continue
            value = _item_value(item, values)
            if value is not None:
                headers[item.key] = str(type_cast(value, item.data_type))

        result = await client.call(
            method,
            action.url,
            params=data if method == "get" else None,
            body=None if method == "get" else data,
            headers=headers
        )

        if "error" in result:
            content = f"Action {action.title} failed: {result['error']}"
            status_code = None
        else:
            content = result["text"]
            status_code = result["status_code"]

        logger.info(f"Action response {action.id} {status_code}")
        return ToolResult(
            content=content,
            custom_message=CustomMessage(action_call=ActionCall(
                action_id=action.id,
                data=values,
                response=content,
                status_code=status_code
            ))
        )

    return Tool(
        id=action_tool_id(action),
        description=action.description,
        execute=execute,
        args_schema=args_schema
    )
