"""工具目录：给模型的 function schema，以及对应的强类型调用"""

import json
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, TypeAdapter, ValidationError

from .errors import ToolValidationError
from .models import Feature

FEATURE_VALUES = [f.value for f in Feature]


def _function(name: str, description: str, properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "strict": True,
        "description": description,
        "parameters": {
            "type": "object",
            "additionalProperties": False,
            "properties": properties,
            "required": list(properties),
        },
    }


TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    _function(
        "attempt_read_chat",
        "Open the conversation from a profile page and extract its latest messages.",
        {
            "profileUrl": {"type": "string"},
            "limit": {"type": "integer", "minimum": 1, "maximum": 100},
            "threadHint": {"type": "string"},
        },
    ),
    _function(
        "pw_navigate",
        "Navigate the shared browser to a URL.",
        {"url": {"type": "string"}},
    ),
    _function(
        "pw_snapshot",
        "Return a structured accessibility snapshot of the current page.",
        {},
    ),
    _function(
        "pw_run_code",
        "Run a Playwright JS snippet in the shared browser context.",
        {"code": {"type": "string"}},
    ),
    _function(
        "get_screenshot",
        "Return a recent base64 screenshot for visual analysis.",
        {"maxAgeMs": {"type": "integer", "minimum": 0, "maximum": 5000}},
    ),
    _function(
        "list_mcp_tools",
        "List the native tools the connected Playwright MCP server advertises.",
        {},
    ),
    _function(
        "pw_call",
        "Generic proxy for native Playwright MCP tools (browser_*). "
        'Pass arguments as a JSON string in args_json; use "{}" when there are none.',
        {
            "tool": {"type": "string"},
            "args_json": {"type": "string"},
        },
    ),
    _function(
        "get_selector_hints",
        "Return the cached selector candidates for a feature.",
        {"feature": {"type": "string", "enum": FEATURE_VALUES}},
    ),
    _function(
        "save_selector_hints",
        "Save new selector candidates inferred from a snapshot.",
        {
            "feature": {"type": "string", "enum": FEATURE_VALUES},
            "selectors": {
                "type": "array",
                "items": {"type": "string"},
                "minItems": 1,
                "maxItems": 12,
            },
            "reason": {"type": "string"},
        },
    ),
]

TOOL_NAMES = frozenset(t["name"] for t in TOOL_DEFINITIONS)


class _ToolCall(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AttemptReadChat(_ToolCall):
    name: Literal["attempt_read_chat"]
    profileUrl: StrictStr
    limit: Annotated[StrictInt, Field(ge=1, le=100)]
    threadHint: StrictStr


class PwNavigate(_ToolCall):
    name: Literal["pw_navigate"]
    url: StrictStr


class PwSnapshot(_ToolCall):
    name: Literal["pw_snapshot"]


class PwRunCode(_ToolCall):
    name: Literal["pw_run_code"]
    code: StrictStr


class GetScreenshot(_ToolCall):
    name: Literal["get_screenshot"]
    maxAgeMs: Annotated[StrictInt, Field(ge=0, le=5000)]


class ListMcpTools(_ToolCall):
    name: Literal["list_mcp_tools"]


class PwCall(_ToolCall):
    name: Literal["pw_call"]
    tool: StrictStr
    args_json: StrictStr


class GetSelectorHints(_ToolCall):
    name: Literal["get_selector_hints"]
    feature: Feature


class SaveSelectorHints(_ToolCall):
    name: Literal["save_selector_hints"]
    feature: Feature
    # 条目由 selector store 清洗，格式问题只会导致静默忽略
    selectors: List[Any]
    reason: StrictStr


ToolCall = Annotated[
    Union[
        AttemptReadChat,
        PwNavigate,
        PwSnapshot,
        PwRunCode,
        GetScreenshot,
        ListMcpTools,
        PwCall,
        GetSelectorHints,
        SaveSelectorHints,
    ],
    Field(discriminator="name"),
]

_adapter: TypeAdapter = TypeAdapter(ToolCall)


def parse_tool_call(name: str, arguments: Union[str, Dict[str, Any], None]) -> ToolCall:
    """把模型给出的 (name, arguments JSON) 解析为强类型调用，不合法时抛出 ToolValidationError"""
    if name not in TOOL_NAMES:
        raise ToolValidationError(f"Unknown tool {name}")

    if arguments is None:
        args: Any = {}
    elif isinstance(arguments, str):
        try:
            args = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError as e:
            raise ToolValidationError(f"{name}: arguments are not valid JSON ({e})") from e
    else:
        args = arguments

    if not isinstance(args, dict):
        raise ToolValidationError(f"{name}: arguments must be a JSON object")
    if "name" in args:
        raise ToolValidationError(f"{name}: unexpected property 'name'")

    try:
        return _adapter.validate_python({**args, "name": name})
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'] if p != name) or name}: {err['msg']}"
            for err in e.errors()
        )
        raise ToolValidationError(f"{name}: {details}") from e
