"""执行模块：执行模型请求的工具调用"""

import json
from typing import Any, Dict, List, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from .automation import McpAutomationClient, ScreenshotCache, extract_first_text
from .cascade import ExtractionCascade
from .config import setup_logger
from .errors import CascadeAbort, ErrorCode, ToolValidationError
from .models import ToolResult
from .selector_store import SelectorStore
from .tools import TOOL_DEFINITIONS, parse_tool_call

logger = setup_logger(__name__)

ALLOWED_TOOL_PREFIX = "browser_"


def _failure(code: ErrorCode, error: str, **data: Any) -> Dict[str, Any]:
    return ToolResult(ok=False, code=code.value, error=error, data=data).to_payload()


class ToolDispatcher:
    """
    把工具调用路由到 selector store、read-chat cascade 或 MCP 服务器。

    每次执行都返回可 JSON 序列化的结果，失败时带 ok=False 和错误码，
    让模型总有可以推理的内容。
    """

    def __init__(self, store: SelectorStore, cascade: ExtractionCascade,
                 automation: McpAutomationClient, screenshots: ScreenshotCache, page: Page):
        self.store = store
        self.cascade = cascade
        self.automation = automation
        self.screenshots = screenshots
        self.page = page

    @property
    def definitions(self) -> List[Dict[str, Any]]:
        return TOOL_DEFINITIONS

    async def execute(self, name: str, arguments: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
        try:
            call = parse_tool_call(name, arguments)
        except ToolValidationError as e:
            logger.warning(f"❌ 工具参数无效: {e}")
            return _failure(ErrorCode.VALIDATION_FAILED, str(e))

        logger.info(f"→ 执行工具 {name}")
        try:
            return await self._dispatch(call)
        except Exception as e:
            logger.exception(f"❌ 工具 {name} 执行失败")
            return _failure(ErrorCode.UNKNOWN, str(e) or type(e).__name__)

    async def _dispatch(self, call) -> Dict[str, Any]:
        name = call.name

        if name == "attempt_read_chat":
            return await self.attempt_read_chat(call.profileUrl, call.limit, call.threadHint)
        elif name == "pw_navigate":
            return self._remote(await self.automation.call_tool("browser_navigate", {"url": call.url}))
        elif name == "pw_snapshot":
            return self._remote(await self.automation.call_tool("browser_snapshot", {}))
        elif name == "pw_run_code":
            result = await self.automation.call_tool("browser_run_code", {"code": call.code})
            if result.get("isError"):
                return _failure(ErrorCode.MCP_RUN_CODE_ERROR,
                                extract_first_text(result) or "", raw=result)
            return self._remote(result)
        elif name == "get_screenshot":
            data, mime_type = await self.screenshots.get_cached_screenshot(call.maxAgeMs)
            return {"ok": True, "mimeType": mime_type, "data": data}
        elif name == "list_mcp_tools":
            tools = await self.automation.list_tool_defs(force=True)
            return {"ok": True, "tools": tools}
        elif name == "pw_call":
            return await self.proxy_call(call.tool, call.args_json)
        elif name == "get_selector_hints":
            return {
                "ok": True,
                "feature": call.feature.value,
                "selectors": self.store.get_selectors(call.feature),
            }
        elif name == "save_selector_hints":
            saved = self.store.save_selectors(call.feature, call.selectors, call.reason or "agent")
            return {"ok": True, "feature": call.feature.value, "saved": len(saved)}

        raise ValueError(f"Unknown tool {name}")

    @staticmethod
    def _remote(result: Dict[str, Any]) -> Dict[str, Any]:
        return {"ok": not result.get("isError", False), "result": result}

    async def attempt_read_chat(self, profile_url: str, limit: int, thread_hint: str = "") -> Dict[str, Any]:
        """运行 read-chat cascade，并把中止信号规范化为错误码"""
        request = self.cascade.build_request(profile_url, limit, thread_hint)
        try:
            data = await self.cascade.run(self.page, request)
        except CascadeAbort as e:
            logger.warning(f"❌ read-chat 中止: {e.code.value}")
            return _failure(e.code, e.message)
        except PlaywrightError as e:
            logger.warning(f"❌ read-chat 浏览器操作失败: {e}")
            return _failure(ErrorCode.MCP_RUN_CODE_ERROR, str(e))

        logger.info(f"✓ 读取 {len(data.get('messages', []))} 条消息")
        return ToolResult(
            ok=True,
            data={"profileUrl": profile_url, "limit": limit, "data": data},
        ).to_payload()

    async def proxy_call(self, tool: str, args_json: str) -> Dict[str, Any]:
        """通用代理：只允许 browser_* 且服务器当前公布的工具"""
        if not tool.startswith(ALLOWED_TOOL_PREFIX):
            logger.warning(f"⚠ 拒绝代理调用: {tool}")
            return _failure(ErrorCode.CAPABILITY_DENIED, "Only browser_* tools are allowed")

        if not await self.automation.has_tool(tool):
            logger.warning(f"⚠ MCP 不提供该工具: {tool}")
            return _failure(ErrorCode.CAPABILITY_DENIED, f"MCP tool not available: {tool}")

        try:
            payload = json.loads(args_json) if args_json.strip() else {}
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        return self._remote(await self.automation.call_tool(tool, payload))
