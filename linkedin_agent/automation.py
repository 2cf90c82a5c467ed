"""外部协作方：Playwright MCP 工具服务器、CDP 浏览器会话、截图缓存"""

import asyncio
import base64
import time
from contextlib import AsyncExitStack
from typing import Any, Dict, List, Optional, Tuple

from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamablehttp_client
from playwright.async_api import Browser, Page, Playwright, async_playwright

from .config import setup_logger
from .errors import AutomationUnavailable

logger = setup_logger(__name__)


def extract_first_text(result: Any) -> Optional[str]:
    """取工具结果中的第一段文本内容"""
    if not result:
        return None
    if isinstance(result, str):
        return result
    if not isinstance(result, dict):
        return None

    content = result.get("content")
    for key in ("result", "data", "payload"):
        if content is not None:
            break
        nested = result.get(key)
        if isinstance(nested, dict):
            content = nested.get("content")

    if isinstance(content, list):
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text" and isinstance(part.get("text"), str):
                return part["text"]

    if isinstance(result.get("text"), str):
        return result["text"]
    if isinstance(content, str):
        return content
    return None


class McpAutomationClient:
    """
    Playwright MCP 客户端。

    优先 Streamable HTTP（/mcp），失败时回退 SSE（/sse）。
    工具列表会被缓存，list_tool_defs(force=True) 强制刷新。
    """

    def __init__(self, base_url: str, attempts: int = 4):
        self.base_url = base_url.rstrip("/")
        self.attempts = attempts
        self.session: Optional[ClientSession] = None
        self._stack: Optional[AsyncExitStack] = None
        self._tools: Optional[List[Dict[str, Any]]] = None

    async def connect(self):
        last_err: Optional[Exception] = None
        for i in range(self.attempts):
            try:
                await self._connect_once()
                return
            except Exception as e:
                last_err = e
                logger.warning(f"⚠ MCP 连接失败 ({i + 1}/{self.attempts}): {e}")
                await asyncio.sleep(0.3 * (i + 1))
        raise AutomationUnavailable(f"MCP connection failed: {last_err}")

    async def _connect_once(self):
        stack = AsyncExitStack()
        try:
            try:
                read, write, _ = await stack.enter_async_context(
                    streamablehttp_client(f"{self.base_url}/mcp"))
                transport = "HTTP"
            except Exception:
                await stack.aclose()
                stack = AsyncExitStack()
                logger.warning(f"HTTP transport 失败，尝试 SSE -> {self.base_url}/sse")
                read, write = await stack.enter_async_context(
                    sse_client(f"{self.base_url}/sse"))
                transport = "SSE"

            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
        except BaseException:
            await stack.aclose()
            raise

        self._stack = stack
        self.session = session
        logger.info(f"✓ 已连接 Playwright MCP ({transport}) {self.base_url}")

    async def close(self):
        if self._stack is not None:
            await self._stack.aclose()
        self._stack = None
        self.session = None
        self._tools = None

    async def _ensure_connected(self) -> ClientSession:
        if self.session is None:
            await self.connect()
        return self.session

    async def list_tool_defs(self, force: bool = False) -> List[Dict[str, Any]]:
        if self._tools is not None and not force:
            return self._tools
        session = await self._ensure_connected()
        res = await session.list_tools()
        self._tools = [
            {"name": t.name, "description": t.description, "inputSchema": t.inputSchema}
            for t in res.tools
        ]
        return self._tools

    async def has_tool(self, name: str) -> bool:
        """缓存未命中时刷新一次，确保与服务器当前公布的工具一致"""
        tools = await self.list_tool_defs()
        if any(t.get("name") == name for t in tools):
            return True
        tools = await self.list_tool_defs(force=True)
        return any(t.get("name") == name for t in tools)

    async def call_tool(self, name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        session = await self._ensure_connected()
        safe_args = args if isinstance(args, dict) else {}
        result = await session.call_tool(name, arguments=safe_args)
        return result.model_dump(mode="json", exclude_none=True)


class BrowserSession:
    """通过 CDP 连接 MCP 服务器驱动的同一个浏览器"""

    def __init__(self, cdp_endpoint: str):
        self.cdp_endpoint = cdp_endpoint
        self.page: Optional[Page] = None
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def start(self) -> Page:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.connect_over_cdp(self.cdp_endpoint)
        if self._browser.contexts:
            context = self._browser.contexts[0]
        else:
            context = await self._browser.new_context()
        self.page = context.pages[0] if context.pages else await context.new_page()
        logger.info(f"✓ 已连接浏览器 {self.cdp_endpoint} ({self.page.url})")
        return self.page

    async def close(self):
        # 只断开连接，浏览器归 MCP 服务器所有
        if self._playwright is not None:
            await self._playwright.stop()
        self._playwright = None
        self._browser = None
        self.page = None


class ScreenshotCache:
    """最近一帧截图的缓存，超过 max_age_ms 时重新截图"""

    def __init__(self, page: Page, mime_type: str = "image/jpeg"):
        self.page = page
        self.mime_type = mime_type
        self._last: Optional[Tuple[float, str]] = None

    async def get_cached_screenshot(self, max_age_ms: int = 800) -> Tuple[str, str]:
        now = time.monotonic()
        if self._last and (now - self._last[0]) * 1000 <= max_age_ms:
            return self._last[1], self.mime_type

        raw = await self.page.screenshot(type="jpeg", quality=70)
        data = base64.b64encode(raw).decode("ascii")
        self._last = (time.monotonic(), data)
        return data, self.mime_type
