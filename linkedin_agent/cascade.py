"""感知模块：打开个人主页的会话并提取最近消息（多级回退）"""

import asyncio
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from .config import setup_logger
from .errors import CascadeAbort, ErrorCode
from .models import Feature, ReadChatRequest
from .selector_store import SelectorStore

logger = setup_logger(__name__)

HEADER_SCOPE = ".pv-top-card, .pv-top-card-v2-ctas, .pv-top-card-v2"
CTA_BY_ARIA = 'button[aria-label^="Enviar mensaje"], button[aria-label^="Message"]'
CTA_TEXT = re.compile(r"enviar mensaje|message", re.IGNORECASE)
CTA_ICONS = (
    'use[href="#send-privately-small"], use[href="#send-privately-medium"], '
    'svg[data-test-icon="send-privately-small"], svg[data-test-icon="send-privately-medium"]'
)
ICON_ANCESTOR = "xpath=ancestor::*[self::button or self::a][1]"
# 公司主页头部的同名按钮
WRONG_SECTION = re.compile(r"para negocios|for business", re.IGNORECASE)
OVERFLOW_BUTTON = (
    'button[data-view-name="profile-overflow-button"][aria-label="Más"], '
    'button[data-view-name="profile-overflow-button"][aria-label="More"]'
)
MENU_ENTRY = re.compile(r"enviar mensaje|mensaje|message", re.IGNORECASE)

FALLBACK_ROOT = '.msg-s-message-list, .msg-thread, main .msg-form, main [role="textbox"]'
FALLBACK_ITEMS = '[role="listitem"], li, article'
BROAD_BLOCKS = "div, span, p"
BROAD_CAP = 50

_WS = re.compile(r"\s+")


@dataclass
class CascadeTimings:
    """各步骤的固定超时与等待（毫秒）"""
    navigation_timeout_ms: int = 60000
    settle_ms: int = 1200
    click_timeout_ms: int = 15000
    menu_settle_ms: int = 250
    after_open_ms: int = 900
    root_timeout_ms: int = 12000
    root_poll_ms: int = 200


def normalize_text(text: Optional[str]) -> str:
    return _WS.sub(" ", text or "").strip()


def normalize_url(url: str) -> str:
    """origin + path，去掉末尾斜杠、query 与 fragment"""
    if not url:
        return ""
    if re.match(r"^(about|chrome-error|data):", url, re.IGNORECASE):
        return url
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return url.split("#")[0].split("?")[0].rstrip("/")
    path = parts.path.rstrip("/") or "/"
    return f"{parts.scheme}://{parts.netloc}".lower() + path


def same_url(current: str, target: str) -> bool:
    cur, tar = normalize_url(current), normalize_url(target)
    return bool(cur) and cur == tar


def dedupe_blocks(texts: List[str]) -> List[str]:
    """宽泛扫描的后处理：规范空白、丢弃过短、按首次出现去重，保留最后 50 条"""
    seen = set()
    out = []
    for raw in texts:
        text = normalize_text(raw)
        if len(text) < 2 or text in seen:
            continue
        seen.add(text)
        out.append(text)
    return out[-BROAD_CAP:]


async def _present(locator: Locator) -> Optional[Locator]:
    try:
        return locator if await locator.count() else None
    except PlaywrightError:
        return None


async def _visible(locator: Locator) -> Optional[Locator]:
    """页面重渲染时的 Playwright 错误视为未命中"""
    try:
        if await locator.count() and await locator.is_visible():
            return locator
    except PlaywrightError:
        return None
    return None


class ExtractionCascade:
    """
    读取会话的多级回退流程：

    1. 打开个人主页并等待渲染
    2. 查找「发消息」按钮：aria-label 前缀 → 可见文本 → 图标祖先按钮，
       找不到时走「更多」菜单
    3. 轮询会话根节点（缓存候选 → 通用回退）
    4. 按候选选择器提取消息条目，失败时宽泛扫描文本块
    5. 返回最近 N 条

    流程只依赖 (请求中的选择器快照, 实时 DOM, limit)，失败时抛出 CascadeAbort。
    """

    def __init__(self, store: SelectorStore, timings: Optional[CascadeTimings] = None):
        self.store = store
        self.timings = timings or CascadeTimings()

    def build_request(self, profile_url: str, limit: int, thread_hint: str = "") -> ReadChatRequest:
        return ReadChatRequest(
            profile_url=profile_url,
            limit=limit,
            thread_hint=thread_hint or "",
            root_selectors=self.store.get_selectors(Feature.CHAT_ROOT),
            item_selectors=self.store.get_selectors(Feature.CHAT_ITEMS),
        )

    def describe(self, request: ReadChatRequest) -> Dict[str, Any]:
        """请求的可读描述，用于日志和调试"""
        return {
            "profileUrl": request.profile_url,
            "limit": request.limit,
            "threadHint": request.thread_hint,
            "rootSelectors": list(request.root_selectors),
            "itemSelectors": list(request.item_selectors),
            "fallbackRoot": FALLBACK_ROOT,
            "fallbackItems": FALLBACK_ITEMS,
        }

    async def run(self, page: Page, request: ReadChatRequest) -> Dict[str, Any]:
        await self._navigate(page, request.profile_url)
        await self._open_conversation(page)
        root = await self._find_root(page, request)
        logger.info("✓ 会话已打开")

        messages = await self._extract_messages(root, request)
        return {
            "ok": True,
            "limit": request.limit,
            "messages": messages[-request.limit:],
            "extractedAt": datetime.now(timezone.utc).isoformat(),
        }

    async def _navigate(self, page: Page, url: str):
        if same_url(page.url, url):
            logger.info(f"已在目标页面，跳过导航: {url}")
        else:
            await page.goto(url, wait_until="domcontentloaded",
                            timeout=self.timings.navigation_timeout_ms)
        await asyncio.sleep(self.timings.settle_ms / 1000)
        logger.info(f"主页已加载: {page.url}")

    async def _find_message_button(self, page: Page, scope: Locator) -> Optional[Locator]:
        containers = (scope, page)

        for container in containers:
            found = await _present(container.locator(CTA_BY_ARIA).first)
            if found:
                return found

        for container in containers:
            found = await _present(
                container.locator("button, a").filter(has_text=CTA_TEXT).first)
            if found:
                return found

        for container in containers:
            icon = await _present(container.locator(CTA_ICONS).first)
            if icon:
                found = await _present(icon.locator(ICON_ANCESTOR).first)
                if found:
                    return found

        return None

    async def _open_conversation(self, page: Page):
        t = self.timings
        main = page.locator("main").first
        header = main.locator(HEADER_SCOPE).first
        scope = header if await _present(header) else main

        button = await self._find_message_button(page, scope)
        if button is None:
            logger.info("未找到发消息按钮，尝试「更多」菜单")
            more = (await _present(scope.locator(OVERFLOW_BUTTON).first)
                    or await _present(page.locator(OVERFLOW_BUTTON).first))
            if more is None:
                raise CascadeAbort(ErrorCode.CTA_NOT_FOUND)

            await more.scroll_into_view_if_needed()
            await more.click(timeout=t.click_timeout_ms, force=True)
            await asyncio.sleep(t.menu_settle_ms / 1000)

            entry = await _present(page.get_by_role("menuitem", name=MENU_ENTRY).first)
            if entry is None:
                raise CascadeAbort(ErrorCode.CTA_NOT_FOUND_IN_MORE_MENU)
            await entry.click(timeout=t.click_timeout_ms)
        else:
            aria = await button.get_attribute("aria-label") or ""
            if WRONG_SECTION.search(aria):
                raise CascadeAbort(ErrorCode.CTA_HEADER_MISSELECTION,
                                   f"CTA_HEADER_MISSELECTION: {aria}")
            logger.info(f"点击发消息按钮 ({aria or 'no aria-label'})")
            await button.scroll_into_view_if_needed()
            await button.click(timeout=t.click_timeout_ms, force=True)

        await asyncio.sleep(t.after_open_ms / 1000)

    async def _find_root(self, page: Page, request: ReadChatRequest) -> Locator:
        t = self.timings
        deadline = time.monotonic() + t.root_timeout_ms / 1000

        while True:
            for selector in request.root_selectors:
                # 新打开的面板通常追加在最后
                candidate = await _visible(page.locator(selector).last)
                if candidate:
                    logger.info(f"✓ 会话根节点: {selector}")
                    return candidate
            if time.monotonic() >= deadline:
                break
            await asyncio.sleep(t.root_poll_ms / 1000)

        logger.info("缓存的根节点选择器均未命中，尝试通用回退")
        fallback = await _visible(page.locator(FALLBACK_ROOT).last)
        if fallback:
            return fallback

        raise CascadeAbort(ErrorCode.OVERLAY_NOT_FOUND)

    async def _extract_messages(self, root: Locator, request: ReadChatRequest) -> List[str]:
        items = None
        for selector in request.item_selectors:
            found = await _present(root.locator(selector))
            if found:
                items = found
                break
        if items is None:
            items = root.locator(FALLBACK_ITEMS)

        texts = [normalize_text(t) for t in await items.all_text_contents()]
        texts = [t for t in texts if t]
        if texts:
            return texts

        logger.info("条目为空，回退到宽泛文本扫描")
        return dedupe_blocks(await root.locator(BROAD_BLOCKS).all_text_contents())
