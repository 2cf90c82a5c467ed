"""Pytest fixtures: 内存中的假浏览器页面、假 MCP 客户端和假 Responses 客户端"""

import itertools
import json
import re
from types import SimpleNamespace
from typing import Any, Callable, Dict, Iterable, List, Optional

import pytest

from linkedin_agent.cascade import CascadeTimings, ExtractionCascade
from linkedin_agent.dispatcher import ToolDispatcher
from linkedin_agent.selector_store import InMemorySelectorStore

_order = itertools.count()
_BARE_TAG = re.compile(r"^[a-z]+$")
_INTERACTIVE = ("button", "a")


class FakeElement:
    def __init__(self, text: str = "", tag: str = "div", attrs: Optional[Dict[str, str]] = None,
                 parent: Optional["FakeElement"] = None, visible: bool = True,
                 on_click: Optional[Callable[[], None]] = None):
        self.order = next(_order)
        self.text = text
        self.tag = tag
        self.attrs = attrs or {}
        self.parent = parent
        self.visible = visible
        self.on_click = on_click
        self.clicks = 0

    def ancestors(self) -> Iterable["FakeElement"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent


class FakeLocator:
    """Playwright Locator 的最小子集，按注册的选择器字符串匹配"""

    def __init__(self, page: "FakePage", elements: List[FakeElement]):
        self.page = page
        self.elements = elements

    def locator(self, selector: str) -> "FakeLocator":
        if selector.startswith("xpath=ancestor"):
            found = []
            for el in self.elements:
                anc = next((a for a in el.ancestors() if a.tag in _INTERACTIVE), None)
                if anc is not None and anc not in found:
                    found.append(anc)
            return FakeLocator(self.page, found)
        scope = self.elements
        return FakeLocator(self.page, [
            el for el in self.page.query(selector)
            if any(a in scope for a in el.ancestors())
        ])

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self.page, self.elements[:1])

    @property
    def last(self) -> "FakeLocator":
        return FakeLocator(self.page, self.elements[-1:])

    def filter(self, has_text=None) -> "FakeLocator":
        return FakeLocator(self.page, [el for el in self.elements if has_text.search(el.text)])

    async def count(self) -> int:
        return len(self.elements)

    async def is_visible(self) -> bool:
        return bool(self.elements) and self.elements[0].visible

    async def get_attribute(self, name: str) -> Optional[str]:
        return self.elements[0].attrs.get(name)

    async def scroll_into_view_if_needed(self, **kwargs):
        return None

    async def click(self, **kwargs):
        el = self.elements[0]
        el.clicks += 1
        self.page.clicked.append(el)
        if el.on_click:
            el.on_click()

    async def all_text_contents(self) -> List[str]:
        return [el.text for el in self.elements]


class FakePage:
    def __init__(self, url: str = "about:blank"):
        self.url = url
        self.elements: List[FakeElement] = []
        self.registry: Dict[str, List[FakeElement]] = {}
        self.goto_calls: List[str] = []
        self.clicked: List[FakeElement] = []

    def add(self, *selectors: str, **kwargs) -> FakeElement:
        el = FakeElement(**kwargs)
        self.elements.append(el)
        for selector in selectors:
            self.registry.setdefault(selector, []).append(el)
        return el

    def query(self, selector: str) -> List[FakeElement]:
        found = []
        for part in (p.strip() for p in selector.split(",")):
            found.extend(self.registry.get(part, []))
            if _BARE_TAG.match(part):
                found.extend(el for el in self.elements if el.tag == part)
        unique = {id(el): el for el in found}
        return sorted(unique.values(), key=lambda el: el.order)

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, self.query(selector))

    def get_by_role(self, role: str, name=None) -> FakeLocator:
        return FakeLocator(self, [
            el for el in self.query(f"role={role}")
            if name is None or name.search(el.text)
        ])

    async def goto(self, url: str, **kwargs):
        self.goto_calls.append(url)
        self.url = url


def build_profile_page(
    item_texts: Iterable[str] = (),
    root_selector: Optional[str] = ".msg-overlay-conversation-bubble",
    item_selector: str = ".msg-s-message-list__event",
    cta: Optional[str] = "aria",
    cta_label: str = "Message Alice",
) -> FakePage:
    """
    构造一个个人主页：main 中有发消息按钮，点击后会话根节点出现。

    cta: "aria" | "text" | "icon" | "menu" | "overflow_only" | None
    """
    page = FakePage()
    main = page.add("main", tag="main")

    def open_conversation():
        if root_selector is None:
            return
        root = page.add(root_selector, parent=main)
        for text in item_texts:
            page.add(item_selector, text=text, parent=root)

    if cta == "aria":
        page.add('button[aria-label^="Message"]', tag="button", text="Message",
                 attrs={"aria-label": cta_label}, parent=main, on_click=open_conversation)
    elif cta == "text":
        page.add(tag="button", text="Message", parent=main, on_click=open_conversation)
    elif cta == "icon":
        button = page.add(tag="button", parent=main, on_click=open_conversation)
        page.add('svg[data-test-icon="send-privately-small"]', tag="svg", parent=button)
    elif cta in ("menu", "overflow_only"):
        page.add('button[data-view-name="profile-overflow-button"][aria-label="More"]',
                 tag="button", text="More", attrs={"aria-label": "More"}, parent=main)
        if cta == "menu":
            page.add("role=menuitem", text="Message", parent=main, on_click=open_conversation)
    return page


@pytest.fixture
def fast_timings() -> CascadeTimings:
    return CascadeTimings(settle_ms=0, menu_settle_ms=0, after_open_ms=0,
                          root_timeout_ms=60, root_poll_ms=10)


@pytest.fixture
def store() -> InMemorySelectorStore:
    return InMemorySelectorStore()


@pytest.fixture
def cascade(store: InMemorySelectorStore, fast_timings: CascadeTimings) -> ExtractionCascade:
    return ExtractionCascade(store, fast_timings)


class FakeAutomation:
    def __init__(self, tools: Iterable[str] = ("browser_navigate", "browser_snapshot",
                                               "browser_run_code", "browser_click")):
        self.tools = [{"name": n, "description": f"{n} tool", "inputSchema": {}} for n in tools]
        self.calls: List[tuple] = []
        self.results: Dict[str, Dict[str, Any]] = {}

    async def list_tool_defs(self, force: bool = False) -> List[Dict[str, Any]]:
        return self.tools

    async def has_tool(self, name: str) -> bool:
        return any(t["name"] == name for t in self.tools)

    async def call_tool(self, name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.calls.append((name, args))
        return self.results.get(name, {
            "content": [{"type": "text", "text": f"{name} ok"}],
            "isError": False,
        })


class FakeScreenshots:
    def __init__(self):
        self.requests: List[int] = []

    async def get_cached_screenshot(self, max_age_ms: int = 800):
        self.requests.append(max_age_ms)
        return "aGVsbG8=", "image/jpeg"


@pytest.fixture
def automation() -> FakeAutomation:
    return FakeAutomation()


@pytest.fixture
def screenshots() -> FakeScreenshots:
    return FakeScreenshots()


@pytest.fixture
def make_dispatcher(store, cascade, automation, screenshots):
    def _make(page: Optional[FakePage] = None) -> ToolDispatcher:
        return ToolDispatcher(store, cascade, automation, screenshots, page or FakePage())
    return _make


def function_call(name: str, arguments: Dict[str, Any], call_id: str) -> SimpleNamespace:
    return SimpleNamespace(type="function_call", name=name,
                           arguments=json.dumps(arguments), call_id=call_id)


def make_response(response_id: str, calls: Iterable[SimpleNamespace] = (), text: str = "") -> SimpleNamespace:
    output = list(calls)
    if text:
        output.append(SimpleNamespace(type="message", content=[]))
    return SimpleNamespace(id=response_id, output=output, output_text=text)


class FakeResponses:
    """按脚本返回响应；script(request_kwargs, index) -> response"""

    def __init__(self, script: Callable[[Dict[str, Any], int], SimpleNamespace]):
        self.script = script
        self.requests: List[Dict[str, Any]] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        return self.script(kwargs, len(self.requests) - 1)


class FakeOpenAI:
    def __init__(self, script):
        self.responses = FakeResponses(script)
