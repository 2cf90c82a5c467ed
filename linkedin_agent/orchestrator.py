"""智能体核心类：把高层动作交给 agent 循环执行"""

import json
from typing import Any, Dict, Optional, Union

from openai import AsyncOpenAI
from playwright.async_api import Page
from pydantic import BaseModel, Field

from .agent_loop import DEFAULT_MAX_ITERATIONS, AgentLoop
from .automation import McpAutomationClient, ScreenshotCache
from .cascade import CascadeTimings, ExtractionCascade
from .config import setup_logger
from .dispatcher import ToolDispatcher
from .models import AgentAction
from .selector_store import InMemorySelectorStore, SelectorStore

logger = setup_logger(__name__)

INSTRUCTIONS = """\
You are a LinkedIn automation agent running inside a controlled microservice.

Main goal: perform the requested action as robustly as possible using tools.
Prefer high-level tools such as attempt_read_chat.

Autonomy rules:
1) If attempt_read_chat fails with OVERLAY_NOT_FOUND, call pw_snapshot and analyse which messaging UI is present.
2) Propose new selectors ONLY if you see a clear pattern in the snapshot.
3) Save them with save_selector_hints, then retry attempt_read_chat.
4) At most 2 self-heal cycles per request.
5) Never fabricate results: return ok:false if the action could not be completed.

Output:
- For read_chat, return final JSON with ok, data and, when applicable, the error code.
"""


class ReadChatPayload(BaseModel):
    profileUrl: str
    limit: int = Field(default=30, ge=1, le=100)
    threadHint: str = ""


class SendMessagePayload(BaseModel):
    profileUrl: str
    message: str = Field(min_length=1)


class SendConnectionPayload(BaseModel):
    profileUrl: str
    note: str = Field(default="", max_length=300)


def build_task(action: AgentAction, payload: Dict[str, Any]) -> str:
    """生成任务描述，校验失败时抛出 pydantic.ValidationError"""
    if action is AgentAction.READ_CHAT:
        p = ReadChatPayload.model_validate(payload)
        return (
            "Action: read_chat\n"
            f"profileUrl: {p.profileUrl}\n"
            f"limit: {p.limit}\n"
            f"threadHint: {p.threadHint}\n\n"
            "Goal:\nExtract the latest available messages."
        )
    if action is AgentAction.SEND_MESSAGE:
        p = SendMessagePayload.model_validate(payload)
        return (
            "Action: send_message\n"
            f"profileUrl: {p.profileUrl}\n"
            f"message: {p.message}\n\n"
            "Goal:\nSend the message. If it fails because of the textbox or send button "
            "selectors, take a snapshot and suggest new selectors for those features."
        )
    p = SendConnectionPayload.model_validate(payload)
    return (
        "Action: send_connection\n"
        f"profileUrl: {p.profileUrl}\n"
        f"note: {p.note}\n\n"
        "Goal:\nSend a connection request."
    )


class ActionOrchestrator:
    """LinkedIn 自动化智能体入口"""

    def __init__(self, client: AsyncOpenAI, model: str, automation: McpAutomationClient,
                 page: Page, screenshots: ScreenshotCache,
                 store: Optional[SelectorStore] = None,
                 max_iterations: int = DEFAULT_MAX_ITERATIONS,
                 timings: Optional[CascadeTimings] = None):
        self.store = store or InMemorySelectorStore()
        self.cascade = ExtractionCascade(self.store, timings)
        self.dispatcher = ToolDispatcher(self.store, self.cascade, automation, screenshots, page)
        self.loop = AgentLoop(client, model, self.dispatcher, max_iterations)

    async def run(self, action: Union[AgentAction, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        action = AgentAction(action)
        task = build_task(action, payload)
        logger.info(f"开始执行 {action.value}")

        resp = await self.loop.run(task, INSTRUCTIONS)
        text = getattr(resp, "output_text", None) or ""
        response_id = getattr(resp, "id", None)

        if action is AgentAction.READ_CHAT:
            try:
                result = json.loads(text)
            except json.JSONDecodeError:
                result = None
            if isinstance(result, dict):
                logger.info(f"✓ {action.value} 完成")
                return result
            logger.warning("⚠ 最终输出不是 JSON 对象，返回原始文本")

        logger.info(f"✓ {action.value} 完成")
        return {"ok": True, "raw": text, "responseId": response_id}
