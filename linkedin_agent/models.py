"""数据模型定义"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Feature(str, Enum):
    """agent 追踪定位器的 UI 元素角色"""
    MESSAGE_CTA = "profile.message_cta"
    CHAT_ROOT = "read_chat.root"
    CHAT_ITEMS = "read_chat.items"
    MESSAGE_TEXTBOX = "send_message.textbox"
    SEND_BUTTON = "send_message.send_button"


class AgentAction(str, Enum):
    READ_CHAT = "read_chat"
    SEND_MESSAGE = "send_message"
    SEND_CONNECTION = "send_connection"


@dataclass
class SelectorEntry:
    """单个 feature 学到的定位器候选"""
    feature: Feature
    selectors: List[str]
    updated_at: float
    reason: Optional[str] = None


@dataclass
class ReadChatRequest:
    """
    read-chat cascade 所需的全部输入（纯数据）。

    root / item 候选在构建请求时从 selector store 取快照，
    执行期间的并发保存不会影响本次运行。
    """
    profile_url: str
    limit: int
    thread_hint: str
    root_selectors: List[str]
    item_selectors: List[str]


@dataclass
class ToolResult:
    """单次工具执行结果，原样回传给模型"""
    ok: bool
    code: Optional[str] = None
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": self.ok}
        if self.code is not None:
            payload["code"] = self.code
        if self.error is not None:
            payload["error"] = self.error
        payload.update(self.data)
        return payload
