"""记忆模块：按 feature 保存可用的 DOM 选择器（种子 + 运行时学习）"""

import time
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .config import setup_logger
from .models import Feature, SelectorEntry

logger = setup_logger(__name__)

MAX_SELECTORS = 12
MAX_SELECTOR_LENGTH = 200

SEED_SELECTORS: Mapping[Feature, Tuple[str, ...]] = MappingProxyType({
    Feature.MESSAGE_CTA: (
        'button[aria-label^="Enviar mensaje"]',
        'button[aria-label^="Message"]',
        'button:has-text("Enviar mensaje")',
        'button:has-text("Message")',
        'a:has-text("Enviar mensaje")',
        'a:has-text("Message")',
        'use[href="#send-privately-small"]',
        'use[href="#send-privately-medium"]',
        'svg[data-test-icon="send-privately-small"]',
        'svg[data-test-icon="send-privately-medium"]',
    ),
    Feature.CHAT_ROOT: (
        ".msg-overlay-conversation-bubble",
        ".msg-overlay-bubble",
        ".msg-overlay-conversation",
        ".msg-s-message-list",
        ".msg-thread",
        'section[aria-label*="Conversación"]',
        'section[aria-label*="Conversation"]',
    ),
    Feature.CHAT_ITEMS: (
        ".msg-s-message-list__event",
        ".msg-s-message-group__message",
        ".msg-s-message-group__messages",
        '[role="listitem"]',
        "li",
        "article",
    ),
    Feature.MESSAGE_TEXTBOX: (
        'div.msg-form__contenteditable[role="textbox"][contenteditable="true"]',
        'div[role="textbox"][contenteditable="true"]',
        "textarea",
    ),
    Feature.SEND_BUTTON: (
        'button.msg-form__send-button[type="submit"]',
        "button.msg-form__send-button",
        'button[type="submit"]:has-text("Enviar")',
        'button[type="submit"]:has-text("Send")',
    ),
})


def _dedupe(items: Iterable[str], cap: int = MAX_SELECTORS) -> List[str]:
    out: List[str] = []
    for item in items:
        if item not in out:
            out.append(item)
        if len(out) >= cap:
            break
    return out


def sanitize_selectors(candidates: Any) -> List[str]:
    """
    清洗 agent 提交的选择器：
    - 丢弃非字符串、空串、超长（>200）条目
    - 去除首尾空白
    - 按首次出现顺序去重，最多保留 12 条
    """
    if not isinstance(candidates, (list, tuple)):
        return []
    cleaned = []
    for s in candidates:
        if not isinstance(s, str):
            continue
        trimmed = s.strip()
        if not trimmed or len(trimmed) > MAX_SELECTOR_LENGTH:
            continue
        cleaned.append(trimmed)
    return _dedupe(cleaned)


class SelectorStore(ABC):
    """选择器知识的读写接口，可替换为持久化实现"""

    @abstractmethod
    def entry(self, feature: Union[Feature, str]) -> SelectorEntry:
        ...

    @abstractmethod
    def get_selectors(self, feature: Union[Feature, str]) -> List[str]:
        ...

    @abstractmethod
    def save_selectors(self, feature: Union[Feature, str], candidates: Any,
                       reason: Optional[str] = None) -> List[str]:
        ...


class InMemorySelectorStore(SelectorStore):
    """
    进程内的选择器缓存。

    初始化时为每个 feature 写入种子条目，所以 entry() 永远有值。
    并发写入同一 feature 时后写者覆盖先写者（不做合并）。
    """

    def __init__(self, seeds: Mapping[Feature, Tuple[str, ...]] = SEED_SELECTORS):
        self.seeds = seeds
        now = time.time()
        self._entries: Dict[Feature, SelectorEntry] = {
            feature: SelectorEntry(
                feature=feature,
                selectors=list(seeds.get(feature, ())),
                updated_at=now,
                reason="seed",
            )
            for feature in Feature
        }

    def entry(self, feature: Union[Feature, str]) -> SelectorEntry:
        return self._entries[Feature(feature)]

    def get_selectors(self, feature: Union[Feature, str]) -> List[str]:
        """已学习的候选在前，种子在后；去重后最多 12 条"""
        feature = Feature(feature)
        learned = self._entries[feature].selectors
        seeded = self.seeds.get(feature, ())
        return _dedupe([*learned, *seeded])

    def save_selectors(self, feature: Union[Feature, str], candidates: Any,
                       reason: Optional[str] = None) -> List[str]:
        """清洗后替换已学习的候选；清洗结果为空时静默忽略"""
        try:
            feature = Feature(feature)
        except ValueError:
            logger.warning(f"⚠ 忽略未知 feature 的选择器: {feature!r}")
            return []

        clean = sanitize_selectors(candidates)
        if not clean:
            logger.info(f"选择器为空，保留原有条目: {feature.value}")
            return []

        self._entries[feature] = SelectorEntry(
            feature=feature,
            selectors=clean,
            updated_at=time.time(),
            reason=reason,
        )
        logger.info(f"✓ 更新选择器 {feature.value}: {len(clean)} 条 (reason={reason})")
        return clean
