"""LinkedIn 自愈式自动化智能体包

包含各个模块：
- models: 数据模型
- errors: 错误分类
- selector_store: 选择器记忆
- cascade: 读取会话的多级回退流程
- tools: 工具目录与强类型调用
- dispatcher: 工具执行
- agent_loop: 模型往返循环
- automation: MCP / 浏览器 / 截图协作方
- orchestrator: 核心入口
"""

from .models import AgentAction, Feature, ReadChatRequest, SelectorEntry, ToolResult
from .errors import CascadeAbort, ErrorCode, ErrorKind
from .selector_store import InMemorySelectorStore, SelectorStore
from .cascade import CascadeTimings, ExtractionCascade
from .dispatcher import ToolDispatcher
from .agent_loop import AgentLoop
from .orchestrator import ActionOrchestrator

__all__ = [
    "AgentAction",
    "Feature",
    "ReadChatRequest",
    "SelectorEntry",
    "ToolResult",
    "CascadeAbort",
    "ErrorCode",
    "ErrorKind",
    "SelectorStore",
    "InMemorySelectorStore",
    "CascadeTimings",
    "ExtractionCascade",
    "ToolDispatcher",
    "AgentLoop",
    "ActionOrchestrator",
]
