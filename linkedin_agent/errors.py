"""错误分类：cascade、工具层与 agent 循环共用"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    STRUCTURAL = "structural"
    EXECUTION = "execution"
    VALIDATION = "validation"
    GUARD = "guard"
    UNKNOWN = "unknown"


class ErrorCode(str, Enum):
    """失败工具结果携带的错误码"""
    CTA_NOT_FOUND = "CTA_NOT_FOUND"
    CTA_NOT_FOUND_IN_MORE_MENU = "CTA_NOT_FOUND_IN_MORE_MENU"
    CTA_HEADER_MISSELECTION = "CTA_HEADER_MISSELECTION"
    OVERLAY_NOT_FOUND = "OVERLAY_NOT_FOUND"
    MCP_RUN_CODE_ERROR = "MCP_RUN_CODE_ERROR"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    CAPABILITY_DENIED = "CAPABILITY_DENIED"
    UNKNOWN = "UNKNOWN"

    @property
    def kind(self) -> ErrorKind:
        return _KINDS[self]

    @property
    def recoverable(self) -> bool:
        """结构性失败可通过学习新选择器修复"""
        return self.kind is ErrorKind.STRUCTURAL


_KINDS = {
    ErrorCode.CTA_NOT_FOUND: ErrorKind.STRUCTURAL,
    ErrorCode.CTA_NOT_FOUND_IN_MORE_MENU: ErrorKind.STRUCTURAL,
    ErrorCode.CTA_HEADER_MISSELECTION: ErrorKind.STRUCTURAL,
    ErrorCode.OVERLAY_NOT_FOUND: ErrorKind.STRUCTURAL,
    ErrorCode.MCP_RUN_CODE_ERROR: ErrorKind.EXECUTION,
    ErrorCode.VALIDATION_FAILED: ErrorKind.VALIDATION,
    ErrorCode.CAPABILITY_DENIED: ErrorKind.GUARD,
    ErrorCode.UNKNOWN: ErrorKind.UNKNOWN,
}


class CascadeAbort(Exception):
    """read-chat cascade 遇到 UI 不符合预期时抛出"""

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        self.code = code
        self.message = message or code.value
        super().__init__(self.message)


class AutomationUnavailable(Exception):
    """无法连接自动化工具服务器"""


class ToolValidationError(Exception):
    """工具调用参数不符合声明的 schema"""
