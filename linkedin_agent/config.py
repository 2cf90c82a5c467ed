"""配置与日志"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def setup_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    if level is None:
        level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    if logger.handlers:
        return logger

    ch = logging.StreamHandler()
    ch.setLevel(level)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    ch.setFormatter(formatter)
    logger.addHandler(ch)
    return logger


@dataclass
class Settings:
    openai_api_key: Optional[str]
    openai_base_url: str
    model: str
    mcp_base_url: str
    cdp_endpoint: str
    max_iterations: int

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
            model=(
                os.getenv("OPENAI_VISION_MODEL")
                or os.getenv("OPENAI_MODEL")
                or "gpt-5-nano"
            ),
            mcp_base_url=os.getenv("PLAYWRIGHT_MCP_BASE_URL", "http://127.0.0.1:8931").rstrip("/"),
            cdp_endpoint=os.getenv("BROWSER_CDP_ENDPOINT", "http://127.0.0.1:9222"),
            max_iterations=_env_int("AGENT_MAX_ITERATIONS", 6),
        )
