"""
LinkedIn Agent - 基于 Playwright MCP + OpenAI Responses 的自愈式自动化智能体

运行前准备：
    1. 启动 Playwright MCP 服务器（默认 http://127.0.0.1:8931），
       并让它驱动一个开启了远程调试端口的浏览器（默认 http://127.0.0.1:9222）
    2. 在 .env 中设置 OPENAI_API_KEY

运行示例：
    python run_agent.py read_chat --profile-url https://www.linkedin.com/in/alice --limit 10
    python run_agent.py send_message --profile-url https://www.linkedin.com/in/alice --message "Hola!"
"""

import argparse
import asyncio
import json

from openai import AsyncOpenAI

from linkedin_agent.automation import BrowserSession, McpAutomationClient, ScreenshotCache
from linkedin_agent.config import Settings, setup_logger
from linkedin_agent.models import AgentAction
from linkedin_agent.orchestrator import ActionOrchestrator

logger = setup_logger("run_agent")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one LinkedIn agent action")
    parser.add_argument("action", choices=[a.value for a in AgentAction])
    parser.add_argument("--profile-url", required=True)
    parser.add_argument("--limit", type=int, default=30)
    parser.add_argument("--thread-hint", default="")
    parser.add_argument("--message", default="")
    parser.add_argument("--note", default="")
    return parser.parse_args()


def build_payload(args: argparse.Namespace) -> dict:
    if args.action == AgentAction.READ_CHAT.value:
        return {"profileUrl": args.profile_url, "limit": args.limit, "threadHint": args.thread_hint}
    if args.action == AgentAction.SEND_MESSAGE.value:
        return {"profileUrl": args.profile_url, "message": args.message}
    return {"profileUrl": args.profile_url, "note": args.note}


async def main():
    args = parse_args()
    settings = Settings.from_env()
    if not settings.openai_api_key:
        raise ValueError("请设置环境变量 OPENAI_API_KEY，例如：export OPENAI_API_KEY='sk-...'")

    client = AsyncOpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url)
    automation = McpAutomationClient(settings.mcp_base_url)
    browser = BrowserSession(settings.cdp_endpoint)

    await automation.connect()
    try:
        page = await browser.start()
        orchestrator = ActionOrchestrator(
            client,
            settings.model,
            automation,
            page,
            ScreenshotCache(page),
            max_iterations=settings.max_iterations,
        )
        result = await orchestrator.run(args.action, build_payload(args))
        print(json.dumps(result, ensure_ascii=False, indent=2))
    finally:
        await browser.close()
        await automation.close()


if __name__ == "__main__":
    asyncio.run(main())
