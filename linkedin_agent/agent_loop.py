"""规划模块：与模型往返，执行它请求的工具调用"""

import json
from typing import Any, Dict, List, Union

from openai import AsyncOpenAI

from .config import setup_logger
from .dispatcher import ToolDispatcher

logger = setup_logger(__name__)

DEFAULT_MAX_ITERATIONS = 6
# 每次请求都附带加密的推理内容
INCLUDE = ["reasoning.encrypted_content"]


class AgentLoop:
    """
    有界的工具调用循环：

        INIT → AWAIT_MODEL → (EXEC_TOOLS → AWAIT_MODEL)* → DONE

    - 每次请求都带上工具目录，并关闭并行工具调用
    - 后续轮次只发送工具输出，通过 previous_response_id 引用服务端保存的上下文
    - 工具严格按顺序执行：所有工具共享同一个浏览器会话
    - 往返次数达到 max_iterations 时直接返回最后一次响应，不报错
    """

    def __init__(self, client: AsyncOpenAI, model: str, dispatcher: ToolDispatcher,
                 max_iterations: int = DEFAULT_MAX_ITERATIONS):
        self.client = client
        self.model = model
        self.dispatcher = dispatcher
        self.max_iterations = max_iterations

    @staticmethod
    def normalize_input(input: Union[str, List[Dict[str, Any]], None]) -> List[Dict[str, Any]]:
        if isinstance(input, list):
            return input
        text = input if isinstance(input, str) else str(input or "")
        return [{"role": "user", "content": [{"type": "input_text", "text": text}]}]

    @staticmethod
    def function_calls(response) -> List[Any]:
        output = getattr(response, "output", None) or []
        return [item for item in output if getattr(item, "type", None) == "function_call"]

    async def _create(self, instructions: str, **kwargs):
        return await self.client.responses.create(
            model=self.model,
            instructions=instructions,
            tools=self.dispatcher.definitions,
            parallel_tool_calls=False,
            store=True,
            include=INCLUDE,
            **kwargs,
        )

    async def _run_tools(self, calls: List[Any]) -> List[Dict[str, Any]]:
        outputs = []
        for call in calls:
            result = await self.dispatcher.execute(call.name, call.arguments)
            outputs.append({
                "type": "function_call_output",
                "call_id": call.call_id,
                "output": result if isinstance(result, str) else json.dumps(result, ensure_ascii=False),
            })
        return outputs

    async def run(self, input: Union[str, List[Dict[str, Any]]], instructions: str):
        response = await self._create(instructions, input=self.normalize_input(input))
        round_trips = 1

        while True:
            calls = self.function_calls(response)
            if not calls:
                logger.info(f"✓ 模型完成（{round_trips} 次往返）")
                return response

            if round_trips >= self.max_iterations:
                logger.warning(
                    f"⚠ 达到最大往返次数 {self.max_iterations}，"
                    f"仍有 {len(calls)} 个未执行的工具调用，返回最后一次响应")
                return response

            logger.info(f"第 {round_trips} 轮: {', '.join(c.name for c in calls)}")
            outputs = await self._run_tools(calls)

            response = await self._create(
                instructions,
                previous_response_id=response.id,
                input=outputs,
            )
            round_trips += 1
