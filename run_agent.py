"""
GUI Agent 命令行入口

运行示例：
    python run_agent.py "search for cats" --operator browser
    python run_agent.py "打开记事本并输入 hello" --operator computer --max-loops 10

模型地址、密钥从 .env 读取：VLM_BASE_URL / VLM_API_KEY / VLM_MODEL_NAME
"""

import argparse
import asyncio
import logging
import sys

from gui_agent.config import AgentSettings
from gui_agent.models import AgentEvent, Status
from gui_agent.parser import format_command
from gui_agent.runner import AgentRunner


class ConsolePrinter:
    """把新增的对话轮次打印到终端"""

    def __init__(self):
        self.printed = 0

    def __call__(self, event: AgentEvent) -> None:
        for turn in event.conversations[self.printed:]:
            self.printed += 1
            print(f"\n{'='*60}")
            print(f"Step {self.printed}")
            print(f"{'='*60}")
            print(f"思考: {turn.thought}")
            for command in turn.commands:
                print(f"动作: {format_command(command)}")

        if event.status.is_terminal:
            print(f"\n[Agent] 状态: {event.status.value}（共 {event.loop_count} 步）")


def print_error(event: AgentEvent) -> None:
    message = event.error.message if event.error else "Unknown error"
    kind = event.error.kind.value if event.error else "unknown_error"
    print(f"\n[错误] {kind}: {message}")


async def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="视觉模型驱动的 GUI 自动化智能体")
    parser.add_argument("instruction", help="自然语言任务指令")
    parser.add_argument("--operator", choices=["browser", "computer"], default=None)
    parser.add_argument("--max-loops", type=int, default=None, help="最大步数")
    parser.add_argument("--model", default=None, help="模型名称")
    parser.add_argument("--base-url", default=None, help="OpenAI 兼容接口地址")
    parser.add_argument("--start-url", default=None, help="浏览器起始网址")
    parser.add_argument("--language", choices=["en", "tr", "zh"], default=None)
    parser.add_argument("--headless", action="store_true", default=None)
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    settings = AgentSettings.from_env(
        operator=args.operator,
        max_loop_count=args.max_loops,
        model=args.model,
        base_url=args.base_url,
        start_url=args.start_url,
        language=args.language,
        headless=args.headless,
    )

    runner = AgentRunner(settings)
    runner.subscribe(on_data=ConsolePrinter(), on_error=print_error)

    print(f"\n[Agent] 任务指令：{args.instruction}")
    try:
        status = await runner.run_agent(args.instruction)
    finally:
        await runner.shutdown()

    return 0 if status in (Status.END, Status.CALL_USER) else 1


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n[Agent] 已被用户中断")
        sys.exit(130)
