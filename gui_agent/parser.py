"""动作解析模块：把模型输出的 Thought/Action 文本解析为结构化动作

支持的坐标格式：
  - click(start_box='<|box_start|>(x1,y1)<|box_end|>')
  - click(start_box='[x1, y1, x2, y2]')   取中点
  - click(point='<point>x1 y1</point>')
"""

import logging
import re
from typing import Any, Dict, List, Optional

from .coordinates import round_half_up
from .models import Command, Point

logger = logging.getLogger(__name__)

_NUMBER = r"-?\d+(?:\.\d+)?"

_THOUGHT_RE = re.compile(r"Thought:\s*(.*?)(?=Action:|\Z)", re.IGNORECASE | re.DOTALL)
_ACTION_MARKER_RE = re.compile(r"Action:", re.IGNORECASE)
_STATEMENT_SPLIT_RE = re.compile(r"\n\s*\n")
_CALL_RE = re.compile(r"^(\w+)\((.*)\)$", re.DOTALL)
_PARAM_RE = re.compile(r"(\w+)\s*=\s*'((?:[^'\\]|\\.)*)'", re.DOTALL)

_BOX_TOKEN_RE = re.compile(rf"<\|box_start\|>\s*\(\s*({_NUMBER})\s*,\s*({_NUMBER})\s*\)\s*<\|box_end\|>")
_BOX_ARRAY_RE = re.compile(
    rf"\[\s*({_NUMBER})\s*,\s*({_NUMBER})\s*,\s*({_NUMBER})\s*,\s*({_NUMBER})\s*\]"
)
_POINT_TAG_RE = re.compile(rf"<point>\s*({_NUMBER})[\s,]+({_NUMBER})\s*</point>")
_PAIR_RE = re.compile(rf"^[\[(]?\s*({_NUMBER})\s*[,\s]\s*({_NUMBER})\s*[\])]?$")

BOX_KEYS = ("start_box", "end_box")
POINT_KEYS = ("point", "start_point", "end_point")


def parse(text: str) -> List[Command]:
    """
    解析模型输出，返回动作列表。

    不会抛出异常：没有 Action 段或全部语句都无法解析时返回单个 wait 动作。
    同一批动作中第一个终止动作（finished/call_user）之后的动作会被丢弃。
    """
    text = text or ""
    thought = _extract_thought(text)

    markers = list(_ACTION_MARKER_RE.finditer(text))
    if not markers:
        return [_wait(thought)]

    action_text = text[markers[-1].end():].strip()
    statements = [s.strip() for s in _STATEMENT_SPLIT_RE.split(action_text) if s.strip()]

    commands: List[Command] = []
    for statement in statements:
        parsed = parse_statement(statement, thought)
        if parsed is None:
            logger.debug("无法解析的动作语句: %r", statement)
            continue
        commands.append(parsed)
        if parsed.is_terminal:
            break

    return commands or [_wait(thought)]


def parse_statement(statement: str, thought: str = "") -> Optional[Command]:
    """解析单条 name(key='value', ...) 语句，失败返回 None"""
    match = _CALL_RE.match(statement.strip())
    if not match:
        return None

    action_type, params = match.group(1), match.group(2)
    inputs: Dict[str, Any] = {}
    for param in _PARAM_RE.finditer(params):
        key, value = param.group(1), param.group(2)
        if key in BOX_KEYS:
            inputs[key] = parse_box(value)
        elif key in POINT_KEYS:
            inputs[key] = parse_point(value)
        else:
            inputs[key] = unescape(value)

    return Command(action_type=action_type, inputs=inputs, thought=thought)


def parse_box(value: str) -> Point:
    """解析 start_box/end_box，四元组取中点；无法识别时返回 (0, 0)"""
    token = _BOX_TOKEN_RE.search(value)
    if token:
        return Point(x=round_half_up(float(token.group(1))), y=round_half_up(float(token.group(2))))

    array = _BOX_ARRAY_RE.search(value)
    if array:
        x1, y1, x2, y2 = (float(g) for g in array.groups())
        return Point(x=round_half_up((x1 + x2) / 2), y=round_half_up((y1 + y2) / 2))

    return _parse_pair(value)


def parse_point(value: str) -> Point:
    """解析 point/start_point/end_point；无法识别时返回 (0, 0)"""
    tag = _POINT_TAG_RE.search(value)
    if tag:
        return Point(x=round_half_up(float(tag.group(1))), y=round_half_up(float(tag.group(2))))
    return _parse_pair(value)


def unescape(value: str) -> str:
    return value.replace("\\n", "\n").replace("\\'", "'").replace('\\"', '"')


def format_command(command: Command) -> str:
    """把动作重新格式化为动作语言，便于日志输出"""
    parts = []
    for key, value in command.inputs.items():
        if isinstance(value, Point):
            value = f"({value.x},{value.y})"
        else:
            value = str(value).replace("'", "\\'").replace("\n", "\\n")
        parts.append(f"{key}='{value}'")
    return f"{command.action_type}({', '.join(parts)})"


def _parse_pair(value: str) -> Point:
    pair = _PAIR_RE.match(value.strip())
    if pair:
        return Point(x=round_half_up(float(pair.group(1))), y=round_half_up(float(pair.group(2))))
    return Point(x=0, y=0)


def _extract_thought(text: str) -> str:
    match = _THOUGHT_RE.search(text)
    return match.group(1).strip() if match else ""


def _wait(thought: str) -> Command:
    return Command(action_type="wait", inputs={}, thought=thought)
