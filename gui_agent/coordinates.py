"""坐标换算：模型坐标空间 -> 屏幕像素"""

import math
import re
from typing import Mapping, Optional, Tuple, Union

from .models import Point

# 所有支持的模型版本都使用 1000x1000 的坐标空间
DEFAULT_FACTORS: Tuple[int, int] = (1000, 1000)

MODEL_VERSIONS = ("v1.0", "v1.5", "doubao_1.5_15b", "doubao_1.5_20b")

_NUMBER = r"-?\d+(?:\.\d+)?"
_BOX_ANCHOR = re.compile(rf"^\[?\(?\s*({_NUMBER})\s*,\s*({_NUMBER})")


def round_half_up(value: float) -> int:
    """四舍五入（0.5 向上取整）"""
    return int(math.floor(value + 0.5))


def factors_for(version: Optional[str] = None) -> Tuple[int, int]:
    """返回模型版本对应的坐标缩放因子"""
    return DEFAULT_FACTORS


def to_screen(
    point: Union[Point, Mapping[str, float]],
    factors: Tuple[int, int],
    viewport: Union[Mapping[str, int], Tuple[int, int]],
) -> Point:
    """
    把模型坐标换算为屏幕坐标。

    viewport 可以是 {"width", "height"} 或 (width, height)。
    """
    if isinstance(point, Point):
        x, y = point.x, point.y
    else:
        x, y = point.get("x", 0), point.get("y", 0)

    if isinstance(viewport, Mapping):
        width, height = viewport["width"], viewport["height"]
    else:
        width, height = viewport

    fx, fy = factors
    return Point(
        x=round_half_up(x / fx * width),
        y=round_half_up(y / fy * height),
    )


def box_anchor(box: str) -> Optional[Point]:
    """
    解析 "[x1, y1, x2, y2]" 形式的框，取左上角作为锚点。

    无法解析时返回 None。
    """
    if not box:
        return None
    match = _BOX_ANCHOR.match(box.strip())
    if not match:
        return None
    return Point(x=round_half_up(float(match.group(1))), y=round_half_up(float(match.group(2))))
