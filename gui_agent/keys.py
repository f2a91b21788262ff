"""按键映射：把模型输出的按键名映射为各操作界面的按键"""

import re
import sys
from typing import Dict, List, Optional

# Playwright 按键名
BROWSER_KEY_MAP: Dict[str, str] = {
    "alt": "Alt",
    "shift": "Shift",
    "meta": "Meta",
    "cmd": "Meta",
    "command": "Meta",
    "win": "Meta",
    "enter": "Enter",
    "return": "Enter",
    "tab": "Tab",
    "space": " ",
    "backspace": "Backspace",
    "delete": "Delete",
    "esc": "Escape",
    "escape": "Escape",
    "up": "ArrowUp",
    "down": "ArrowDown",
    "left": "ArrowLeft",
    "right": "ArrowRight",
    "arrowup": "ArrowUp",
    "arrowdown": "ArrowDown",
    "arrowleft": "ArrowLeft",
    "arrowright": "ArrowRight",
    "home": "Home",
    "end": "End",
    "pageup": "PageUp",
    "pagedown": "PageDown",
    "insert": "Insert",
}

# pyautogui 按键名（与平台无关的部分）
DESKTOP_KEY_MAP: Dict[str, str] = {
    "return": "enter",
    "shift": "shift",
    "alt": "alt",
    "esc": "esc",
    "escape": "esc",
    "pageup": "pageup",
    "pagedown": "pagedown",
    "arrowup": "up",
    "arrowdown": "down",
    "arrowleft": "left",
    "arrowright": "right",
    "space": "space",
    ",": ",",
}

_FUNCTION_KEY_RE = re.compile(r"^f([1-9]|1[0-9]|2[0-4])$")


def _split(key_str: str) -> List[str]:
    normalized = key_str.lower().replace("page down", "pagedown").replace("page up", "pageup")
    return [k for k in re.split(r"[\s+]+", normalized) if k]


def browser_key(token: str, platform: Optional[str] = None) -> str:
    """单个按键名 -> Playwright 按键名"""
    platform = platform or sys.platform
    lower = token.lower()
    if lower in ("ctrl", "control"):
        return "Meta" if platform == "darwin" else "Control"
    if lower in BROWSER_KEY_MAP:
        return BROWSER_KEY_MAP[lower]
    if _FUNCTION_KEY_RE.match(lower):
        return lower.upper()
    return token


def browser_keys(key_str: str, platform: Optional[str] = None) -> List[str]:
    """按空格拆分组合键并逐个映射"""
    if not key_str:
        return []
    return [browser_key(k, platform) for k in key_str.split()]


def desktop_keys(key_str: str, platform: Optional[str] = None) -> List[str]:
    """
    组合键字符串 -> pyautogui 按键名列表。

    command/meta/win 在 macOS 上映射为 command，其它平台映射为 win；
    ctrl 在 macOS 上同样映射为 command。
    """
    if not key_str:
        return []
    platform = platform or sys.platform
    command_key = "command" if platform == "darwin" else "win"
    ctrl_key = "command" if platform == "darwin" else "ctrl"

    keys = []
    for token in _split(key_str):
        if token in ("ctrl", "control"):
            keys.append(ctrl_key)
        elif token in ("meta", "win", "command", "cmd"):
            keys.append(command_key)
        else:
            keys.append(DESKTOP_KEY_MAP.get(token, token))
    return keys
