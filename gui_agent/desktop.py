"""
桌面操作界面：全屏截图 + 系统级鼠标键盘控制。

截图使用 mss + Pillow，输入使用 PyAutoGUI，Windows 下输入文本通过剪贴板粘贴（pyperclip）。
PyAutoGUI 的调用都是阻塞的，统一放到工作线程里执行。
"""

import asyncio
import base64
import io
import logging
import sys
import time
from typing import Any, Mapping, Optional

import mss
import mss.exception
import pyautogui
import pyperclip
from PIL import Image

from .coordinates import box_anchor, to_screen
from .errors import ExecutionError, SnapshotError
from .keys import desktop_keys
from .models import Command, ExecuteContext, ExecutionResult, Point, Snapshot, Status

logger = logging.getLogger(__name__)

# 我们自己控制动作之间的停顿
pyautogui.PAUSE = 0.0
pyautogui.FAILSAFE = False

TERMINAL_VERBS = ("error_env", "call_user", "finished", "user_stop")


class DesktopOperator:
    """
    桌面操作界面。

    鼠标键盘会话随进程存在，没有显式的打开/关闭。
    坐标以四角框字符串或解析后的点给出，框取左上角作为锚点。
    """

    ACTION_SPACES = [
        "click(start_box='[x1, y1, x2, y2]')",
        "left_double(start_box='[x1, y1, x2, y2]')",
        "right_single(start_box='[x1, y1, x2, y2]')",
        "drag(start_box='[x1, y1, x2, y2]', end_box='[x3, y3, x4, y4]')",
        "hotkey(key='')",
        "type(content='') #If you want to submit your input, use \"\\n\" at the end of `content`.",
        "scroll(start_box='[x1, y1, x2, y2]', direction='down or up or right or left')",
        "wait() #Sleep for 5s and take a screenshot to check for any changes.",
        "finished()",
        "call_user() # Submit the task and call the user when the task is unsolvable, or when you need the user's help.",
    ]

    def __init__(
        self,
        monitor: int = 1,
        move_duration: float = 0.1,
        click_delay: float = 0.1,
        scroll_clicks: int = 5,
        wait_seconds: float = 5.0,
        platform: Optional[str] = None,
    ):
        self.monitor = monitor
        self.move_duration = move_duration
        self.click_delay = click_delay
        self.scroll_clicks = scroll_clicks
        self.wait_seconds = wait_seconds
        self.platform = platform or sys.platform

    # ==================== 截图 ====================

    async def snapshot(self) -> Snapshot:
        try:
            return await asyncio.to_thread(self._grab)
        except mss.exception.ScreenShotError as e:
            raise SnapshotError(f"截图失败: {e}") from e

    def _grab(self) -> Snapshot:
        """截取整个屏幕，图片尺寸与物理像素一致，scale_factor 为系统像素密度"""
        with mss.mss() as sct:
            monitors = sct.monitors
            monitor = monitors[self.monitor] if self.monitor < len(monitors) else monitors[0]
            shot = sct.grab(monitor)
            image = Image.frombytes("RGB", shot.size, shot.bgra, "raw", "BGRX")

        logical_width, logical_height = pyautogui.size()
        scale_factor = image.width / logical_width if logical_width else 1.0
        if scale_factor <= 0:
            scale_factor = 1.0

        physical = (round(logical_width * scale_factor), round(logical_height * scale_factor))
        if image.size != physical:
            image = image.resize(physical)

        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=75)
        logger.debug("截图 logical=%sx%s scale=%.2f", logical_width, logical_height, scale_factor)
        return Snapshot(
            image_base64=base64.b64encode(buffer.getvalue()).decode("ascii"),
            scale_factor=scale_factor,
            width=logical_width,
            height=logical_height,
            mime_type="image/jpeg",
        )

    # ==================== 执行 ====================

    async def execute(self, command: Command, context: ExecuteContext) -> ExecutionResult:
        if command.action_type in TERMINAL_VERBS:
            return ExecutionResult(status=Status.END)
        if command.action_type == "wait":
            await asyncio.sleep(self.wait_seconds)
            return ExecutionResult(status=Status.RUNNING)
        try:
            return await asyncio.to_thread(self._execute, command, context)
        except pyautogui.PyAutoGUIException as e:
            raise ExecutionError(f"{command.action_type} 执行失败: {e}") from e

    def resolve(self, value: Any, context: ExecuteContext) -> Optional[Point]:
        """把 start_box/end_box 换算为屏幕坐标，无法解析时返回 None"""
        if isinstance(value, Point):
            raw = value
        elif isinstance(value, str):
            raw = box_anchor(value)
        else:
            raw = None
        if raw is None:
            return None
        return to_screen(raw, context.factors, (context.screen_width, context.screen_height))

    def _execute(self, command: Command, context: ExecuteContext) -> ExecutionResult:
        action = command.action_type
        inputs = command.inputs
        start = self.resolve(inputs.get("start_box") or inputs.get("point") or inputs.get("start_point"), context)

        if action in ("mouse_move", "hover"):
            self._move(start)
        elif action in ("click", "left_click", "left_single"):
            self._click(start, "left")
        elif action in ("left_double", "double_click"):
            self._click(start, "left", clicks=2)
        elif action in ("right_click", "right_single"):
            self._click(start, "right")
        elif action == "middle_click":
            self._click(start, "middle")
        elif action in ("drag", "left_click_drag", "select"):
            end = self.resolve(inputs.get("end_box") or inputs.get("end_point"), context)
            self._drag(start, end)
        elif action == "type":
            self._type(inputs.get("content") or "")
        elif action == "hotkey":
            keys = self._keys(inputs)
            if keys:
                pyautogui.hotkey(*keys)
                logger.info("✓ 按键 %s", "+".join(keys))
        elif action == "press":
            for key in self._keys(inputs):
                pyautogui.keyDown(key)
        elif action == "release":
            for key in self._keys(inputs):
                pyautogui.keyUp(key)
        elif action == "scroll":
            self._scroll(start, (inputs.get("direction") or "").lower())
        else:
            logger.warning("❌ 未知 action: %s", action)
            return ExecutionResult(status=Status.RUNNING, message=f"unknown action: {action}")

        return ExecutionResult(status=Status.RUNNING)

    def _keys(self, inputs: Mapping[str, Any]):
        key_str = inputs.get("key") or inputs.get("hotkey") or ""
        keys = desktop_keys(key_str, self.platform)
        valid = [k for k in keys if pyautogui.isValidKey(k)]
        if len(valid) != len(keys):
            logger.warning("忽略无法识别的按键: %s", [k for k in keys if k not in valid])
        return valid

    def _move(self, target: Optional[Point]):
        if target is None:
            return
        pyautogui.moveTo(target.x, target.y, duration=self.move_duration)

    def _click(self, target: Optional[Point], button: str, clicks: int = 1):
        self._move(target)
        time.sleep(self.click_delay)
        pyautogui.click(button=button, clicks=clicks)
        logger.info("✓ 点击 %s button=%s clicks=%d", target, button, clicks)

    def _drag(self, start: Optional[Point], end: Optional[Point]):
        if start is None or end is None:
            logger.warning("drag 缺少起点或终点")
            return
        self._move(start)
        time.sleep(self.click_delay)
        pyautogui.dragTo(end.x, end.y, duration=self.move_duration * 2, button="left")
        logger.info("✓ 拖拽 %s -> %s", start, end)

    def _type(self, content: str):
        # 末尾换行表示提交，模型偶尔会输出未转义的 \n
        if content.endswith("\\n"):
            text, submit = content[:-2], True
        elif content.endswith("\n"):
            text, submit = content[:-1], True
        else:
            text, submit = content, False
        if text:
            # pyautogui.write 会静默丢弃键盘映射之外的字符，非 ASCII 文本走剪贴板
            if self.platform == "win32" or not text.isascii():
                self._paste(text)
            else:
                pyautogui.write(text, interval=0)
        if submit:
            pyautogui.press("enter")
        logger.info("✓ 输入 %r submit=%s", text, submit)

    def _paste(self, text: str):
        """通过剪贴板粘贴文本，完成后恢复原剪贴板内容"""
        original = pyperclip.paste()
        modifier = "command" if self.platform == "darwin" else "ctrl"
        try:
            pyperclip.copy(text)
            time.sleep(0.05)
            pyautogui.hotkey(modifier, "v")
            time.sleep(0.05)
        finally:
            pyperclip.copy(original)

    def _scroll(self, target: Optional[Point], direction: str):
        self._move(target)
        x, y = (target.x, target.y) if target else (None, None)
        if direction == "up":
            pyautogui.scroll(self.scroll_clicks, x=x, y=y)
        elif direction == "down":
            pyautogui.scroll(-self.scroll_clicks, x=x, y=y)
        elif direction == "left":
            pyautogui.hscroll(-self.scroll_clicks, x=x, y=y)
        elif direction == "right":
            pyautogui.hscroll(self.scroll_clicks, x=x, y=y)
        else:
            logger.warning("未知的滚动方向: %r", direction)
            return
        logger.info("✓ 滚动 %s @ %s", direction, target)
