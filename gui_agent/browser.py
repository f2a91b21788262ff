"""浏览器操作界面：基于 Playwright，截图 + 按坐标执行动作"""

import asyncio
import base64
import logging
from typing import Dict, Optional

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page, Playwright
from playwright.async_api import async_playwright

from .coordinates import to_screen
from .errors import ExecutionError, SnapshotError
from .keys import browser_keys
from .models import Command, ExecuteContext, ExecutionResult, Point, Snapshot, Status

logger = logging.getLogger(__name__)

SEARCH_ENGINES: Dict[str, str] = {
    "google": "https://www.google.com",
    "bing": "https://www.bing.com",
    "baidu": "https://www.baidu.com",
}

DEFAULT_VIEWPORT = {"width": 1280, "height": 720}
SCROLL_DELTA = 300


class BrowserOperator:
    """
    浏览器操作界面。

    浏览器会话在第一次 snapshot/execute 时才创建，之后复用，
    调用 close() 显式销毁。
    """

    ACTION_SPACES = [
        "click(start_box='<|box_start|>(x1,y1)<|box_end|>')",
        "left_double(start_box='<|box_start|>(x1,y1)<|box_end|>')",
        "right_single(start_box='<|box_start|>(x1,y1)<|box_end|>')",
        "drag(start_box='<|box_start|>(x1,y1)<|box_end|>', end_box='<|box_start|>(x3,y3)<|box_end|>')",
        "hotkey(key='ctrl c') # Split keys with a space and use lowercase.",
        "type(content='xxx') # Use escape characters \\', \\\", and \\n in content part.",
        "scroll(start_box='<|box_start|>(x1,y1)<|box_end|>', direction='down or up or right or left')",
        "navigate(content='xxx') # The content is the target URL",
        "navigate_back() # Go back to the previous page",
        "wait() # Sleep for 5s and take a screenshot to check for any changes.",
        "finished()",
        "call_user() # Call the user when the task is unsolvable.",
    ]

    def __init__(
        self,
        headless: bool = False,
        search_engine: str = "google",
        start_url: Optional[str] = None,
        viewport: Optional[Dict[str, int]] = None,
        wait_seconds: float = 5.0,
    ):
        self.headless = headless
        self.search_engine = search_engine
        self.start_url = start_url
        self.viewport = viewport or dict(DEFAULT_VIEWPORT)
        self.wait_seconds = wait_seconds
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self) -> "BrowserOperator":
        await self.get_active_page()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _start_url(self) -> str:
        if self.start_url:
            return self.start_url
        return SEARCH_ENGINES.get(self.search_engine, SEARCH_ENGINES["google"])

    async def _launch(self) -> None:
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=["--disable-blink-features=AutomationControlled"],
            )
            self._context = await self._browser.new_context(viewport=self.viewport)
            self._page = await self._context.new_page()
        except Exception:
            # 启动失败时释放已经启动的 driver，下次重试从头开始
            logger.error("❌ 浏览器启动失败")
            await self.close()
            raise
        logger.info("✓ 浏览器已启动，打开 %s", self._start_url())
        try:
            await self._page.goto(self._start_url(), wait_until="domcontentloaded")
        except PlaywrightError as e:
            logger.warning("打开起始页失败: %s", e)

    async def get_active_page(self) -> Page:
        """返回当前活动页面（最近打开的标签页），必要时启动浏览器"""
        if self._browser is None:
            await self._launch()

        if self._context is not None:
            pages = self._context.pages
            if pages:
                self._page = pages[-1]

        if self._page is None or self._page.is_closed():
            raise RuntimeError("没有可用的活动页面")
        return self._page

    async def snapshot(self) -> Snapshot:
        """截取当前页面"""
        try:
            page = await self.get_active_page()
            buffer = await page.screenshot(type="jpeg", quality=75)
            scale_factor = await page.evaluate("() => window.devicePixelRatio") or 1
        except (PlaywrightError, RuntimeError) as e:
            raise SnapshotError(f"截图失败: {e}") from e
        viewport = page.viewport_size or self.viewport
        return Snapshot(
            image_base64=base64.b64encode(buffer).decode("ascii"),
            scale_factor=float(scale_factor),
            width=viewport["width"],
            height=viewport["height"],
            mime_type="image/jpeg",
        )

    async def execute(self, command: Command, context: ExecuteContext) -> ExecutionResult:
        """执行一条动作，返回执行状态；Playwright 报错时抛出 ExecutionError"""
        page = await self.get_active_page()
        try:
            return await self._dispatch(page, command, context)
        except PlaywrightError as e:
            raise ExecutionError(f"{command.action_type} 执行失败: {e}") from e

    async def _dispatch(self, page: Page, command: Command, context: ExecuteContext) -> ExecutionResult:
        action = command.action_type
        inputs = command.inputs

        if action == "click":
            await self._click(page, inputs, context)
        elif action == "left_double":
            await self._click(page, inputs, context, double=True)
        elif action == "right_single":
            await self._click(page, inputs, context, button="right")
        elif action == "type":
            await self._type(page, inputs.get("content", ""))
        elif action == "hotkey":
            await self._hotkey(page, inputs.get("key") or inputs.get("hotkey") or "")
        elif action == "scroll":
            await self._scroll(page, inputs, context)
        elif action == "navigate":
            await self._navigate(page, inputs.get("content", ""))
        elif action == "navigate_back":
            await self._back(page)
        elif action == "drag":
            await self._drag(page, inputs, context)
        elif action == "wait":
            await asyncio.sleep(self.wait_seconds)
        elif action in ("finished", "call_user"):
            pass
        else:
            logger.warning("❌ 未知 action: %s", action)
            return ExecutionResult(status=Status.RUNNING, message=f"unknown action: {action}")

        return ExecutionResult(status=Status.RUNNING)

    def _resolve(self, page: Page, raw: Optional[Point], context: ExecuteContext) -> Point:
        viewport = page.viewport_size or {"width": context.screen_width, "height": context.screen_height}
        return to_screen(raw or Point(0, 0), context.factors, viewport)

    def _start_point(self, page: Page, inputs, context: ExecuteContext) -> Point:
        raw = inputs.get("start_box") or inputs.get("point") or inputs.get("start_point")
        return self._resolve(page, raw, context)

    async def _click(self, page: Page, inputs, context: ExecuteContext, button: str = "left", double: bool = False):
        target = self._start_point(page, inputs, context)
        if double:
            await page.mouse.dblclick(target.x, target.y)
        else:
            await page.mouse.click(target.x, target.y, button=button)
        logger.info("✓ 点击 (%d, %d) button=%s double=%s", target.x, target.y, button, double)
        await self._settle(page)

    async def _type(self, page: Page, content: str):
        # 末尾换行表示提交
        submit = content.endswith("\n")
        text = content[:-1] if submit else content
        if text:
            await page.keyboard.type(text, delay=30)
        if submit:
            await page.keyboard.press("Enter")
        logger.info("✓ 输入 %r submit=%s", text, submit)
        await self._settle(page)

    async def _hotkey(self, page: Page, key_str: str):
        keys = browser_keys(key_str)
        if not keys:
            logger.warning("hotkey 缺少 key")
            return
        if len(keys) == 1:
            await page.keyboard.press(keys[0])
        else:
            for key in keys[:-1]:
                await page.keyboard.down(key)
            await page.keyboard.press(keys[-1])
            for key in reversed(keys[:-1]):
                await page.keyboard.up(key)
        logger.info("✓ 按键 %s", "+".join(keys))
        await self._settle(page)

    async def _scroll(self, page: Page, inputs, context: ExecuteContext):
        target = self._start_point(page, inputs, context)
        direction = (inputs.get("direction") or "down").lower()
        delta_x = SCROLL_DELTA if direction == "right" else -SCROLL_DELTA if direction == "left" else 0
        delta_y = SCROLL_DELTA if direction == "down" else -SCROLL_DELTA if direction == "up" else 0
        await page.mouse.move(target.x, target.y)
        await page.mouse.wheel(delta_x, delta_y)
        logger.info("✓ 滚动 %s @ (%d, %d)", direction, target.x, target.y)
        await asyncio.sleep(0.5)

    async def _navigate(self, page: Page, url: str):
        if not url:
            return
        url = url.strip()
        if "://" not in url:
            url = f"https://{url}"
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=15000)
            logger.info("✓ 打开 %s", url)
        except PlaywrightError as e:
            logger.warning("❌ 打开 %s 失败: %s", url, e)

    async def _back(self, page: Page):
        try:
            await page.go_back(wait_until="domcontentloaded", timeout=10000)
            logger.info("✓ 返回")
        except PlaywrightError as e:
            logger.warning("❌ 返回失败: %s", e)

    async def _drag(self, page: Page, inputs, context: ExecuteContext):
        start = self._start_point(page, inputs, context)
        end = self._resolve(page, inputs.get("end_box") or inputs.get("end_point"), context)
        await page.mouse.move(start.x, start.y)
        await page.mouse.down()
        await page.mouse.move(end.x, end.y, steps=10)
        await page.mouse.up()
        logger.info("✓ 拖拽 (%d, %d) -> (%d, %d)", start.x, start.y, end.x, end.y)
        await self._settle(page)

    async def _settle(self, page: Page):
        """等待页面稳定：domcontentloaded 最多 3 秒，再固定等待 300ms"""
        try:
            await page.wait_for_load_state("domcontentloaded", timeout=3000)
        except PlaywrightError:
            pass
        await asyncio.sleep(0.3)

    async def close(self) -> None:
        """关闭浏览器会话"""
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.warning("关闭浏览器失败: %s", e)
        if self._playwright is not None:
            await self._playwright.stop()
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        logger.info("✓ 浏览器已关闭")
