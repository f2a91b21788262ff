"""Tests for key name mapping."""

from gui_agent.keys import browser_key, browser_keys, desktop_keys


class TestBrowserKeys:
    def test_ctrl_is_platform_control_key(self):
        assert browser_key("ctrl", platform="linux") == "Control"
        assert browser_key("ctrl", platform="darwin") == "Meta"

    def test_chord_is_split_on_spaces(self):
        assert browser_keys("ctrl shift t", platform="win32") == ["Control", "Shift", "t"]

    def test_arrows_and_function_keys(self):
        assert browser_keys("up down", platform="linux") == ["ArrowUp", "ArrowDown"]
        assert browser_key("f5") == "F5"

    def test_unknown_key_passes_through(self):
        assert browser_key("a") == "a"

    def test_empty(self):
        assert browser_keys("") == []


class TestDesktopKeys:
    def test_command_key_by_platform(self):
        assert desktop_keys("cmd c", platform="darwin") == ["command", "c"]
        assert desktop_keys("meta", platform="win32") == ["win"]

    def test_ctrl_by_platform(self):
        assert desktop_keys("ctrl v", platform="darwin") == ["command", "v"]
        assert desktop_keys("ctrl v", platform="linux") == ["ctrl", "v"]

    def test_plus_separator_and_page_keys(self):
        assert desktop_keys("ctrl+page down", platform="linux") == ["ctrl", "pagedown"]

    def test_return_maps_to_enter(self):
        assert desktop_keys("Return", platform="linux") == ["enter"]
