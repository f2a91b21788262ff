"""Tests for the action parser."""

from gui_agent.models import Point
from gui_agent.parser import format_command, parse, parse_box, parse_point, parse_statement


class TestParseFallback:
    """Tests for input without usable actions."""

    def test_no_action_marker_returns_wait(self):
        """Text without Action: yields exactly one wait."""
        commands = parse("Thought: I am not sure what to do")
        assert len(commands) == 1
        assert commands[0].action_type == "wait"
        assert commands[0].thought == "I am not sure what to do"

    def test_empty_text_returns_wait(self):
        commands = parse("")
        assert [c.action_type for c in commands] == ["wait"]
        assert commands[0].thought == ""

    def test_none_text_returns_wait(self):
        assert parse(None)[0].action_type == "wait"

    def test_unparseable_statements_return_wait(self):
        """Action segment with no valid statement falls back to wait."""
        commands = parse("Thought: hmm\nAction: click the button please")
        assert len(commands) == 1
        assert commands[0].action_type == "wait"
        assert commands[0].thought == "hmm"


class TestParseActions:
    """Tests for well-formed actions."""

    def test_navigate(self):
        commands = parse("Thought: go\nAction: navigate(content='example.com')")
        assert len(commands) == 1
        assert commands[0].action_type == "navigate"
        assert commands[0].inputs["content"] == "example.com"
        assert commands[0].thought == "go"

    def test_zero_argument_action(self):
        commands = parse("Action: finished()")
        assert commands[0].action_type == "finished"
        assert dict(commands[0].inputs) == {}

    def test_markers_are_case_insensitive(self):
        commands = parse("thought: look around\naction: wait()")
        assert commands[0].action_type == "wait"
        assert commands[0].thought == "look around"

    def test_last_action_marker_wins(self):
        commands = parse("Thought: x\nAction: click(start_box='[1,1,3,3]')\nAction: navigate_back()")
        assert [c.action_type for c in commands] == ["navigate_back"]

    def test_multiple_actions_separated_by_blank_line(self):
        text = "Thought: fill the form\nAction: click(start_box='[10,10,30,30]')\n\ntype(content='hello')"
        commands = parse(text)
        assert [c.action_type for c in commands] == ["click", "type"]
        assert all(c.thought == "fill the form" for c in commands)

    def test_unparseable_sibling_is_dropped(self):
        text = "Action: click(start_box='[10,10,30,30]')\n\nnot an action\n\nhotkey(key='ctrl c')"
        commands = parse(text)
        assert [c.action_type for c in commands] == ["click", "hotkey"]
        assert commands[1].inputs["key"] == "ctrl c"

    def test_commands_after_terminal_are_dropped(self):
        text = "Action: finished()\n\nclick(start_box='[10,10,30,30]')"
        commands = parse(text)
        assert [c.action_type for c in commands] == ["finished"]

    def test_content_escapes(self):
        commands = parse(r"Action: type(content='it\'s \"done\"\n')")
        assert commands[0].inputs["content"] == 'it\'s "done"\n'

    def test_escaped_quote_in_plain_key(self):
        command = parse_statement(r"hotkey(key='don\'t')")
        assert command.inputs["key"] == "don't"

    def test_commands_are_immutable(self):
        command = parse("Action: navigate(content='a.com')")[0]
        try:
            command.inputs["content"] = "b.com"
            assert False, "inputs should be read-only"
        except TypeError:
            pass


class TestCoordinates:
    """Tests for coordinate post-processing."""

    def test_box_array_takes_midpoint(self):
        command = parse("Action: click(start_box='[10,10,30,30]')")[0]
        assert command.inputs["start_box"] == Point(20, 20)

    def test_box_midpoint_rounds_half_up(self):
        assert parse_box("[1, 1, 2, 2]") == Point(2, 2)

    def test_box_token(self):
        assert parse_box("<|box_start|>(100,200)<|box_end|>") == Point(100, 200)

    def test_box_single_pair(self):
        assert parse_box("(300, 400)") == Point(300, 400)

    def test_malformed_box_is_origin(self):
        command = parse("Action: click(start_box='somewhere')")[0]
        assert command.inputs["start_box"] == Point(0, 0)

    def test_point_tag(self):
        assert parse_point("<point>12 34</point>") == Point(12, 34)

    def test_malformed_point_is_origin(self):
        assert parse_point("<point>a b</point>") == Point(0, 0)

    def test_drag_end_box(self):
        command = parse("Action: drag(start_box='[0,0,10,10]', end_box='[100,100,110,110]')")[0]
        assert command.inputs["start_box"] == Point(5, 5)
        assert command.inputs["end_box"] == Point(105, 105)


class TestFormatCommand:
    def test_format_round_trips_through_parse(self):
        command = parse("Action: scroll(start_box='(5,6)', direction='down')")[0]
        text = format_command(command)
        assert text == "scroll(start_box='(5,6)', direction='down')"
        assert parse(f"Action: {text}")[0] == command
