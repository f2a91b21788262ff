"""Tests for the agent loop state machine."""

import asyncio

import pytest
from fakes import FakeModel, FakeOperator, model_error

from gui_agent.config import AgentSettings
from gui_agent.core import GUIAgent
from gui_agent.events import AgentEvents
from gui_agent.models import ErrorKind, Status


def fast_settings(**changes) -> AgentSettings:
    values = dict(
        max_loop_count=5,
        settle_delay=0,
        loop_interval=0,
        wait_seconds=0,
        pause_poll_interval=0.01,
        model_retry_backoff=0,
    )
    values.update(changes)
    return AgentSettings(**values)


def make_agent(operator, model, **changes):
    events = AgentEvents()
    received = []
    events.subscribe(on_data=received.append, on_error=received.append)
    agent = GUIAgent(operator, model, fast_settings(**changes), system_prompt="You are a GUI agent.", events=events)
    return agent, received


class TestScenarios:
    """End-to-end loop scenarios."""

    def test_navigate_executes_and_loop_continues(self):
        operator = FakeOperator()
        model = FakeModel(["Thought: go\nAction: navigate(content='example.com')"])
        agent, events = make_agent(operator, model, max_loop_count=1)

        status = asyncio.run(agent.run("search for cats"))

        assert len(operator.executed) == 1
        command, _ = operator.executed[0]
        assert command.action_type == "navigate"
        assert command.inputs["content"] == "example.com"
        assert status == Status.MAX_LOOP
        assert Status.END not in [e.status for e in events]

    def test_finished_ends_without_more_snapshots(self):
        operator = FakeOperator()
        model = FakeModel(["Action: finished()"])
        agent, _ = make_agent(operator, model)

        status = asyncio.run(agent.run("do it"))

        assert status == Status.END
        assert operator.snapshots == 1
        assert operator.executed == []

    def test_call_user(self):
        agent, _ = make_agent(FakeOperator(), FakeModel(["Action: call_user()"]))
        assert asyncio.run(agent.run("log in")) == Status.CALL_USER

    def test_snapshot_fails_three_times(self):
        operator = FakeOperator(snapshot_errors=3)
        model = FakeModel(["Action: finished()"])
        agent, events = make_agent(operator, model)

        status = asyncio.run(agent.run("do it"))

        assert status == Status.ERROR
        assert agent.last_error.kind == ErrorKind.SNAPSHOT_FAILURE
        assert operator.snapshots == 3
        assert model.calls == []
        assert events[-1].error.kind == ErrorKind.SNAPSHOT_FAILURE

    def test_snapshot_recovers_before_limit(self):
        operator = FakeOperator(snapshot_errors=2)
        agent, _ = make_agent(operator, FakeModel(["Action: finished()"]))

        assert asyncio.run(agent.run("do it")) == Status.END
        assert agent.snapshot_failures == 0

    def test_max_loop_after_one_iteration(self):
        agent, _ = make_agent(FakeOperator(), FakeModel(["Action: wait()"]), max_loop_count=1)

        assert asyncio.run(agent.run("do it")) == Status.MAX_LOOP
        assert agent.loop_count == 1


class TestLoopInvariants:
    def test_loop_count_never_exceeds_maximum(self):
        operator = FakeOperator()
        agent, _ = make_agent(operator, FakeModel(["Action: wait()"]), max_loop_count=3)

        asyncio.run(agent.run("do it"))

        assert agent.loop_count == 3
        assert operator.snapshots == 3

    def test_exactly_one_terminal_event(self):
        agent, events = make_agent(
            FakeOperator(),
            FakeModel(["Action: click(start_box='[1,1,3,3]')", "Action: finished()"]),
        )

        asyncio.run(agent.run("do it"))

        terminal = [e for e in events if e.status.is_terminal]
        assert len(terminal) == 1
        assert events[-1] is terminal[0]

    def test_events_carry_conversation_log(self):
        agent, events = make_agent(FakeOperator(), FakeModel(["Thought: a\nAction: wait()", "Action: finished()"]))

        asyncio.run(agent.run("do it"))

        final = events[-1]
        assert len(final.conversations) == 2
        assert final.conversations[0].thought == "a"
        assert final.conversations[0].raw_text == "Thought: a\nAction: wait()"
        assert "model" in final.conversations[0].timing_ms
        assert final.session_id == agent.session_id

    def test_recorded_turn_is_complete_and_read_only(self):
        agent, events = make_agent(FakeOperator(), FakeModel(["Action: wait()", "Action: finished()"]))

        asyncio.run(agent.run("do it"))

        first_seen = next(e for e in events if e.conversations).conversations[0]
        assert set(first_seen.timing_ms) == {"snapshot", "model", "actions"}
        assert events[-1].conversations[0] is first_seen
        with pytest.raises(TypeError):
            first_seen.timing_ms["actions"] = 0.0

    def test_model_sees_its_previous_outputs(self):
        model = FakeModel(["Action: wait()", "Action: finished()"])
        agent, _ = make_agent(FakeOperator(), model)

        asyncio.run(agent.run("search for cats"))

        first, second = model.calls[0]["history"], model.calls[1]["history"]
        assert first[0] == {"role": "system", "content": "You are a GUI agent."}
        assert first[1] == {"role": "user", "content": "search for cats"}
        assert second[-1] == {"role": "assistant", "content": "Action: wait()"}
        assert model.calls[0]["screen"] == {"width": 1280, "height": 720}

    def test_context_comes_from_snapshot(self):
        operator = FakeOperator()
        agent, _ = make_agent(operator, FakeModel(["Action: click(start_box='[1,1,3,3]')"]), max_loop_count=1)

        asyncio.run(agent.run("do it"))

        _, context = operator.executed[0]
        assert (context.screen_width, context.screen_height) == (1280, 720)
        assert context.scale_factor == 2.0
        assert context.factors == (1000, 1000)


class TestErrorHandling:
    def test_execution_failure_is_not_fatal(self):
        operator = FakeOperator(fail_on="click")
        text = "Action: click(start_box='[1,1,3,3]')\n\ntype(content='hi')"
        agent, _ = make_agent(operator, FakeModel([text, "Action: finished()"]))

        status = asyncio.run(agent.run("do it"))

        assert status == Status.END
        assert [c.action_type for c, _ in operator.executed] == ["click", "type"]

    def test_unknown_action_reaches_operator_and_loop_continues(self):
        operator = FakeOperator()
        agent, _ = make_agent(operator, FakeModel(["Action: teleport(to='mars')", "Action: finished()"]))

        assert asyncio.run(agent.run("do it")) == Status.END
        assert operator.executed[0][0].action_type == "teleport"

    def test_operator_terminal_status_ends_run(self):
        operator = FakeOperator(terminal_on="user_stop")
        agent, _ = make_agent(operator, FakeModel(["Action: user_stop()"]))

        assert asyncio.run(agent.run("do it")) == Status.END
        assert agent.loop_count == 1

    def test_model_retries_then_succeeds(self):
        model = FakeModel([model_error(), "Action: finished()"])
        agent, _ = make_agent(FakeOperator(), model, model_max_retries=2)

        assert asyncio.run(agent.run("do it")) == Status.END
        assert len(model.calls) == 2

    def test_model_retries_exhausted(self):
        model = FakeModel([model_error("HTTP 500")])
        operator = FakeOperator()
        agent, events = make_agent(operator, model, model_max_retries=2)

        status = asyncio.run(agent.run("do it"))

        assert status == Status.ERROR
        assert len(model.calls) == 3
        assert agent.last_error.kind == ErrorKind.MODEL_INVOCATION_FAILURE
        assert "HTTP 500" in agent.last_error.message
        assert operator.executed == []
        assert events[-1].status == Status.ERROR


class TestSignals:
    """Tests for pause / resume / stop."""

    def test_stop_while_paused(self):
        agent, events = make_agent(FakeOperator(), FakeModel(["Action: wait()"]))

        def on_data(event):
            if event.status == Status.RUNNING:
                agent.pause()
            elif event.status == Status.PAUSE:
                agent.stop()

        agent.events.subscribe(on_data=on_data)
        status = asyncio.run(agent.run("do it"))

        assert status == Status.END
        assert agent.loop_count == 1
        assert Status.PAUSE in [e.status for e in events]

    def test_resume_continues_loop(self):
        agent, events = make_agent(FakeOperator(), FakeModel(["Action: wait()"]), max_loop_count=2)
        state = {"paused": False}

        def on_data(event):
            if event.status == Status.RUNNING and not state["paused"]:
                state["paused"] = True
                agent.pause()
            elif event.status == Status.PAUSE:
                agent.resume()

        agent.events.subscribe(on_data=on_data)
        status = asyncio.run(agent.run("do it"))

        assert status == Status.MAX_LOOP
        assert agent.loop_count == 2

    def test_external_stop_event(self):
        async def scenario():
            stop_event = asyncio.Event()
            operator = FakeOperator()
            operator.gate = asyncio.Event()
            agent = GUIAgent(operator, FakeModel(["Action: wait()"]), fast_settings(), stop_event=stop_event)
            task = asyncio.create_task(agent.run("do it"))
            await asyncio.sleep(0)
            stop_event.set()
            operator.gate.set()
            return await task, agent

        status, agent = asyncio.run(scenario())
        assert status == Status.END
        assert agent.loop_count == 1

    def test_second_run_is_rejected(self):
        async def scenario():
            operator = FakeOperator()
            operator.gate = asyncio.Event()
            agent = GUIAgent(operator, FakeModel(["Action: finished()"]), fast_settings())
            task = asyncio.create_task(agent.run("first"))
            await asyncio.sleep(0)
            rejected = await agent.run("second")
            operator.gate.set()
            return rejected, await task

        rejected, status = asyncio.run(scenario())
        assert rejected is None
        assert status == Status.END
