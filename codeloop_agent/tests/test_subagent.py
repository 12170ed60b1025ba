"""
Subagent tests — nested agent runs, termination reasons and delegation from
a parent agent, with one scripted client shared by parent and child.
"""

from dataclasses import replace

from codeloop_agent.core.agent import Agent
from codeloop_agent.core.agent_events import TOOL_CALL_COMPLETE
from codeloop_agent.core.approval import ApprovalPolicy
from codeloop_agent.core.models import ToolInvocation
from codeloop_agent.core.tool_registry import ToolRegistry
from codeloop_agent.tools.subagent_tool import (
    CODE_REVIEWER,
    CODEBASE_INVESTIGATOR,
    SubagentTool,
    get_default_subagent_definitions,
)

from agent_helpers import ScriptedClient, collect, run, text_turn, tool_turn


def _exec(tool, workspace, **params):
    return run(tool.execute(ToolInvocation(params=params, cwd=str(workspace))))


class TestDefinitions:

    def test_defaults(self):
        names = [d.name for d in get_default_subagent_definitions()]
        assert names == ["codebase_investigator", "code_reviewer"]
        assert CODE_REVIEWER.max_turns == 10
        assert CODE_REVIEWER.timeout_seconds == 300
        assert CODEBASE_INVESTIGATOR.max_turns == 20

    def test_tool_identity(self, config):
        tool = SubagentTool(config, CODE_REVIEWER)
        assert tool.name == "subagent_code_reviewer"
        assert tool.description.startswith("Sub-agent: Reviews code")
        assert tool.is_mutating()
        assert tool.validate_params({}) == ["Parameter 'goal' is required"]

    def test_build_config(self, config):
        child = SubagentTool(config, CODE_REVIEWER).build_config()
        assert child.max_turns == 10
        assert child.allowed_tools == ["read_file", "grep", "list_dir"]
        assert child is not config
        assert config.allowed_tools is None


class TestExecution:

    def test_goal_reached(self, config, workspace):
        client = ScriptedClient(turns=[text_turn("No issues found.")])
        result = _exec(SubagentTool(config, CODE_REVIEWER, client=client), workspace, goal="review main.py")
        assert result.success
        assert result.output == (
            "Sub-agent 'code_reviewer' completed.\n"
            "Termination: goal\n"
            "Tools called: None\n\n"
            "Result:\nNo issues found."
        )
        assert result.metadata == {"termination": "goal", "tools_called": []}
        assert not client.closed

    def test_prompt_and_tool_allow_list(self, config, workspace):
        client = ScriptedClient(turns=[text_turn("ok")])
        _exec(SubagentTool(config, CODE_REVIEWER, client=client), workspace, goal="review main.py")
        messages, tools = client.requests[0]
        assert "YOUR TASK:\nreview main.py" in messages[-1]["content"]
        assert "code review specialist" in messages[-1]["content"]
        assert sorted(t.name for t in tools) == ["grep", "list_dir", "read_file"]

    def test_tools_called(self, config, workspace):
        (workspace / "main.py").write_text("print('hi')\n")
        client = ScriptedClient(turns=[
            tool_turn("list_dir", {"path": "."}),
            tool_turn("read_file", {"path": "main.py"}),
            text_turn("Looks fine."),
        ])
        result = _exec(SubagentTool(config, CODEBASE_INVESTIGATOR, client=client), workspace, goal="inspect")
        assert "Tools called: list_dir, read_file" in result.output
        assert result.output.endswith("Result:\nLooks fine.")

    def test_error_termination(self, config, workspace):
        client = ScriptedClient(turns=[[ValueError("model unavailable")]])
        result = _exec(SubagentTool(config, CODE_REVIEWER, client=client), workspace, goal="review")
        assert not result.success
        assert result.error == "model unavailable"
        assert "Termination: error" in result.output
        assert "Sub-agent error: model unavailable" in result.output

    def test_turn_limit_is_error(self, config, workspace):
        definition = replace(CODE_REVIEWER, max_turns=1)
        client = ScriptedClient(repeat=tool_turn("list_dir", {"path": "."}, call_id="c"))
        result = _exec(SubagentTool(config, definition, client=client), workspace, goal="review")
        assert result.error == "Maximum turns (1) reached"
        assert result.metadata["termination"] == "error"

    def test_timeout(self, config, workspace):
        definition = replace(CODE_REVIEWER, timeout_seconds=-1)
        client = ScriptedClient(turns=[text_turn("too late")])
        result = _exec(SubagentTool(config, definition, client=client), workspace, goal="review")
        assert result.success
        assert "Termination: timeout" in result.output
        assert "Sub-agent timed out" in result.output

    def test_missing_goal(self, config, workspace):
        result = _exec(SubagentTool(config, CODE_REVIEWER, client=ScriptedClient()), workspace)
        assert result.error == "No goal specified for sub-agent"


class TestDelegation:

    def test_parent_receives_child_report(self, config):
        client = ScriptedClient(turns=[
            tool_turn("subagent_code_reviewer", {"goal": "review the repo"}, call_id="call_sub"),
            text_turn("Child says all good."),
            text_turn("The reviewer found nothing."),
        ])
        registry = ToolRegistry()
        registry.register(SubagentTool(config, CODE_REVIEWER, client=client))
        parent = Agent(config, client=client, registry=registry)

        events = collect(parent, "please review")

        complete = [e for e in events if e.type == TOOL_CALL_COMPLETE][0]
        assert complete.data["success"] is True
        assert "Result:\nChild says all good." in complete.data["output"]
        assert events[-1].data["response"] == "The reviewer found nothing."
        assert parent.session.turn_count == 2


class TestNestedApproval:

    def _shell_reviewer(self):
        return replace(CODE_REVIEWER, allowed_tools=["shell"])

    def test_no_approver_rejects(self, config, workspace):
        config.approval = ApprovalPolicy.ON_REQUEST
        client = ScriptedClient(turns=[
            tool_turn("shell", {"command": "touch made.txt"}),
            text_turn("Could not run it."),
        ])
        result = _exec(SubagentTool(config, self._shell_reviewer(), client=client), workspace, goal="touch")
        assert result.success
        assert "Tools called: shell" in result.output
        assert not (workspace / "made.txt").exists()
        tool_message = client.requests[1][0][-1]
        assert tool_message["role"] == "tool"
        assert "User rejected the operation" in tool_message["content"]

    def test_parent_approver_is_shared(self, config, workspace):
        config.approval = ApprovalPolicy.ON_REQUEST
        asked = []
        client = ScriptedClient(turns=[
            tool_turn("subagent_code_reviewer", {"goal": "touch it"}),
            tool_turn("shell", {"command": "touch made.txt"}),
            text_turn("Touched."),
            text_turn("Child touched the file."),
        ])
        registry = ToolRegistry()
        registry.register(SubagentTool(config, self._shell_reviewer(), client=client))
        parent = Agent(config, confirmation_callback=lambda c: asked.append(c.command) or True,
                       client=client, registry=registry)

        events = collect(parent, "go")
        assert asked == ["touch made.txt"]
        assert (workspace / "made.txt").exists()
        assert events[-1].data["response"] == "Child touched the file."

    def test_allow_list_blocks_unlisted_tool(self, config, workspace):
        client = ScriptedClient(turns=[
            tool_turn("write_file", {"path": "x.txt", "content": "x"}),
            text_turn("Blocked."),
        ])
        _exec(SubagentTool(config, CODEBASE_INVESTIGATOR, client=client), workspace, goal="write")
        assert not (workspace / "x.txt").exists()
        assert "Unknown tool: write_file" in client.requests[1][0][-1]["content"]
