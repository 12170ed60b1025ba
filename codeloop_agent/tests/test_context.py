"""
Context tests — ContextManager history and token accounting, tool-output
pruning, the compaction preamble, the LoopDetector and the ChatCompactor.
"""

from codeloop_agent.core.compaction import TRANSCRIPT_HEADER, ChatCompactor
from codeloop_agent.core.context_manager import PRUNED_PLACEHOLDER, ContextManager
from codeloop_agent.core.loop_detector import LoopDetector
from codeloop_agent.core.models import TokenUsage, ToolCall
from codeloop_agent.core.stream_events import MessageComplete
from codeloop_agent.core.token_counter import TokenCounter, estimate_tokens

from agent_helpers import ScriptedClient, run


def _cm(system_prompt="You are a test agent."):
    return ContextManager(system_prompt=system_prompt, model_name="")


# ══════════════════════════════════════════════════════════════════
# 1. Token counting
# ══════════════════════════════════════════════════════════════════

class TestTokenCounting:

    def test_estimate_empty(self):
        assert estimate_tokens("") == 0

    def test_estimate_never_below_one(self):
        assert estimate_tokens("a") == 1

    def test_estimate_chars_over_four(self):
        assert estimate_tokens("x" * 400) == 100

    def test_counter_without_model_estimates(self):
        assert TokenCounter("").count("y" * 80) == 20

    def test_counter_none_is_zero(self):
        assert TokenCounter("").count(None) == 0


# ══════════════════════════════════════════════════════════════════
# 2. ContextManager
# ══════════════════════════════════════════════════════════════════

class TestContextManager:

    def test_system_prompt_first(self):
        cm = _cm()
        cm.add_user_message("hello")
        msgs = cm.get_messages()
        assert msgs[0] == {"role": "system", "content": "You are a test agent."}
        assert msgs[1] == {"role": "user", "content": "hello"}

    def test_no_system_prompt(self):
        cm = _cm(system_prompt=None)
        cm.add_user_message("hello")
        assert cm.get_messages()[0]["role"] == "user"

    def test_system_prompt_not_in_history(self):
        cm = _cm()
        cm.add_user_message("hi")
        assert cm.message_count == 1
        assert all(m.role != "system" for m in cm.messages)

    def test_token_count_cached_on_append(self):
        cm = _cm()
        cm.add_user_message("z" * 40)
        assert cm.messages[0].token_count == 10

    def test_assistant_tokens_include_tool_calls(self):
        cm = _cm()
        call = ToolCall("call_1", "read_file", {"path": "a.txt"})
        cm.add_assistant_message(None, [call])
        msg = cm.messages[0]
        assert msg.content is None
        assert msg.tool_calls == [call]
        assert msg.token_count > 0

    def test_assistant_message_with_tool_calls_serialises(self):
        cm = _cm()
        cm.add_assistant_message("checking", [ToolCall("call_1", "glob", {"pattern": "*.py"})])
        data = cm.get_messages()[-1]
        assert data["content"] == "checking"
        assert data["tool_calls"] == [{"id": "call_1", "name": "glob", "arguments": {"pattern": "*.py"}}]

    def test_tool_result_carries_call_id(self):
        cm = _cm()
        cm.add_tool_result("call_9", "output")
        assert cm.get_messages()[-1] == {"role": "tool", "tool_call_id": "call_9", "content": "output"}

    def test_get_messages_is_a_snapshot(self):
        cm = _cm()
        cm.add_user_message("one")
        snapshot = cm.get_messages()
        cm.add_user_message("two")
        assert len(snapshot) == 2

    def test_clear_keeps_system_prompt(self):
        cm = _cm()
        cm.add_user_message("one")
        cm.set_latest_usage(TokenUsage(total_tokens=5))
        cm.clear()
        assert cm.message_count == 0
        assert cm.latest_usage is None
        assert cm.get_messages() == [{"role": "system", "content": "You are a test agent."}]


# ══════════════════════════════════════════════════════════════════
# 3. Usage accounting
# ══════════════════════════════════════════════════════════════════

class TestUsage:

    def test_total_usage_is_monotonic(self):
        cm = _cm()
        previous = 0
        for total in (10, 0, 250, 3):
            cm.add_usage(TokenUsage(prompt_tokens=total, total_tokens=total))
            assert cm.total_usage.total_tokens >= previous
            previous = cm.total_usage.total_tokens
        assert cm.total_usage.total_tokens == 263
        assert cm.total_usage.prompt_tokens == 263

    def test_needs_compression_without_usage(self):
        assert _cm().needs_compression(1000) is False

    def test_needs_compression_threshold(self):
        cm = _cm()
        cm.set_latest_usage(TokenUsage(total_tokens=800))
        assert cm.needs_compression(1000) is False
        cm.set_latest_usage(TokenUsage(total_tokens=801))
        assert cm.needs_compression(1000) is True

    def test_usage_addition(self):
        total = TokenUsage(1, 2, 3, 4) + TokenUsage(10, 20, 30, 40)
        assert total == TokenUsage(11, 22, 33, 44)

    def test_usage_from_missing_dict(self):
        assert TokenUsage.from_dict(None) == TokenUsage()


# ══════════════════════════════════════════════════════════════════
# 4. Compaction preamble
# ══════════════════════════════════════════════════════════════════

class TestReplaceWithSummary:

    def test_three_message_preamble(self):
        cm = _cm()
        for i in range(10):
            cm.add_user_message(f"message {i}")
        cm.replace_with_summary("Did X, Y remains.")
        roles = [m.role for m in cm.messages]
        assert roles == ["user", "assistant", "user"]
        assert cm.messages[0].content.startswith("# Context Restoration (Previous Session Compacted)")
        assert "Did X, Y remains." in cm.messages[0].content
        assert cm.messages[2].content.startswith("Continue with the REMAINING work only")

    def test_system_prompt_survives(self):
        cm = _cm()
        cm.add_user_message("x")
        cm.replace_with_summary("summary")
        assert cm.get_messages()[0]["role"] == "system"

    def test_resets_latest_usage(self):
        cm = _cm()
        cm.add_user_message("x")
        cm.set_latest_usage(TokenUsage(total_tokens=900))
        cm.replace_with_summary("summary")
        assert cm.latest_usage is None
        assert not cm.needs_compression(1000)


# ══════════════════════════════════════════════════════════════════
# 5. Tool-output pruning
# ══════════════════════════════════════════════════════════════════

def _history_with_tool_outputs(count, chars_each=40_000, user_messages=2):
    """Each tool output of 40k chars counts as 10k estimated tokens."""
    cm = _cm()
    for i in range(user_messages):
        cm.add_user_message(f"request {i}")
    for i in range(count):
        cm.add_assistant_message(None, [ToolCall(f"call_{i}", "read_file", {"path": f"f{i}"})])
        cm.add_tool_result(f"call_{i}", "x" * chars_each)
    return cm


class TestPruning:

    def test_prunes_beyond_protected_window(self):
        cm = _history_with_tool_outputs(8)
        pruned = cm.prune_tool_outputs()
        tool_msgs = [m for m in cm.messages if m.role == "tool"]
        # newest 4 (40k tokens) are protected, the older 4 (40k) are freed
        assert pruned == 4
        assert all(m.content == PRUNED_PLACEHOLDER for m in tool_msgs[:4])
        assert all(m.pruned_at is not None for m in tool_msgs[:4])
        assert all(m.content == "x" * 40_000 for m in tool_msgs[4:])

    def test_pruned_token_count_updated(self):
        cm = _history_with_tool_outputs(8)
        cm.prune_tool_outputs()
        oldest = [m for m in cm.messages if m.role == "tool"][0]
        assert oldest.token_count == estimate_tokens(PRUNED_PLACEHOLDER)

    def test_pruning_is_idempotent(self):
        cm = _history_with_tool_outputs(8)
        assert cm.prune_tool_outputs() == 4
        before = [(m.content, m.pruned_at) for m in cm.messages]
        assert cm.prune_tool_outputs() == 0
        assert [(m.content, m.pruned_at) for m in cm.messages] == before

    def test_below_minimum_nothing_pruned(self):
        # 5 outputs: 40k protected, only 10k prunable (< 20k minimum)
        cm = _history_with_tool_outputs(5)
        assert cm.prune_tool_outputs() == 0
        assert all(m.pruned_at is None for m in cm.messages)

    def test_requires_two_user_messages(self):
        cm = _history_with_tool_outputs(8, user_messages=1)
        assert cm.prune_tool_outputs() == 0

    def test_user_messages_never_pruned(self):
        cm = _history_with_tool_outputs(8)
        cm.prune_tool_outputs()
        users = [m for m in cm.messages if m.role == "user"]
        assert [m.content for m in users] == ["request 0", "request 1"]


# ══════════════════════════════════════════════════════════════════
# 6. Replay
# ══════════════════════════════════════════════════════════════════

class TestReplay:

    def test_replay_round_trip(self):
        cm = _cm()
        cm.add_user_message("list files")
        cm.add_assistant_message("Looking.", [ToolCall("call_1", "list_dir", {"path": "."})])
        cm.add_tool_result("call_1", "a.py\nb.py")
        cm.add_assistant_message("Two files.")

        restored = _cm()
        restored.replay([m.to_dict() for m in cm.messages])
        assert restored.get_messages() == cm.get_messages()
        assert [m.token_count for m in restored.messages] == [m.token_count for m in cm.messages]

    def test_replay_skips_unknown_roles(self):
        cm = _cm()
        cm.replay([{"role": "system", "content": "old prompt"}, {"role": "user", "content": "hi"}])
        assert [m.role for m in cm.messages] == ["user"]


# ══════════════════════════════════════════════════════════════════
# 7. LoopDetector
# ══════════════════════════════════════════════════════════════════

class TestLoopDetector:

    def test_empty_history(self):
        assert LoopDetector().check_for_loop() is None

    def test_exact_repeat_three_times(self):
        ld = LoopDetector()
        for _ in range(3):
            ld.record_action("tool_call", tool_name="read_file", args={"path": "a.txt"})
        assert ld.check_for_loop() == "Same action repeated 3 times"

    def test_two_repeats_is_not_a_loop(self):
        ld = LoopDetector()
        for _ in range(2):
            ld.record_action("tool_call", tool_name="read_file", args={"path": "a.txt"})
        assert ld.check_for_loop() is None

    def test_argument_order_does_not_matter(self):
        ld = LoopDetector()
        ld.record_action("tool_call", tool_name="grep", args={"pattern": "x", "path": "."})
        ld.record_action("tool_call", tool_name="grep", args={"path": ".", "pattern": "x"})
        ld.record_action("tool_call", tool_name="grep", args={"pattern": "x", "path": "."})
        assert ld.check_for_loop() is not None

    def test_different_args_no_loop(self):
        ld = LoopDetector()
        for i in range(3):
            ld.record_action("tool_call", tool_name="read_file", args={"path": f"{i}.txt"})
        assert ld.check_for_loop() is None

    def test_cycle_of_two(self):
        ld = LoopDetector()
        for _ in range(3):
            ld.record_action("tool_call", tool_name="read_file", args={"path": "a"})
            ld.record_action("tool_call", tool_name="write_file", args={"path": "a", "content": "x"})
        assert ld.check_for_loop() == "Detected repeating cycle of length 2"

    def test_cycle_of_three(self):
        ld = LoopDetector()
        for _ in range(2):
            ld.record_action("tool_call", tool_name="a", args={})
            ld.record_action("tool_call", tool_name="b", args={})
            ld.record_action("tool_call", tool_name="c", args={})
        assert ld.check_for_loop() == "Detected repeating cycle of length 3"

    def test_response_signatures(self):
        ld = LoopDetector()
        for _ in range(3):
            ld.record_action("response", text="I will check the file.")
        assert ld.check_for_loop() == "Same action repeated 3 times"

    def test_history_is_bounded(self):
        ld = LoopDetector()
        for i in range(50):
            ld.record_action("response", text=str(i))
        assert len(ld) == LoopDetector.HISTORY_SIZE

    def test_clear(self):
        ld = LoopDetector()
        for _ in range(3):
            ld.record_action("response", text="same")
        ld.clear()
        assert ld.check_for_loop() is None
        assert len(ld) == 0


# ══════════════════════════════════════════════════════════════════
# 8. ChatCompactor
# ══════════════════════════════════════════════════════════════════

class TestChatCompactor:

    def _history(self):
        cm = _cm()
        cm.add_user_message("Fix the bug in parser.py")
        cm.add_assistant_message("Reading it.", [ToolCall("call_1", "read_file", {"path": "parser.py"})])
        cm.add_tool_result("call_1", "def parse(): ...")
        cm.add_assistant_message("Found it.")
        return cm

    def test_format_history(self):
        compactor = ChatCompactor(ScriptedClient())
        text = compactor.format_history(self._history().get_messages())
        assert text.startswith(TRANSCRIPT_HEADER)
        assert "You are a test agent." not in text
        assert "User:\nFix the bug in parser.py" in text
        assert "Assistant called tools:\n  - read_file(" in text
        assert "[Tool Result (call_1)]:\ndef parse(): ..." in text

    def test_format_history_clips_tool_output(self):
        compactor = ChatCompactor(ScriptedClient())
        text = compactor.format_history([{"role": "tool", "tool_call_id": "c", "content": "y" * 5000}])
        assert "y" * 2000 in text
        assert "y" * 2001 not in text
        assert "[tool output truncated]" in text

    def test_compress_returns_summary_and_usage(self):
        usage = TokenUsage(prompt_tokens=50, completion_tokens=20, total_tokens=70)
        client = ScriptedClient(completions=[MessageComplete(text="## Summary\nDone X.", usage=usage)])
        summary, got_usage = run(ChatCompactor(client).compress(self._history()))
        assert summary == "## Summary\nDone X."
        assert got_usage == usage
        request, tools = client.requests[0]
        assert request[0]["role"] == "system"
        assert request[1]["content"].startswith(TRANSCRIPT_HEADER)
        assert tools is None

    def test_compress_failure_returns_none(self):
        client = ScriptedClient(completions=[ValueError("bad request")])
        assert run(ChatCompactor(client).compress(self._history())) == (None, None)

    def test_compress_empty_summary_returns_none(self):
        client = ScriptedClient(completions=[MessageComplete(text="", usage=TokenUsage(total_tokens=1))])
        assert run(ChatCompactor(client).compress(self._history())) == (None, None)

    def test_short_history_skipped(self):
        client = ScriptedClient()
        cm = _cm()
        cm.add_user_message("hi")
        assert run(ChatCompactor(client).compress(cm)) == (None, None)
        assert client.requests == []
