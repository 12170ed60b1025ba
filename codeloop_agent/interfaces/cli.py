"""
CLI Interface — Terminal front-end for the agent.
Renders streamed agent events, asks [y/N] before risky tool calls, and
handles /commands for persistence and session inspection.
"""

from __future__ import annotations
import asyncio
import json
import logging
import sys
from typing import Optional

from ..config.settings import Config
from ..core.agent import Agent
from ..core.agent_events import (
    AGENT_END,
    AGENT_ERROR,
    TEXT_COMPLETE,
    TEXT_DELTA,
    TOOL_CALL_COMPLETE,
    TOOL_CALL_START,
    AgentEvent,
)
from ..core.approval import ApprovalPolicy
from ..core.models import ToolConfirmation
from ..core.persistence import PersistenceManager

logger = logging.getLogger(__name__)


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"


HELP_TEXT = f"""
{Colors.BOLD}Available Commands:{Colors.RESET}

  {Colors.CYAN}/help{Colors.RESET}          Show this help message
  {Colors.CYAN}/clear{Colors.RESET}         Clear conversation history
  {Colors.CYAN}/stats{Colors.RESET}         Show session statistics
  {Colors.CYAN}/config{Colors.RESET}        Show the active configuration
  {Colors.CYAN}/tools{Colors.RESET}         List available tools
  {Colors.CYAN}/mcp{Colors.RESET}           Show MCP server status
  {Colors.CYAN}/approval MODE{Colors.RESET} Show or change the approval policy
  {Colors.CYAN}/save{Colors.RESET}          Save the current session
  {Colors.CYAN}/checkpoint{Colors.RESET}    Save a timestamped checkpoint
  {Colors.CYAN}/checkpoints{Colors.RESET}   List checkpoints of this session
  {Colors.CYAN}/restore ID{Colors.RESET}    Restore a checkpoint
  {Colors.CYAN}/sessions{Colors.RESET}      List saved sessions
  {Colors.CYAN}/resume ID{Colors.RESET}     Restore a saved session
  {Colors.CYAN}/exit{Colors.RESET}          Exit the agent
"""

TOOL_PREVIEW_LINES = 8


class CLI:
    """Interactive terminal interface for the agent."""

    def __init__(
        self,
        config: Config,
        agent: Optional[Agent] = None,
        persistence: Optional[PersistenceManager] = None,
        input_func=input,
    ):
        self.config = config
        self.agent = agent or Agent(config, confirmation_callback=self.confirm)
        self.persistence = persistence or PersistenceManager(config.data_dir)
        self._input = input_func
        self._running = False
        self._streaming_line = False

    # ── Confirmation ───────────────────────────────────────

    def confirm(self, confirmation: ToolConfirmation) -> bool:
        """Blocking [y/N] prompt shown before a tool call needing approval."""
        self._end_stream_line()
        color = Colors.RED if confirmation.is_dangerous else Colors.YELLOW
        print(f"\n  {color}{Colors.BOLD}Approval required:{Colors.RESET} {confirmation.description}")
        if confirmation.command:
            print(f"  {Colors.DIM}$ {confirmation.command}{Colors.RESET}")
        if confirmation.diff is not None:
            diff_text = confirmation.diff.to_diff()
            if diff_text:
                print(f"{Colors.DIM}{diff_text}{Colors.RESET}")
        try:
            answer = self._input("  Proceed? [y/N] ").strip().lower()
        except (EOFError, KeyboardInterrupt):
            return False
        return answer in ("y", "yes")

    # ── Event rendering ────────────────────────────────────

    def _end_stream_line(self) -> None:
        if self._streaming_line:
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._streaming_line = False

    def render_event(self, event: AgentEvent) -> None:
        data = event.data
        if event.type == TEXT_DELTA:
            if not self._streaming_line:
                sys.stdout.write(f"\n{Colors.BOLD}{Colors.GREEN}Agent ▸{Colors.RESET} ")
                self._streaming_line = True
            sys.stdout.write(data["content"])
            sys.stdout.flush()
        elif event.type == TEXT_COMPLETE:
            if not self._streaming_line:
                # Non-streamed text such as an autoplan
                print(f"\n{Colors.BOLD}{Colors.GREEN}Agent ▸{Colors.RESET} {data['content']}")
            self._end_stream_line()
        elif event.type == TOOL_CALL_START:
            self._end_stream_line()
            args = json.dumps(data["arguments"], ensure_ascii=False)
            if len(args) > 120:
                args = args[:117] + "..."
            print(f"  {Colors.DIM}⚙ {Colors.CYAN}{data['name']}{Colors.RESET}{Colors.DIM} {args}{Colors.RESET}")
        elif event.type == TOOL_CALL_COMPLETE:
            self._render_tool_result(data)
        elif event.type == AGENT_ERROR:
            self._end_stream_line()
            print(f"  {Colors.RED}✗ {data['error']}{Colors.RESET}")
        elif event.type == AGENT_END:
            self._end_stream_line()

    def _render_tool_result(self, data: dict) -> None:
        if data["success"]:
            lines = (data.get("output") or "").splitlines()
            print(f"  {Colors.GREEN}✓ {data['name']}{Colors.RESET} {Colors.DIM}({len(lines)} lines){Colors.RESET}")
            for line in lines[:TOOL_PREVIEW_LINES]:
                print(f"    {Colors.DIM}{line}{Colors.RESET}")
            if len(lines) > TOOL_PREVIEW_LINES:
                print(f"    {Colors.DIM}... {len(lines) - TOOL_PREVIEW_LINES} more{Colors.RESET}")
        else:
            print(f"  {Colors.RED}✗ {data['name']}: {data.get('error')}{Colors.RESET}")

    async def process(self, message: str) -> Optional[str]:
        """Send one message to the agent, rendering events; returns the final response."""
        final = None
        async for event in self.agent.run(message):
            self.render_event(event)
            if event.type == AGENT_END:
                final = event.data.get("response")
        return final

    # ── Slash commands ─────────────────────────────────────

    async def handle_command(self, line: str) -> bool:
        """
        Handle slash commands. Returns True if the command was handled,
        False if the line should be sent to the agent.
        """
        parts = line.strip().split(None, 1)
        command = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ""
        session = self.agent.session

        if command == "/help":
            print(HELP_TEXT)
        elif command in ("/exit", "/quit"):
            self._running = False
        elif command == "/clear":
            session.context_manager.clear()
            session.loop_detector.clear()
            print(f"  {Colors.GREEN}✓ Conversation history cleared.{Colors.RESET}\n")
        elif command == "/stats":
            for key, value in session.get_stats().items():
                print(f"  {Colors.BOLD}{key}:{Colors.RESET} {value}")
            print()
        elif command == "/save":
            path = self.persistence.save_session(session.to_snapshot())
            print(f"  {Colors.GREEN}✓ Session saved: {session.session_id}{Colors.RESET} {Colors.DIM}({path}){Colors.RESET}\n")
        elif command == "/checkpoint":
            checkpoint_id = self.persistence.save_checkpoint(session.to_snapshot())
            print(f"  {Colors.GREEN}✓ Checkpoint created: {checkpoint_id}{Colors.RESET}\n")
        elif command == "/checkpoints":
            self._show_checkpoints()
        elif command == "/restore":
            self.restore_checkpoint(arg)
        elif command == "/tools":
            self._show_tools()
        elif command == "/mcp":
            self._show_mcp()
        elif command == "/config":
            self._show_config()
        elif command == "/approval":
            self.set_approval(arg)
        elif command == "/sessions":
            self._show_sessions()
        elif command == "/resume":
            self.resume(arg)
        else:
            return False
        return True

    def _show_sessions(self) -> None:
        sessions = self.persistence.list_sessions()
        if not sessions:
            print(f"  {Colors.DIM}No saved sessions.{Colors.RESET}\n")
            return
        print()
        current_id = self.agent.session.session_id
        for s in sessions:
            marker = " ◀" if s.session_id == current_id else ""
            print(
                f"  {Colors.CYAN}{s.session_id}{Colors.RESET} "
                f"{Colors.DIM}(updated {s.updated_at}, {s.turn_count} turns){Colors.RESET}"
                f"{Colors.GREEN}{marker}{Colors.RESET}"
            )
        print()

    def resume(self, session_id: str) -> bool:
        if not session_id:
            print(f"  {Colors.YELLOW}Usage: /resume SESSION_ID{Colors.RESET}\n")
            return False
        snapshot = self.persistence.load_session(session_id)
        if snapshot is None:
            print(f"  {Colors.RED}Session not found: {session_id}{Colors.RESET}\n")
            return False
        self.agent.session.restore(snapshot)
        logger.info(f"Resumed session {session_id} with {len(snapshot.messages)} messages")
        print(
            f"  {Colors.GREEN}✓ Resumed session {session_id}{Colors.RESET} "
            f"{Colors.DIM}({len(snapshot.messages)} messages){Colors.RESET}\n"
        )
        return True

    def _show_checkpoints(self) -> None:
        checkpoint_ids = self.persistence.list_checkpoints(self.agent.session.session_id)
        if not checkpoint_ids:
            print(f"  {Colors.DIM}No checkpoints for this session.{Colors.RESET}\n")
            return
        print()
        for checkpoint_id in checkpoint_ids:
            print(f"  {Colors.CYAN}{checkpoint_id}{Colors.RESET}")
        print()

    def restore_checkpoint(self, checkpoint_id: str) -> bool:
        if not checkpoint_id:
            print(f"  {Colors.YELLOW}Usage: /restore CHECKPOINT_ID{Colors.RESET}\n")
            return False
        snapshot = self.persistence.load_checkpoint(checkpoint_id)
        if snapshot is None:
            print(f"  {Colors.RED}Checkpoint not found: {checkpoint_id}{Colors.RESET}\n")
            return False
        self.agent.session.restore(snapshot)
        logger.info(f"Restored checkpoint {checkpoint_id}")
        print(
            f"  {Colors.GREEN}✓ Restored checkpoint {checkpoint_id}{Colors.RESET} "
            f"{Colors.DIM}({len(snapshot.messages)} messages){Colors.RESET}\n"
        )
        return True

    # ── Inspection ─────────────────────────────────────────

    def _show_tools(self) -> None:
        tools = self.agent.session.tool_registry.get_tools()
        print(f"\n  {Colors.BOLD}Available tools ({len(tools)}):{Colors.RESET}")
        for tool in tools:
            print(f"  • {Colors.CYAN}{tool.name}{Colors.RESET} {Colors.DIM}[{tool.kind.value}]{Colors.RESET}")
        print()

    def _show_mcp(self) -> None:
        servers = self.agent.session.mcp_manager.get_all_servers()
        if not servers:
            print(f"  {Colors.DIM}No MCP servers configured.{Colors.RESET}\n")
            return
        print(f"\n  {Colors.BOLD}MCP servers ({len(servers)}):{Colors.RESET}")
        for server in servers:
            color = Colors.GREEN if server["status"] == "connected" else Colors.RED
            print(f"  • {server['name']}: {color}{server['status']}{Colors.RESET} ({server['tools']} tools)")
        print()

    def _show_config(self) -> None:
        config = self.config
        rows = [
            ("Provider", config.provider),
            ("Model", config.model_name),
            ("Temperature", config.model.temperature),
            ("Approval", config.approval.value),
            ("Working dir", config.cwd),
            ("Max turns", config.max_turns),
            ("Hooks enabled", config.hooks_enabled),
            ("Autoplan", config.autoplan),
        ]
        print()
        for label, value in rows:
            print(f"  {Colors.BOLD}{label}:{Colors.RESET} {value}")
        print()

    def set_approval(self, mode: str) -> bool:
        approval_manager = self.agent.session.approval_manager
        if not mode:
            print(f"  Current approval policy: {approval_manager.policy.value}\n")
            return False
        try:
            policy = ApprovalPolicy(mode.lower())
        except ValueError:
            choices = ", ".join(p.value for p in ApprovalPolicy)
            print(f"  {Colors.RED}Unknown approval policy: {mode}{Colors.RESET} {Colors.DIM}({choices}){Colors.RESET}\n")
            return False
        self.config.approval = policy
        approval_manager.policy = policy
        print(f"  {Colors.GREEN}✓ Approval policy changed to: {policy.value}{Colors.RESET}\n")
        return True

    # ── Main loops ─────────────────────────────────────────

    def _print_banner(self) -> None:
        print(f"""
{Colors.BOLD}{Colors.CYAN}codeloop-agent{Colors.RESET} {Colors.DIM}{self.config.provider}/{self.config.model_name}{Colors.RESET}

  {Colors.BOLD}Workspace:{Colors.RESET} {self.config.cwd}
  {Colors.BOLD}Approval:{Colors.RESET}  {self.config.approval.value}
  {Colors.DIM}Type your message and press Enter. Use /help for commands, Ctrl+D to exit.{Colors.RESET}
""")

    async def run_single(self, prompt: str) -> Optional[str]:
        await self.agent.initialize()
        return await self.process(prompt)

    async def run(self) -> None:
        """Interactive read-eval loop."""
        await self.agent.initialize()
        self._running = True
        self._print_banner()
        loop = asyncio.get_running_loop()

        while self._running:
            try:
                line = await loop.run_in_executor(
                    None, self._input, f"{Colors.BOLD}{Colors.BLUE}You ▸ {Colors.RESET}"
                )
                line = line.strip()
                if not line:
                    continue
                if line.startswith("/") and await self.handle_command(line):
                    continue
                await self.process(line)
                print()
            except KeyboardInterrupt:
                print(f"\n  {Colors.DIM}(Cancelled){Colors.RESET}\n")
            except EOFError:
                self._running = False

        print(f"\n{Colors.DIM}Session ended.{Colors.RESET}")
