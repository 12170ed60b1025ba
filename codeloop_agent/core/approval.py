"""
Approval Manager — decides whether a mutating tool call may run.

The decision depends on the configured approval policy, on pattern checks of
shell commands (dangerous patterns always win over safe ones), on whether the
touched paths stay inside the working directory, and on the tool's own
danger flag.  A decision of NEEDS_CONFIRMATION is resolved by the
confirmation callback supplied by the interface (the CLI asks [y/N]).
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .models import ToolConfirmation

logger = logging.getLogger(__name__)


class ApprovalPolicy(str, Enum):
    ON_REQUEST = "on-request"
    ON_FAILURE = "on-failure"
    AUTO = "auto"
    AUTO_EDIT = "auto-edit"
    NEVER = "never"
    YOLO = "yolo"


class ApprovalDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_CONFIRMATION = "needs_confirmation"


# ─────────────────────────────────────────────────────────────
# Command patterns
# ─────────────────────────────────────────────────────────────

DANGEROUS_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE) for p in (
        # Filesystem destruction
        r"rm\s+(-rf?|--recursive)\s+[/~]",
        r"rm\s+-rf?\s+\*",
        r"rmdir\s+[/~]",
        r"dd\s+if=",
        r"mkfs",
        r"fdisk",
        r"parted",
        # System state
        r"shutdown",
        r"reboot",
        r"halt",
        r"poweroff",
        r"init\s+[06]",
        # Permissions
        r"chmod\s+(-R\s+)?777\s+[/~]",
        r"chown\s+-R\s+.*\s+[/~]",
        # Listeners and remote scripts
        r"nc\s+-l",
        r"netcat\s+-l",
        r"curl\s+.*\|\s*(bash|sh)",
        r"wget\s+.*\|\s*(bash|sh)",
        # Fork bomb
        r":\(\)\s*\{\s*:\|:&\s*\}\s*;",
    )
]

SAFE_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE) for p in (
        r"^(ls|dir|pwd|cd|echo|cat|head|tail|less|more|wc)(\s|$)",
        r"^(find|locate|which|whereis|file|stat)(\s|$)",
        r"^git\s+(status|log|diff|show|branch|remote|tag)(\s|$)",
        r"^(npm|yarn|pnpm)\s+(list|ls|outdated)(\s|$)",
        r"^pip\s+(list|show|freeze)(\s|$)",
        r"^cargo\s+(tree|search)(\s|$)",
        r"^(grep|awk|sed|cut|sort|uniq|tr|diff|comm)(\s|$)",
        r"^(date|cal|uptime|whoami|id|groups|hostname|uname)(\s|$)",
        r"^(env|printenv|set)$",
        r"^(ps|top|htop|pgrep)(\s|$)",
    )
]


def is_dangerous_command(command: str) -> bool:
    return any(p.search(command) for p in DANGEROUS_PATTERNS)


def is_safe_command(command: str) -> bool:
    return any(p.search(command) for p in SAFE_PATTERNS)


def is_within(path: str, root: str) -> bool:
    """True when *path* (relative paths resolve against *root*) stays under *root*."""
    root = os.path.realpath(root)
    resolved = os.path.realpath(os.path.join(root, path))
    try:
        return os.path.commonpath([resolved, root]) == root
    except ValueError:
        return False


@dataclass
class ApprovalContext:
    """Everything the policy needs to know about one pending call."""
    tool_name: str
    params: dict
    is_mutating: bool
    affected_paths: list[str] = field(default_factory=list)
    command: Optional[str] = None
    is_dangerous: bool = False

    @classmethod
    def from_confirmation(cls, confirmation: ToolConfirmation, is_mutating: bool = True) -> "ApprovalContext":
        return cls(
            tool_name=confirmation.tool_name,
            params=confirmation.params,
            is_mutating=is_mutating,
            affected_paths=list(confirmation.affected_paths),
            command=confirmation.command,
            is_dangerous=confirmation.is_dangerous,
        )


ConfirmationCallback = Callable[[ToolConfirmation], bool]


class ApprovalManager:
    """Policy-driven gate in front of every mutating tool call."""

    def __init__(
        self,
        policy: ApprovalPolicy = ApprovalPolicy.ON_REQUEST,
        cwd: str = ".",
        confirmation_callback: Optional[ConfirmationCallback] = None,
    ):
        self.policy = ApprovalPolicy(policy)
        self.cwd = os.path.abspath(cwd)
        self.confirmation_callback = confirmation_callback

    def assess_command(self, command: str) -> ApprovalDecision:
        policy = self.policy
        if policy == ApprovalPolicy.YOLO:
            return ApprovalDecision.APPROVED
        if is_dangerous_command(command):
            return ApprovalDecision.REJECTED
        if policy == ApprovalPolicy.NEVER:
            return ApprovalDecision.APPROVED if is_safe_command(command) else ApprovalDecision.REJECTED
        if policy in (ApprovalPolicy.AUTO, ApprovalPolicy.ON_FAILURE):
            return ApprovalDecision.APPROVED
        # on-request and auto-edit
        if is_safe_command(command):
            return ApprovalDecision.APPROVED
        return ApprovalDecision.NEEDS_CONFIRMATION

    def check_approval(self, context: ApprovalContext) -> ApprovalDecision:
        if not context.is_mutating:
            return ApprovalDecision.APPROVED

        decision = ApprovalDecision.APPROVED
        if context.command:
            decision = self.assess_command(context.command)
            if decision == ApprovalDecision.REJECTED:
                return decision

        if self.policy != ApprovalPolicy.YOLO:
            for target in context.affected_paths:
                if not is_within(target, self.cwd):
                    logger.info(f"{context.tool_name}: path outside working directory: {target}")
                    return ApprovalDecision.NEEDS_CONFIRMATION

        if decision == ApprovalDecision.NEEDS_CONFIRMATION:
            return decision

        if context.is_dangerous:
            if self.policy == ApprovalPolicy.YOLO:
                return ApprovalDecision.APPROVED
            return ApprovalDecision.NEEDS_CONFIRMATION

        return ApprovalDecision.APPROVED

    def request_confirmation(self, confirmation: ToolConfirmation) -> bool:
        """Ask the interface; with no callback installed the call is approved."""
        if self.confirmation_callback is None:
            return True
        return bool(self.confirmation_callback(confirmation))
