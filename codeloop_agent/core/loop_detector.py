"""
Loop Detector — spots an agent that keeps doing the same thing.

Every model response and every tool call is reduced to a deterministic
signature string and kept in a bounded history.  Two patterns count as a loop:

  * the same signature three times in a row
  * a repeating cycle of length 2 or 3 (e.g. A, B, A, B, A, B)

Detection is advisory: the agent reacts by injecting a corrective user
message, it never aborts the run.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from typing import Any, Optional

logger = logging.getLogger(__name__)


class LoopDetector:
    """Bounded action history with exact-repeat and short-cycle detection."""

    HISTORY_SIZE = 20
    MAX_EXACT_REPEATS = 3
    MAX_CYCLE_LENGTH = 3

    def __init__(self):
        self._history: deque[str] = deque(maxlen=self.HISTORY_SIZE)

    @staticmethod
    def _signature(action_type: str, details: dict[str, Any]) -> str:
        parts = [action_type]
        if action_type == "tool_call":
            parts.append(str(details.get("tool_name", "")))
            args = details.get("args") or {}
            for key in sorted(args):
                value = args[key]
                if not isinstance(value, str):
                    value = json.dumps(value, sort_keys=True, default=str)
                parts.append(f"{key}={value}")
        elif action_type == "response":
            parts.append(str(details.get("text", "")))
        return "|".join(parts)

    def record_action(self, action_type: str, **details: Any) -> None:
        """Record ``tool_call`` (tool_name=, args=) or ``response`` (text=)."""
        self._history.append(self._signature(action_type, details))

    def check_for_loop(self) -> Optional[str]:
        """Return a description of the detected loop, or None."""
        history = list(self._history)
        if len(history) < 2:
            return None

        if len(history) >= self.MAX_EXACT_REPEATS:
            recent = history[-self.MAX_EXACT_REPEATS:]
            if len(set(recent)) == 1:
                return f"Same action repeated {self.MAX_EXACT_REPEATS} times"

        if len(history) >= self.MAX_CYCLE_LENGTH * 2:
            for cycle_len in range(2, min(self.MAX_CYCLE_LENGTH, len(history) // 2) + 1):
                window = history[-cycle_len * 2:]
                if window[:cycle_len] == window[cycle_len:]:
                    return f"Detected repeating cycle of length {cycle_len}"

        return None

    def clear(self) -> None:
        self._history.clear()

    def __len__(self) -> int:
        return len(self._history)
