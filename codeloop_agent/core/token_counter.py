"""
Token Counter — model-aware token counting backed by tiktoken.

Resolution order for a model name:
  1. ``tiktoken.encoding_for_model(model)``
  2. the ``cl100k_base`` encoding
  3. a chars-per-token estimate (FALLBACK_RATIO)

An empty model name skips tiktoken entirely and uses the estimate, which keeps
counting deterministic for offline use.
"""

from __future__ import annotations

import logging
from typing import Optional

import tiktoken

logger = logging.getLogger(__name__)

FALLBACK_RATIO = 4
DEFAULT_ENCODING = "cl100k_base"


def estimate_tokens(text: str) -> int:
    """Crude chars/4 estimate, never below 1 for non-empty text."""
    if not text:
        return 0
    return max(1, len(text) // FALLBACK_RATIO)


class TokenCounter:
    """Counts tokens for one model; the encoder is resolved lazily and cached."""

    def __init__(self, model: str = ""):
        self.model = model
        self._encoding: Optional[tiktoken.Encoding] = None
        self._resolved = False

    def _resolve(self) -> Optional[tiktoken.Encoding]:
        if self._resolved:
            return self._encoding
        self._resolved = True
        if not self.model:
            return None
        try:
            self._encoding = tiktoken.encoding_for_model(self.model)
        except KeyError:
            try:
                self._encoding = tiktoken.get_encoding(DEFAULT_ENCODING)
            except Exception as e:
                logger.debug(f"tiktoken unavailable, estimating tokens: {e}")
        except Exception as e:
            logger.debug(f"tiktoken unavailable, estimating tokens: {e}")
        return self._encoding

    def count(self, text: Optional[str]) -> int:
        if not text:
            return 0
        encoding = self._resolve()
        if encoding is None:
            return estimate_tokens(text)
        return len(encoding.encode(text, disallowed_special=()))
