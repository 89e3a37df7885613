"""
COMPLETION_ENGINE
=================

The completion engine is an external collaborator: claw_core never runs
inference itself. This module defines the interface the flush coordinator
and the compaction summarizer consume, plus two adapters:

``TimeoutCompletionEngine``
    Wraps any engine so a call never blocks longer than a bound. The call
    runs on the engine's own small thread pool and the caller waits on the
    future, the same way tool execution is bounded. A call that is still
    running when it times out cannot be cancelled, so its pool is retired
    and later calls go to a fresh one.

``HttpCompletionEngine``
    Talks to an OpenAI-compatible ``/chat/completions`` endpoint.

Engines raise ``CompletionError`` on failure and ``CompletionTimeout`` when
the bound is exceeded; callers decide whether that is retryable.
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Dict, List, Optional, Sequence

import requests

from ..errors import CompletionError, CompletionTimeout
from ..models import ConversationTurn, Role
from ..tokens import count_message_tokens

logger = logging.getLogger(__name__)


class CompletionEngine(ABC):
    """Produces one assistant turn from a turn sequence plus an instruction."""

    @abstractmethod
    def complete(
        self,
        turns: Sequence[ConversationTurn],
        instruction: str = "",
    ) -> ConversationTurn:
        """
        Request one completion.

        Args:
            turns: Conversation so far, oldest first
            instruction: System-level instruction for this request

        Returns:
            The assistant turn

        Raises:
            CompletionError: The engine failed
            CompletionTimeout: The engine did not answer in time
        """
        pass


class TimeoutCompletionEngine(CompletionEngine):
    """Bound the latency of another engine."""

    DEFAULT_TIMEOUT = 60  # seconds
    MAX_WORKERS = 4

    def __init__(
        self,
        inner: CompletionEngine,
        timeout_seconds: float = DEFAULT_TIMEOUT,
        max_workers: int = MAX_WORKERS,
    ):
        self.inner = inner
        self.timeout_seconds = timeout_seconds
        self.max_workers = max_workers
        self._lock = threading.Lock()
        self._executor = self._new_executor()

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="clawcore-completion"
        )

    def _retire(self, executor: ThreadPoolExecutor) -> None:
        """Route later calls to a fresh pool; the hung call keeps its thread until it returns."""
        with self._lock:
            if self._executor is executor:
                self._executor = self._new_executor()
        executor.shutdown(wait=False)
        logger.warning("Completion worker hung past its timeout, completion pool replaced")

    def shutdown(self) -> None:
        with self._lock:
            executor = self._executor
        executor.shutdown(wait=False)

    def complete(
        self,
        turns: Sequence[ConversationTurn],
        instruction: str = "",
    ) -> ConversationTurn:
        with self._lock:
            executor = self._executor
            future = executor.submit(self.inner.complete, list(turns), instruction)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FuturesTimeoutError:
            if not future.cancel():
                self._retire(executor)
            raise CompletionTimeout(
                f"Completion timed out after {self.timeout_seconds} seconds"
            )
        except CompletionError:
            raise
        except Exception as e:
            raise CompletionError(f"Completion engine error: {e}") from e


class HttpCompletionEngine(CompletionEngine):
    """OpenAI-compatible chat completions over HTTP."""

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 60.0,
        max_tokens: int = 1024,
        temperature: float = 0.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature

    @classmethod
    def from_config(cls, llm_config) -> "HttpCompletionEngine":
        """Build from an LLMConfig; the API key comes from the environment."""
        return cls(
            base_url=llm_config.base_url,
            model=llm_config.model,
            api_key=os.environ.get(llm_config.api_key_env),
            timeout_seconds=llm_config.timeout_seconds,
            max_tokens=llm_config.max_tokens,
            temperature=llm_config.temperature,
        )

    def _build_messages(
        self, turns: Sequence[ConversationTurn], instruction: str
    ) -> List[Dict[str, str]]:
        messages = []
        if instruction:
            messages.append({"role": Role.SYSTEM.value, "content": instruction})
        messages.extend(turn.to_message() for turn in turns)
        return messages

    def complete(
        self,
        turns: Sequence[ConversationTurn],
        instruction: str = "",
    ) -> ConversationTurn:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {
            "model": self.model,
            "messages": self._build_messages(turns, instruction),
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        try:
            resp = requests.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=headers,
                timeout=self.timeout_seconds,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.Timeout as e:
            raise CompletionTimeout(f"POST /chat/completions timed out: {e}") from e
        except (requests.RequestException, ValueError) as e:
            raise CompletionError(f"POST /chat/completions failed: {e}") from e

        try:
            content = data["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise CompletionError(f"Malformed completion response: {e}") from e

        usage = data.get("usage") or {}
        token_count = usage.get("completion_tokens") or count_message_tokens(content)
        logger.debug("Completion from %s: %d tokens", self.model, token_count)

        return ConversationTurn.assistant(content, token_count=token_count)
