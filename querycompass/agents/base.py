"""
Base Agent Framework

Abstract base class for all agents in the QueryCompass pipeline.
Provides consistent interface, timing, logging, and error handling.

Usage:
    class MyAgent(BaseAgent):
        def __init__(self, llm_provider=None):
            super().__init__(name="MyAgent")
            self.llm = llm_provider

        async def execute(self, input: AgentInput) -> AgentOutput:
            text = await self._complete(prompt)
            return TextReplyOutput(success=True, text=text, metadata=self._metadata)
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from querycompass.config import get_settings
from querycompass.llm.base import TextCompletion
from querycompass.models.agent import (
    AgentError,
    AgentMetadata,
    AgentOutput,
    LLMError,
)
from querycompass.models.conversation import HistoryMessage

logger = logging.getLogger(__name__)


def format_history(history: list[HistoryMessage]) -> str:
    """Render prior turns as ``User: ...`` / ``Bot: ...`` lines."""
    return "\n".join(f"{turn.speaker}: {turn.text}" for turn in history)


class BaseAgent(ABC):
    """
    Abstract base class for all agents in the QueryCompass pipeline.

    Responsibilities:
        - Define standard interface via execute() method
        - Provide timing and performance tracking
        - Retry recoverable errors (completion faults) with backoff
        - Manage execution metadata

    Attributes:
        name: Unique identifier for this agent
        max_retries: Maximum number of retry attempts on recoverable errors
        llm: Text-completion capability, set by agents that need one

    The __call__ method wraps execute() with timing, error handling
    and metadata collection. Callers always invoke agents through it.
    """

    llm: TextCompletion | None = None

    def __init__(self, name: str, max_retries: int | None = None):
        """
        Initialize base agent.

        Args:
            name: Unique identifier for this agent (e.g., "RouterAgent")
            max_retries: Retry attempts for recoverable errors;
                defaults to LLM_MAX_RETRIES
        """
        self.name = name
        self.max_retries = (
            max_retries if max_retries is not None else get_settings().llm.max_retries
        )
        self._metadata = self._create_metadata()

        logger.debug(
            f"Initialized {self.name}",
            extra={"agent": self.name, "max_retries": self.max_retries},
        )

    @abstractmethod
    async def execute(self, input: Any) -> AgentOutput:
        """
        Execute the agent's core logic.

        Raises:
            AgentError: On execution failures (recoverable or not)
        """
        pass  # pragma: no cover - abstract method

    async def __call__(self, input: BaseModel) -> AgentOutput:
        """
        Execute the agent with timing, logging, and retry handling.

        This method wraps execute() and should NOT be overridden.

        Raises:
            AgentError: If all retry attempts fail or the error is not recoverable
        """
        start_time = time.perf_counter()
        attempt = 0

        logger.info(
            f"Starting {self.name}",
            extra={"agent": self.name, "input_type": type(input).__name__},
        )

        while True:
            try:
                self._metadata = self._create_metadata()
                output = await self.execute(input)

                duration_ms = (time.perf_counter() - start_time) * 1000
                self._metadata.mark_complete()
                self._metadata.duration_ms = duration_ms
                output.metadata = self._metadata

                logger.info(
                    f"Completed {self.name}",
                    extra={
                        "agent": self.name,
                        "success": output.success,
                        "duration_ms": duration_ms,
                        "attempt": attempt + 1,
                        "llm_calls": self._metadata.llm_calls,
                    },
                )
                return output

            except AgentError as e:
                attempt += 1
                logger.warning(
                    f"Agent error in {self.name}",
                    extra={
                        "agent": self.name,
                        "error": str(e),
                        "recoverable": e.recoverable,
                        "attempt": attempt,
                        "max_retries": self.max_retries,
                    },
                )

                if not e.recoverable or attempt > self.max_retries:
                    duration_ms = (time.perf_counter() - start_time) * 1000
                    self._metadata.mark_complete()
                    self._metadata.duration_ms = duration_ms
                    self._metadata.error = str(e)
                    logger.error(
                        f"Failed {self.name} after {attempt} attempts",
                        extra={
                            "agent": self.name,
                            "error": str(e),
                            "duration_ms": duration_ms,
                            "attempts": attempt,
                        },
                    )
                    raise

                wait_time = 2 ** (attempt - 1)  # 1s, 2s, 4s, ...
                logger.info(
                    f"Retrying {self.name} in {wait_time}s",
                    extra={"agent": self.name, "wait_time": wait_time},
                )
                await self._sleep(wait_time)

            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                self._metadata.mark_complete()
                self._metadata.error = str(e)
                logger.error(
                    f"Unexpected error in {self.name}",
                    extra={
                        "agent": self.name,
                        "error_type": type(e).__name__,
                        "duration_ms": duration_ms,
                    },
                    exc_info=True,
                )
                raise AgentError(
                    agent=self.name,
                    message=f"Unexpected error: {str(e)}",
                    recoverable=False,
                    context={"error_type": type(e).__name__},
                ) from e

    async def _complete(self, prompt: str, temperature: float | None = None) -> str:
        """
        Call the text-completion capability.

        Provider faults are wrapped in LLMError so __call__ retries them.
        """
        if self.llm is None:
            raise AgentError(self.name, "No text-completion provider configured", recoverable=False)
        self._track_llm_call()
        try:
            return await self.llm.complete(prompt, temperature=temperature)
        except Exception as e:
            raise LLMError(
                self.name,
                f"Completion failed: {e}",
                context={"error_type": type(e).__name__},
            ) from e

    def _create_metadata(self) -> AgentMetadata:
        return AgentMetadata(agent_name=self.name)

    def _track_llm_call(self) -> None:
        """Count a completion request in the current metadata."""
        self._metadata.llm_calls += 1

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
