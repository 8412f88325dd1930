"""
Shared pytest fixtures for vivarium tests.

This module provides common fixtures including:
- FakeClock: controllable millisecond clock for expiry tests
- FakeEnvironment / FakeEnvironmentFactory: environments that count lifecycle
  calls and can be told to fail or stall
"""

import asyncio
import os
import sys
from dataclasses import dataclass, field
from typing import List, Optional

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from vivarium.environment.base import Environment, ExecutionResult, InputFile
from vivarium.session.manager import SessionManager


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_000_000):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms

    def advance_minutes(self, minutes: float) -> None:
        self.advance(int(minutes * 60 * 1000))


# =============================================================================
# Environments
# =============================================================================

class FakeEnvironment(Environment):
    """Environment that records every lifecycle call."""

    def __init__(
        self,
        fail_initialize: bool = False,
        fail_terminate: bool = False,
        fail_release: bool = False,
        init_delay: float = 0,
    ):
        self.fail_initialize = fail_initialize
        self.fail_terminate = fail_terminate
        self.fail_release = fail_release
        self.init_delay = init_delay
        self.initialize_calls = 0
        self.terminate_calls = 0
        self.release_calls = 0
        self.executed: List[str] = []

    async def initialize(self) -> None:
        self.initialize_calls += 1
        if self.init_delay:
            await asyncio.sleep(self.init_delay)
        if self.fail_initialize:
            raise RuntimeError("interpreter failed to boot")

    async def execute(self, code: str, files: Optional[List[InputFile]] = None) -> ExecutionResult:
        self.executed.append(code)
        return ExecutionResult(success=True, stdout=f"ran: {code}\n", exit_code=0)

    async def terminate(self) -> None:
        self.terminate_calls += 1
        if self.fail_terminate:
            raise RuntimeError("terminate exploded")

    async def release(self) -> None:
        self.release_calls += 1
        if self.fail_release:
            raise OSError("release exploded")


@dataclass
class FakeEnvironmentFactory:
    """
    Environment factory with knobs.

    Attributes:
        init_delay: seconds each initialize() stalls for
        fail_initialize: make initialize() raise
        fail_teardown: make terminate() and release() raise on new environments
    """
    init_delay: float = 0
    fail_initialize: bool = False
    fail_teardown: bool = False
    created: List[FakeEnvironment] = field(default_factory=list)

    @property
    def calls(self) -> int:
        return len(self.created)

    @property
    def initialize_calls(self) -> int:
        return sum(env.initialize_calls for env in self.created)

    async def __call__(self) -> Environment:
        env = FakeEnvironment(
            fail_initialize=self.fail_initialize,
            fail_terminate=self.fail_teardown,
            fail_release=self.fail_teardown,
            init_delay=self.init_delay,
        )
        self.created.append(env)
        await env.initialize()
        return env


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    """A fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def factory():
    """A fake environment factory that succeeds by default."""
    return FakeEnvironmentFactory()


@pytest.fixture
def manager(factory, clock):
    """A SessionManager with a 1 minute idle timeout, not started."""
    return SessionManager(factory, idle_timeout_minutes=1, sweep_interval_s=60, clock=clock)
