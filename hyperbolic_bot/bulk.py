"""
Bulk prompt runs: one message with comma separated prompts, answered one by
one with pauses in between.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

from .errors import BulkAlreadyRunning, NoPromptsFound

logger = logging.getLogger(__name__)

SEQUENTIAL = "sequential"
STAGGERED = "staggered"


def split_prompts(raw: str) -> list[str]:
    prompts = [part.strip() for part in raw.split(",")]
    prompts = [p for p in prompts if p]
    if not prompts:
        raise NoPromptsFound()
    return prompts


class BulkSequencer:
    def __init__(
        self,
        policy: str = SEQUENTIAL,
        min_delay: float = 60.0,
        max_delay: float = 120.0,
        stagger_unit: float = 60.0,
        sleep: Callable[[float], Awaitable] | None = None,
        rng: random.Random | None = None,
    ):
        if policy not in (SEQUENTIAL, STAGGERED):
            raise ValueError(f"Unknown bulk policy: {policy}")
        self.policy = policy
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.stagger_unit = stagger_unit
        self._sleep = sleep
        self.rng = rng or random.Random()

    async def run(
        self,
        prompts: list[str],
        run_prompt: Callable[[str], Awaitable],
        notify: Callable[[str], Awaitable],
        cancelled: asyncio.Event,
    ) -> int:
        """Returns how many prompts were actually started."""
        await notify(f"🚀 Processing {len(prompts)} prompts...")
        if self.policy == STAGGERED:
            started = await self._run_staggered(prompts, run_prompt, cancelled)
        else:
            started = await self._run_sequential(prompts, run_prompt, notify, cancelled)

        if cancelled.is_set() and started < len(prompts):
            await notify(f"🛑 Bulk run stopped after {started} of {len(prompts)} prompts.")
        else:
            await notify("✅ *All prompts completed!*")
        return started

    async def _run_sequential(self, prompts, run_prompt, notify, cancelled) -> int:
        started = 0
        for index, prompt in enumerate(prompts):
            if cancelled.is_set():
                break
            started += 1
            await self._run_one(run_prompt, prompt, index)

            if cancelled.is_set():
                break
            if index < len(prompts) - 1:
                delay = self.rng.uniform(self.min_delay, self.max_delay)
                await notify(f"⏳ Next prompt in {delay:.0f}s")
                await self._pause(delay, cancelled)
        return started

    async def _run_staggered(self, prompts, run_prompt, cancelled) -> int:
        # Every prompt gets its own timer up front; later ones may overtake earlier ones.
        async def delayed(index: int, prompt: str) -> bool:
            delay = self.rng.randint(1, 5) * self.stagger_unit * index
            if delay > 0:
                await self._pause(delay, cancelled)
            if cancelled.is_set():
                return False
            await self._run_one(run_prompt, prompt, index)
            return True

        outcomes = await asyncio.gather(*(delayed(i, p) for i, p in enumerate(prompts)))
        return sum(outcomes)

    async def _run_one(self, run_prompt, prompt: str, index: int):
        try:
            await run_prompt(prompt)
        except Exception:
            logger.exception(f"Bulk prompt #{index + 1} failed, continuing with the rest")

    async def _pause(self, seconds: float, cancelled: asyncio.Event):
        if self._sleep is not None:
            await self._sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancelled.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass


@dataclass
class BulkRun:
    task: asyncio.Task
    cancelled: asyncio.Event


class BulkRegistry:
    """At most one bulk run per user."""

    def __init__(self):
        self._runs: dict[str, BulkRun] = {}

    def is_running(self, user_id) -> bool:
        run = self._runs.get(str(user_id))
        return run is not None and not run.task.done()

    def start(self, user_id, job: Callable[[asyncio.Event], Awaitable]) -> BulkRun:
        user_id = str(user_id)
        if self.is_running(user_id):
            raise BulkAlreadyRunning()

        cancelled = asyncio.Event()
        task = asyncio.create_task(job(cancelled), name=f"bulk-{user_id}")
        run = BulkRun(task=task, cancelled=cancelled)
        self._runs[user_id] = run
        task.add_done_callback(lambda t: self._finished(user_id, run))
        return run

    def cancel(self, user_id) -> bool:
        """Lets the in-flight prompt finish but stops any further ones."""
        run = self._runs.get(str(user_id))
        if run is None or run.task.done():
            return False
        run.cancelled.set()
        logger.info(f"Bulk run for user {user_id} cancelled")
        return True

    def _finished(self, user_id: str, run: BulkRun):
        if self._runs.get(user_id) is run:
            del self._runs[user_id]
        if not run.task.cancelled() and run.task.exception() is not None:
            logger.error(f"Bulk run for user {user_id} crashed: {run.task.exception()!r}")

    async def shutdown(self):
        runs = list(self._runs.values())
        if not runs:
            return
        logger.info(f"Stopping {len(runs)} bulk run(s)")
        for run in runs:
            run.cancelled.set()
            run.task.cancel()
        await asyncio.gather(*(run.task for run in runs), return_exceptions=True)
        self._runs.clear()
