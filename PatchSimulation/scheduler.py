"""Fixed-order, single-threaded simulation clock.

One tick: the environment grows, the input controller admits new cells, every
scheduled agent steps in insertion order, the clock advances and the
collectors sample the new state. Agents stopped during a tick are purged
before the next one; agents created during a tick join at the next one.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from PatchSimulation.errors import PlacementExhaustion

logger = logging.getLogger(__name__)


class Scheduler:
    """Drives a ``SimulationContext`` until its run length is reached."""

    def __init__(self, context, input_controller=None, collectors: Optional[List[object]] = None) -> None:
        self.context = context
        self.input_controller = input_controller
        self.collectors: List[object] = list(collectors or [])
        self.started = False

    def start(self) -> None:
        self.context.commit_schedule()
        for collector in self.collectors:
            collector.start(self.context)
        self.started = True

    def tick(self) -> None:
        context = self.context
        if not self.started:
            self.start()
        context.environment.grow(context.step_count)
        if self.input_controller is not None:
            self.input_controller.step(context)
        for agent in context.agents:
            if agent.stopped:
                continue
            try:
                agent.step(context)
            except (PlacementExhaustion, LookupError) as exc:
                logger.warning("Skipped %s at step %d: %s", agent, context.step_count, exc)
        context.step_count += 1
        for collector in self.collectors:
            collector.step(context)
        context.commit_schedule()
        if context.step_count % max(context.total_steps // 10, 1) == 0:
            logger.info(
                "Step %d/%d: %d agents, tract %.1f x %.1f",
                context.step_count,
                context.total_steps,
                len(context.agents),
                context.environment.width,
                context.environment.height,
            )

    def run(self) -> list:
        """Tick until the run length is reached, flush collectors and tear down."""
        if not self.started:
            self.start()
        while not self.context.is_finished():
            self.tick()
        results = [collector.finish(self.context) for collector in self.collectors]
        self.context.teardown()
        return results
