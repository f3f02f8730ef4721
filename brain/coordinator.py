"""Single-flight admission in front of the shared engine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from app.settings import ABORT_TIMEOUT_SECONDS
from brain.engine import Agent
from brain.errors import Busy, EngineBusy

logger = logging.getLogger("wingman.coordinator")


@dataclass(frozen=True)
class Admission:
    """Outcome of :meth:`GenerationCoordinator.admit`.

    An admitted result carries the engine reservation ticket that the relay
    must hand to ``Agent.prompt``.
    """

    admitted: bool
    ticket: object | None = None

    @property
    def busy(self) -> bool:
        return not self.admitted


BUSY = Admission(admitted=False)


class GenerationCoordinator:
    """Preempt the active generation and admit a new one, or report busy.

    This is not a queue: a request that cannot be admitted within the grace
    period is rejected and the caller is expected to retry.
    """

    def __init__(self, agent: Agent, *, grace_period: float = ABORT_TIMEOUT_SECONDS) -> None:
        self._agent = agent
        self.grace_period = grace_period

    async def admit(self) -> Admission:
        agent = self._agent
        if agent.is_streaming:
            agent.abort()
            try:
                await asyncio.wait_for(agent.wait_for_idle(), timeout=self.grace_period)
            except asyncio.TimeoutError:
                logger.warning("Previous generation did not stop within %.1fs", self.grace_period)
                return BUSY
        try:
            ticket = agent.reserve()
        except EngineBusy:
            # Another request was admitted between idle and resume.
            logger.info("Lost admission race to a concurrent request")
            return BUSY
        return Admission(admitted=True, ticket=ticket)

    async def admit_or_raise(self) -> Admission:
        admission = await self.admit()
        if admission.busy:
            raise Busy()
        return admission


__all__ = ["BUSY", "Admission", "GenerationCoordinator"]
