"""Milestone, loop, and guarantee trigger resolution.

Everything here is pure: the same counter and configuration always produce the
same triggers and progress.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from swaply_rewards.models.reward import TriggerFamily
from swaply_rewards.services.rewards.types import SpinsReward


@dataclass(frozen=True)
class MilestoneRule:
    counter: int
    spins: int


@dataclass(frozen=True)
class LoopRule:
    start_at: int
    interval: int
    spins_each: int = 1


@dataclass(frozen=True)
class GuaranteeRule:
    counter: int
    min_points: int


@dataclass(frozen=True)
class TriggerConfig:
    milestones: tuple[MilestoneRule, ...] = ()
    loop: LoopRule | None = None
    guarantee: GuaranteeRule | None = None

    @property
    def milestone_steps(self) -> tuple[int, ...]:
        steps = {rule.counter for rule in self.milestones}
        if self.guarantee is not None:
            steps.add(self.guarantee.counter)
        return tuple(sorted(steps))

    @property
    def milestone_spins_each(self) -> int:
        return self.milestones[0].spins if self.milestones else 0


@dataclass(frozen=True)
class TriggerKey:
    counter: int
    family: TriggerFamily

    def as_dict(self) -> dict[str, Any]:
        return {"counter": self.counter, "family": self.family.value}


@dataclass(frozen=True)
class PointsFloor:
    """Top the point balance up to ``min_points``; the amount depends on the live balance."""

    min_points: int

    def amount_for(self, current_points: int) -> int:
        return max(self.min_points - current_points, 0)


@dataclass(frozen=True)
class TriggerEvent:
    key: TriggerKey
    reward: Union[SpinsReward, PointsFloor]


@dataclass(frozen=True)
class LoopProgress:
    enabled: bool
    start_at: int | None = None
    interval: int | None = None
    next_at: int | None = None
    remaining: int | None = None
    is_grant_point: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "startAt": self.start_at,
            "interval": self.interval,
            "nextAt": self.next_at,
            "remaining": self.remaining,
        }


@dataclass(frozen=True)
class Progress:
    counter: int
    loop: LoopProgress
    milestone_steps: tuple[int, ...] = field(default_factory=tuple)
    milestone_text: str = ""
    loop_text: str | None = None


def build_loop_rule(start_at: Any, interval: Any, spins_each: Any = 1) -> LoopRule | None:
    """Return a loop rule, or ``None`` when it is disabled by missing or non-positive values."""

    start = _to_int(start_at)
    step = _to_int(interval)
    if start < 1 or step < 1:
        return None
    spins = _to_int(spins_each)
    return LoopRule(start_at=start, interval=step, spins_each=spins if spins > 0 else 1)


def loop_progress(counter: int, rule: LoopRule | None) -> LoopProgress:
    if rule is None:
        return LoopProgress(enabled=False)

    if counter < rule.start_at:
        return LoopProgress(
            enabled=True,
            start_at=rule.start_at,
            interval=rule.interval,
            next_at=rule.start_at,
            remaining=rule.start_at - counter,
        )

    offset = (counter - rule.start_at) % rule.interval
    if offset == 0:
        return LoopProgress(
            enabled=True,
            start_at=rule.start_at,
            interval=rule.interval,
            next_at=counter + rule.interval,
            remaining=rule.interval,
            is_grant_point=True,
        )

    remaining = rule.interval - offset
    return LoopProgress(
        enabled=True,
        start_at=rule.start_at,
        interval=rule.interval,
        next_at=counter + remaining,
        remaining=remaining,
    )


def resolve_triggers(counter: int, config: TriggerConfig) -> list[TriggerEvent]:
    """Map a freshly incremented counter to the reward triggers it fires.

    Order is milestone, guarantee, loop so that grants land in a stable sequence.
    """

    events: list[TriggerEvent] = []

    for rule in config.milestones:
        if rule.counter == counter and rule.spins > 0:
            events.append(
                TriggerEvent(
                    key=TriggerKey(counter=counter, family=TriggerFamily.MILESTONE),
                    reward=SpinsReward(amount=rule.spins),
                )
            )
            break

    guarantee = config.guarantee
    if guarantee is not None and guarantee.counter == counter and guarantee.min_points > 0:
        events.append(
            TriggerEvent(
                key=TriggerKey(counter=counter, family=TriggerFamily.GUARANTEE),
                reward=PointsFloor(min_points=guarantee.min_points),
            )
        )

    progress = loop_progress(counter, config.loop)
    if progress.is_grant_point and config.loop is not None:
        events.append(
            TriggerEvent(
                key=TriggerKey(counter=counter, family=TriggerFamily.LOOP),
                reward=SpinsReward(amount=config.loop.spins_each),
            )
        )

    return events


def milestone_progress_text(counter: int, config: TriggerConfig) -> str:
    next_step = next((step for step in config.milestone_steps if step > counter), None)
    if next_step is None:
        return "All milestones completed!"
    guarantee = config.guarantee
    if guarantee is not None and next_step == guarantee.counter:
        return f"{counter}/{next_step} listings to guarantee {guarantee.min_points} points"
    spins = next((rule.spins for rule in config.milestones if rule.counter == next_step), 1)
    noun = "spin" if spins == 1 else "spins"
    return f"{counter}/{next_step} listings to unlock {spins} {noun}"


def loop_progress_text(counter: int, progress: LoopProgress) -> str | None:
    if not progress.enabled or progress.start_at is None:
        return None
    if counter >= progress.start_at:
        remaining = progress.remaining or 0
        return f"{remaining} more {_listings(remaining)} until next spin (#{progress.next_at})"
    remaining = progress.start_at - counter
    return f"{remaining} more {_listings(remaining)} to unlock spin loop (starting at #{progress.start_at})"


def describe_progress(counter: int, config: TriggerConfig) -> Progress:
    """Progress for display; computed even when nothing fires."""

    loop = loop_progress(counter, config.loop)
    return Progress(
        counter=counter,
        loop=loop,
        milestone_steps=config.milestone_steps,
        milestone_text=milestone_progress_text(counter, config),
        loop_text=loop_progress_text(counter, loop),
    )


def _listings(count: int) -> str:
    return "listing" if count == 1 else "listings"


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


__all__ = [
    "GuaranteeRule",
    "LoopProgress",
    "LoopRule",
    "MilestoneRule",
    "PointsFloor",
    "Progress",
    "TriggerConfig",
    "TriggerEvent",
    "TriggerKey",
    "build_loop_rule",
    "describe_progress",
    "loop_progress",
    "loop_progress_text",
    "milestone_progress_text",
    "resolve_triggers",
]
