"""Production scheduler: interleave several recipes' timed steps.

Steps of one recipe run strictly in order. Every running step holds one cook
for its whole duration (cooking is attended); a ``cooking`` step also holds a
burner. At each decision time finished steps are released and eligible steps
are started greedily, most remaining recipe work first, then earlier recipe,
then earlier step. The lowest-numbered free cook and burner are assigned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from kitchen_os.errors import InputValidationError
from kitchen_os.models.recipe_schema import Recipe, RecipeStep, StepType
from kitchen_os.models.views import Prerequisite, ProductionSchedule, TimelineEntry

logger = logging.getLogger(__name__)


class StepState(str, Enum):
    PENDING = "pending"
    ELIGIBLE = "eligible"
    SCHEDULED = "scheduled"
    COMPLETE = "complete"


@dataclass
class StepNode:
    index: int
    recipe_order: int
    position: int
    recipe_name: str
    step: RecipeStep
    previous: Optional[int]
    remaining_work: int
    state: StepState = StepState.PENDING
    start: Optional[int] = None

    @property
    def needs_burner(self) -> bool:
        return self.step.type is StepType.COOKING

    def priority(self) -> Tuple[int, int, int]:
        return (-self.remaining_work, self.recipe_order, self.position)


def _validate(recipes: Sequence[Recipe], cooks: int, burners: int) -> None:
    problems = []
    if cooks < 1:
        problems.append(f"cooks must be at least 1 (got {cooks})")
    if burners < 1:
        problems.append(f"burners must be at least 1 (got {burners})")
    if not recipes:
        problems.append("select at least one recipe to schedule")
    if problems:
        raise InputValidationError("; ".join(problems))


def build_step_arena(recipes: Sequence[Recipe]) -> Tuple[List[StepNode], List[Prerequisite]]:
    """Flatten recipes into step nodes linked by an explicit ``previous`` index.

    Pre-start steps are pulled out as prerequisites and take no part in the chain.
    """
    nodes: List[StepNode] = []
    prerequisites: List[Prerequisite] = []
    for order, recipe in enumerate(recipes):
        chain: List[RecipeStep] = []
        for step in recipe.steps:
            if step.type is StepType.PRE_START:
                prerequisites.append(
                    Prerequisite(
                        recipe_name=recipe.dish_name,
                        instruction=step.instruction,
                        duration_minutes=step.duration_minutes,
                    )
                )
            else:
                chain.append(step)

        tails: List[int] = []
        remaining = 0
        for step in reversed(chain):
            remaining += step.duration_minutes
            tails.append(remaining)
        tails.reverse()

        previous: Optional[int] = None
        for pos, step in enumerate(chain):
            node = StepNode(
                index=len(nodes),
                recipe_order=order,
                position=pos,
                recipe_name=recipe.dish_name,
                step=step,
                previous=previous,
                remaining_work=tails[pos],
            )
            nodes.append(node)
            previous = node.index
    return nodes, prerequisites


def _mark_parallel(timeline: List[TimelineEntry]) -> None:
    for a in timeline:
        a_end = a.time_offset_minutes + a.duration_minutes
        for b in timeline:
            if a is b:
                continue
            b_end = b.time_offset_minutes + b.duration_minutes
            if a.time_offset_minutes < b_end and b.time_offset_minutes < a_end:
                a.is_parallel = True
                break


def build_schedule(recipes: Iterable[Recipe], cooks: int, burners: int) -> ProductionSchedule:
    """Interleave the recipes' prep and cooking steps into one timeline.

    Raises InputValidationError before scheduling anything when the cook or
    burner count is below 1, when no recipe is given, or when some step can
    never become eligible.
    """
    recipes = list(recipes)
    _validate(recipes, cooks, burners)
    nodes, prerequisites = build_step_arena(recipes)

    free_cooks = list(range(1, cooks + 1))
    free_burners = list(range(1, burners + 1))
    # (end, node index, cook, burner)
    running: List[Tuple[int, int, int, Optional[int]]] = []
    timeline: List[TimelineEntry] = []
    now = 0
    done = 0
    makespan = 0

    while done < len(nodes):
        still_running = []
        for end, idx, cook, burner in running:
            if end <= now:
                nodes[idx].state = StepState.COMPLETE
                done += 1
                free_cooks.append(cook)
                if burner is not None:
                    free_burners.append(burner)
            else:
                still_running.append((end, idx, cook, burner))
        running = still_running
        free_cooks.sort()
        free_burners.sort()

        for node in nodes:
            if node.state is StepState.PENDING and (
                node.previous is None or nodes[node.previous].state is StepState.COMPLETE
            ):
                node.state = StepState.ELIGIBLE

        instant = False
        eligible = sorted((n for n in nodes if n.state is StepState.ELIGIBLE), key=StepNode.priority)
        for node in eligible:
            if not free_cooks:
                break
            if node.needs_burner and not free_burners:
                continue
            cook = free_cooks.pop(0)
            burner = free_burners.pop(0) if node.needs_burner else None
            node.state = StepState.SCHEDULED
            node.start = now
            end = now + node.step.duration_minutes
            makespan = max(makespan, end)
            running.append((end, node.index, cook, burner))

            assignees = [f"Cook {cook}"]
            if burner is not None:
                assignees.append(f"Burner {burner}")
            timeline.append(
                TimelineEntry(
                    time_offset_minutes=now,
                    duration_minutes=node.step.duration_minutes,
                    action=node.step.instruction,
                    type=node.step.type,
                    involved_recipe_names=[node.recipe_name],
                    assignees=assignees,
                )
            )
            if end == now:
                instant = True

        if instant:
            # zero-length steps finish immediately; release them at the same instant
            continue
        if not running:
            if done < len(nodes):
                stuck = [f"{n.recipe_name} step {n.position + 1}" for n in nodes if n.state is not StepState.COMPLETE]
                raise InputValidationError("steps can never become eligible: " + ", ".join(stuck))
            break
        now = min(end for end, _, _, _ in running)

    _mark_parallel(timeline)
    logger.info(
        "build_schedule: %d recipes, %d timed steps, %d prerequisites, cooks=%d burners=%d -> %d min",
        len(recipes),
        len(nodes),
        len(prerequisites),
        cooks,
        burners,
        makespan,
    )
    return ProductionSchedule(
        cooks=cooks,
        burners=burners,
        total_minutes=makespan,
        prerequisites=prerequisites,
        timeline=timeline,
    )
