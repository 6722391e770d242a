from collections import defaultdict

import pytest

from kitchen_os.errors import InputValidationError
from kitchen_os.models.recipe_schema import StepType
from kitchen_os.production.scheduler import StepState, build_schedule, build_step_arena


def _starts(plan, kind):
    return sorted(e.time_offset_minutes for e in plan.timeline if e.type is kind)


def assert_valid_schedule(plan, recipes, cooks, burners):
    entries = plan.timeline
    offsets = [e.time_offset_minutes for e in entries]
    assert offsets == sorted(offsets)

    spans = defaultdict(list)
    for e in entries:
        for who in e.assignees:
            spans[who].append((e.time_offset_minutes, e.time_offset_minutes + e.duration_minutes))
    for intervals in spans.values():
        intervals.sort()
        for (_, prev_end), (start, _) in zip(intervals, intervals[1:]):
            assert start >= prev_end

    for t in set(offsets):
        active = [e for e in entries if e.time_offset_minutes <= t < e.time_offset_minutes + e.duration_minutes]
        assert len(active) <= cooks
        assert sum(1 for e in active if e.type is StepType.COOKING) <= burners

    for r in recipes:
        timed = [s for s in r.steps if s.type is not StepType.PRE_START]
        mine = [e for e in entries if e.involved_recipe_names == [r.dish_name]]
        assert [e.action for e in mine] == [s.instruction for s in timed]
        for prev, cur in zip(mine, mine[1:]):
            assert cur.time_offset_minutes >= prev.time_offset_minutes + prev.duration_minutes


def test_two_recipes_enough_burners(make_recipe):
    recipes = [
        make_recipe("Soup", steps=[("prep", 5), ("cooking", 10)]),
        make_recipe("Stew", steps=[("prep", 5), ("cooking", 10)]),
    ]
    plan = build_schedule(recipes, cooks=2, burners=2)
    assert _starts(plan, StepType.PREP) == [0, 0]
    assert _starts(plan, StepType.COOKING) == [5, 5]
    assert plan.total_minutes == 15
    assert_valid_schedule(plan, recipes, 2, 2)


def test_single_burner_serializes_cooking(make_recipe):
    recipes = [
        make_recipe("Soup", steps=[("prep", 5), ("cooking", 10)]),
        make_recipe("Stew", steps=[("prep", 5), ("cooking", 10)]),
    ]
    plan = build_schedule(recipes, cooks=2, burners=1)
    assert _starts(plan, StepType.COOKING) == [5, 15]
    assert plan.total_minutes == 25
    assert_valid_schedule(plan, recipes, 2, 1)


def test_single_cook_runs_everything_in_sequence(make_recipe):
    recipes = [
        make_recipe("Soup", steps=[("prep", 5), ("cooking", 10)]),
        make_recipe("Stew", steps=[("prep", 5), ("cooking", 10)]),
    ]
    plan = build_schedule(recipes, cooks=1, burners=2)
    assert plan.total_minutes == 30
    assert all(e.assignees[0] == "Cook 1" for e in plan.timeline)
    assert not any(e.is_parallel for e in plan.timeline)
    assert_valid_schedule(plan, recipes, 1, 2)


def test_longest_remaining_work_goes_first(make_recipe):
    recipes = [
        make_recipe("Salad", steps=[("prep", 5)]),
        make_recipe("Roast", steps=[("prep", 5), ("cooking", 30)]),
    ]
    plan = build_schedule(recipes, cooks=1, burners=1)
    order = [(e.involved_recipe_names[0], e.time_offset_minutes) for e in plan.timeline]
    assert order == [("Roast", 0), ("Roast", 5), ("Salad", 35)]


def test_ties_follow_recipe_order_and_lowest_ids(make_recipe):
    recipes = [
        make_recipe("First", steps=[("cooking", 10)]),
        make_recipe("Second", steps=[("cooking", 10)]),
    ]
    plan = build_schedule(recipes, cooks=2, burners=2)
    assert [(e.involved_recipe_names, e.assignees) for e in plan.timeline] == [
        (["First"], ["Cook 1", "Burner 1"]),
        (["Second"], ["Cook 2", "Burner 2"]),
    ]
    assert all(e.is_parallel for e in plan.timeline)


def test_prep_runs_while_burner_is_busy(make_recipe):
    recipes = [
        make_recipe("Rice", steps=[("cooking", 20)]),
        make_recipe("Dal", steps=[("cooking", 15)]),
        make_recipe("Salad", steps=[("prep", 10)]),
    ]
    plan = build_schedule(recipes, cooks=2, burners=1)
    starts = {e.involved_recipe_names[0]: e.time_offset_minutes for e in plan.timeline}
    assert starts == {"Rice": 0, "Salad": 0, "Dal": 20}
    assert_valid_schedule(plan, recipes, 2, 1)


def test_pre_start_steps_become_prerequisites(make_recipe):
    recipes = [
        make_recipe(
            "Chana Masala",
            steps=[("pre-start", 480, "Soak chickpeas overnight"), ("prep", 10), ("cooking", 30)],
        )
    ]
    plan = build_schedule(recipes, cooks=1, burners=1)
    assert [(p.recipe_name, p.instruction, p.duration_minutes) for p in plan.prerequisites] == [
        ("Chana Masala", "Soak chickpeas overnight", 480)
    ]
    assert [e.type for e in plan.timeline] == [StepType.PREP, StepType.COOKING]
    assert plan.timeline[0].time_offset_minutes == 0
    assert plan.total_minutes == 40


def test_zero_minute_steps_do_not_stall(make_recipe):
    recipes = [make_recipe("Eggs", steps=[("prep", 0, "Season"), ("cooking", 10, "Fry")])]
    plan = build_schedule(recipes, cooks=1, burners=1)
    assert [(e.action, e.time_offset_minutes) for e in plan.timeline] == [("Season", 0), ("Fry", 0)]
    assert plan.total_minutes == 10


def test_recipes_without_timed_steps(make_recipe):
    recipes = [make_recipe("Pickles", steps=[("pre-start", 60, "Brine")]), make_recipe("Bread")]
    plan = build_schedule(recipes, cooks=1, burners=1)
    assert plan.timeline == []
    assert plan.total_minutes == 0
    assert len(plan.prerequisites) == 1


def test_mixed_menu_respects_all_limits(make_recipe):
    recipes = [
        make_recipe("Biryani", steps=[("prep", 15), ("cooking", 25), ("prep", 5), ("cooking", 20)]),
        make_recipe("Raita", steps=[("prep", 10)]),
        make_recipe("Dal", steps=[("prep", 5), ("cooking", 30), ("cooking", 5)]),
        make_recipe("Kheer", steps=[("cooking", 40), ("prep", 5)]),
        make_recipe("Roti", steps=[("prep", 20), ("cooking", 15)]),
    ]
    for cooks, burners in [(1, 1), (2, 1), (2, 3), (3, 2), (5, 5)]:
        plan = build_schedule(recipes, cooks=cooks, burners=burners)
        assert_valid_schedule(plan, recipes, cooks, burners)
        assert len(plan.timeline) == 12


def test_same_input_same_schedule(make_recipe):
    recipes = [
        make_recipe("Biryani", steps=[("prep", 15), ("cooking", 25)]),
        make_recipe("Dal", steps=[("prep", 15), ("cooking", 25)]),
        make_recipe("Roti", steps=[("prep", 20), ("cooking", 15)]),
    ]
    first = build_schedule(recipes, cooks=2, burners=1)
    second = build_schedule(recipes, cooks=2, burners=1)
    assert first.model_dump() == second.model_dump()


@pytest.mark.parametrize(
    "cooks,burners,message",
    [(0, 1, "cooks must be at least 1"), (1, 0, "burners must be at least 1"), (-1, 2, "cooks")],
)
def test_invalid_resources_fail_fast(make_recipe, cooks, burners, message):
    with pytest.raises(InputValidationError, match=message):
        build_schedule([make_recipe("Soup", steps=[("prep", 5)])], cooks=cooks, burners=burners)


def test_empty_selection_fails_fast():
    with pytest.raises(InputValidationError, match="at least one recipe"):
        build_schedule([], cooks=1, burners=1)


def test_arena_links_each_step_to_its_predecessor(make_recipe):
    recipes = [
        make_recipe("Soup", steps=[("pre-start", 30), ("prep", 5), ("cooking", 10)]),
        make_recipe("Stew", steps=[("cooking", 20)]),
    ]
    nodes, prerequisites = build_step_arena(recipes)
    assert [(n.recipe_name, n.position, n.previous, n.remaining_work) for n in nodes] == [
        ("Soup", 0, None, 15),
        ("Soup", 1, 0, 10),
        ("Stew", 0, None, 20),
    ]
    assert all(n.state is StepState.PENDING for n in nodes)
    assert len(prerequisites) == 1
