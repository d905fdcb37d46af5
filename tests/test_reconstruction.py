import pytest

from tryon.models.category import BodyVisibility, CategoryType
from tryon.services.category import get_category_config
from tryon.services.reconstruction import ReconstructionPlanner, needs_reconstruction


@pytest.mark.parametrize("category_type", list(CategoryType))
@pytest.mark.parametrize("visibility", list(BodyVisibility))
def test_needs_reconstruction_truth_table(category_type, visibility):
    config = get_category_config(category_type)
    expected = config.requires_full_body and visibility is not BodyVisibility.FULL_BODY
    assert needs_reconstruction(config, visibility) is expected


def test_full_body_photo_never_needs_reconstruction():
    plan = ReconstructionPlanner().plan(
        get_category_config(CategoryType.FOOTWEAR), BodyVisibility.FULL_BODY
    )
    assert plan.needed is False
    assert plan.instructions is None


def test_footwear_plan_has_feet_addendum():
    plan = ReconstructionPlanner().plan(
        get_category_config(CategoryType.FOOTWEAR), BodyVisibility.UPPER_BODY
    )
    assert plan.needed is True
    text = plan.instructions
    assert "The user photo shows: upper body only." in text
    assert "The category (FOOTWEAR) requires: full-body." in text
    assert "Both feet visible, shoulder-width apart" in text
    assert "ONLY ONE person" in text

    # rules appear in order
    positions = [text.index(f"{n})") for n in range(1, 5)]
    assert positions == sorted(positions)


def test_lower_body_plan_has_leg_addendum():
    plan = ReconstructionPlanner().plan(
        get_category_config(CategoryType.CLOTHING_LOWER), BodyVisibility.HEAD_ONLY
    )
    assert "hip to ankle" in plan.instructions
    assert "head only" in plan.instructions
    assert "FOOTWEAR-SPECIFIC" not in plan.instructions


def test_full_garment_plan_has_no_addendum():
    plan = ReconstructionPlanner().plan(
        get_category_config(CategoryType.CLOTHING_FULL), BodyVisibility.UPPER_BODY
    )
    assert plan.needed is True
    assert "SPECIFIC RECONSTRUCTION" not in plan.instructions


def test_planner_is_deterministic():
    planner = ReconstructionPlanner()
    config = get_category_config(CategoryType.FOOTWEAR)
    assert planner.plan(config, BodyVisibility.HEAD_ONLY) == planner.plan(
        config, BodyVisibility.HEAD_ONLY
    )
