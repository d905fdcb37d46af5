"""Decide whether the generator has to synthesise missing body parts."""
from __future__ import annotations

from tryon.models.category import BodyVisibility, CategoryConfig, CategoryType, ReconstructionPlan

_VISIBILITY_LABELS = {
    BodyVisibility.HEAD_ONLY: "head only",
    BodyVisibility.UPPER_BODY: "upper body only",
    BodyVisibility.FULL_BODY: "full body",
}

_CATEGORY_ADDENDA = {
    CategoryType.FOOTWEAR: (
        "FOOTWEAR-SPECIFIC RECONSTRUCTION:\n"
        "- Feet must be clearly visible and properly positioned.\n"
        "- Both feet visible, shoulder-width apart.\n"
        "- Natural standing pose with weight evenly distributed.\n"
        "- Shoes must fit naturally on the reconstructed feet.\n"
    ),
    CategoryType.CLOTHING_LOWER: (
        "LOWER BODY CLOTHING-SPECIFIC RECONSTRUCTION:\n"
        "- Legs must be fully visible from hip to ankle.\n"
        "- Natural standing pose with legs straight but not rigid.\n"
        "- Pants, shorts or skirt must fit naturally on the reconstructed lower body.\n"
    ),
}


def needs_reconstruction(config: CategoryConfig, visibility: BodyVisibility) -> bool:
    return config.requires_full_body and visibility is not BodyVisibility.FULL_BODY


def build_instructions(config: CategoryConfig, visibility: BodyVisibility) -> str:
    lines = [
        "BODY RECONSTRUCTION REQUIRED:",
        "",
        f"The user photo shows: {_VISIBILITY_LABELS[visibility]}.",
        f"The category ({config.type.value}) requires: full-body.",
        "",
        "CRITICAL RECONSTRUCTION RULES:",
        "1) Preserve the user's head, face, and upper body EXACTLY from the user image.",
        "2) Reconstruct missing body parts using realistic adult proportions:",
        "   - Shoulder width: approximately 2-2.5 head widths",
        "   - Torso length: approximately 2.5-3 head heights",
        "   - Leg length: approximately 3.5-4 head heights",
        "   - Full body: approximately 7-8 head heights",
        "   Blend smoothly between preserved and reconstructed parts.",
        "3) Dress reconstructed parts in neutral fitted clothing:",
        "   - Simple fitted t-shirt (white, gray, or black)",
        "   - Tapered pants or fitted jeans (dark blue, black, or gray)",
        "4) Still generate ONLY ONE person in ONE pose.",
        "",
    ]
    text = "\n".join(lines) + "\n"
    return text + _CATEGORY_ADDENDA.get(config.type, "")


class ReconstructionPlanner:
    """Pure planner: same inputs always give the same plan."""

    def plan(self, config: CategoryConfig, visibility: BodyVisibility) -> ReconstructionPlan:
        if not needs_reconstruction(config, visibility):
            return ReconstructionPlan(needed=False, instructions=None)
        return ReconstructionPlan(needed=True, instructions=build_instructions(config, visibility))


__all__ = ["ReconstructionPlanner", "build_instructions", "needs_reconstruction"]
