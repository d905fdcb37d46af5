from tryon.models.category import BodyVisibility, CategoryType, ReconstructionPlan
from tryon.schemas import ProductMetadata, UserCharacteristics
from tryon.services.category import DEFAULT_NEGATIVE_PROMPT, get_category_config
from tryon.services.enhancement import enhance
from tryon.services.prompt import (
    FACIAL_FIDELITY_CLAUSE,
    PRODUCT_FIDELITY_CLAUSE,
    SINGLE_PERSON_CLAUSE,
    PromptCompositor,
    enforce_invariants,
    merge_negative_terms,
)
from tryon.services.reconstruction import ReconstructionPlanner
from tryon.services.validators import ValidationGate


def _metadata(category_type, **overrides):
    config = get_category_config(category_type)
    raw = ProductMetadata(
        product_category=overrides.pop("product_category", "Running Shoes"),
        detailed_visual_description="White mesh runners with a neon green foam sole unit.",
        image_generation_prompt=(
            "Show the person standing in the shoes with both feet flat on the studio floor."
        ),
        user_characteristics=overrides.pop("user_characteristics", None),
        **overrides,
    )
    return enhance(raw, "Runner X", None, config).metadata, config


def test_enforce_invariants_injects_missing_clauses():
    config = get_category_config(CategoryType.BAG)
    text, warnings = enforce_invariants("A person holding a bag.", config)

    assert text.startswith(SINGLE_PERSON_CLAUSE)
    assert FACIAL_FIDELITY_CLAUSE in text
    assert PRODUCT_FIDELITY_CLAUSE in text
    assert len(warnings) >= 3


def test_enforce_invariants_is_idempotent():
    config = get_category_config(CategoryType.FOOTWEAR)
    once, _ = enforce_invariants("  shoes on a person  ", config)
    twice, warnings = enforce_invariants(once, config)

    assert once == twice
    assert all("Added" not in warning for warning in warnings)


def test_enforce_invariants_leaves_complete_prompt_alone():
    config = get_category_config(CategoryType.UNKNOWN)
    prompt = (
        "Exactly ONE PERSON. Keep the EXACT FACIAL FEATURES. Render the PRODUCT EXACTLY as shown."
    )
    text, warnings = enforce_invariants(prompt, config)
    assert text == prompt
    assert warnings == []


def test_merge_negative_terms_deduplicates():
    merged = merge_negative_terms("blurry, Cropped feet", "Blurry, watermark.")
    assert merged == "blurry, Cropped feet, watermark"


def test_compose_footwear_with_reconstruction():
    metadata, config = _metadata(CategoryType.FOOTWEAR)
    plan = ReconstructionPlanner().plan(config, BodyVisibility.UPPER_BODY)

    bundle = PromptCompositor().compose(
        metadata, config, plan, ["https://cdn/p0.jpg", "https://cdn/p1.jpg"]
    )

    positive = bundle.positive_prompt
    assert positive.startswith("BODY RECONSTRUCTION REQUIRED:")
    assert "Both feet visible, shoulder-width apart" in positive
    assert "EXACTLY ONE person" in positive
    assert "Category guidance (FOOTWEAR)" in positive
    assert "https://cdn/p0.jpg, https://cdn/p1.jpg" in positive
    assert PRODUCT_FIDELITY_CLAUSE in positive
    assert FACIAL_FIDELITY_CLAUSE in positive
    assert "blurry" in bundle.negative_prompt.lower()


def test_compose_then_finalize_passes_prompt_gate():
    metadata, config = _metadata(CategoryType.FOOTWEAR)
    compositor = PromptCompositor()
    bundle = compositor.finalize(
        compositor.compose(metadata, config, ReconstructionPlan()), config
    )

    result = ValidationGate().validate_prompt(bundle.positive_prompt, config)
    assert result.is_valid
    assert result.warnings == []
    assert bundle.warnings == ()


def test_compose_without_reconstruction_has_no_instructions():
    metadata, config = _metadata(CategoryType.CLOTHING_UPPER, product_category="Leather Jacket")
    plan = ReconstructionPlanner().plan(config, BodyVisibility.UPPER_BODY)

    bundle = PromptCompositor().compose(metadata, config, plan)
    assert "RECONSTRUCTION" not in bundle.positive_prompt
    assert bundle.positive_prompt.startswith("Generate a photorealistic three-quarter image")


def test_bald_user_gets_no_hair_clause():
    traits = UserCharacteristics(gender_hint="male", hair_color="bald", skin_tone="tan")
    metadata, config = _metadata(CategoryType.HEADWEAR, user_characteristics=traits)

    positive = PromptCompositor().compose(metadata, config, ReconstructionPlan()).positive_prompt
    assert "Hair color" not in positive
    assert "The person is male." in positive
    assert "Skin tone: tan." in positive


def test_negative_prompt_falls_back_to_category_default():
    metadata, config = _metadata(CategoryType.EYEWEAR)
    metadata = metadata.model_copy(update={"negative_prompt": None})

    bundle = PromptCompositor().compose(metadata, config, ReconstructionPlan())
    for term in config.negative_prompt_default.split(","):
        assert term.strip().rstrip(".") in bundle.negative_prompt
    assert DEFAULT_NEGATIVE_PROMPT.split(",")[0] in bundle.negative_prompt
