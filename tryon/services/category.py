"""Category classification and the static per-category framing tables."""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Iterable, Mapping, Tuple

from tryon.models.category import CategoryConfig, CategoryType

DEFAULT_NEGATIVE_PROMPT = (
    "Blurry, distorted, low quality, cartoon, illustration, painting, watermark, text, logo, "
    "multiple people, deformed, ugly, bad anatomy"
)
STUDIO_BACKGROUND = (
    "Clean, professional studio background with soft lighting. Neutral light-gray gradient."
)

# Ordered: the first matching row wins, so narrower product classes come first.
CATEGORY_KEYWORDS: Tuple[Tuple[CategoryType, Tuple[str, ...]], ...] = (
    (
        CategoryType.FOOTWEAR,
        (
            "footwear", "shoe", "sneaker", "trainer", "boot", "sandal", "heel", "high heel",
            "loafer", "slipper", "flip-flop", "flip flop", "clog", "mule", "oxford",
            "espadrille", "moccasin", "slide", "pump",
        ),
    ),
    (
        CategoryType.BAG,
        (
            "bag", "handbag", "backpack", "purse", "tote", "clutch", "crossbody", "satchel",
            "duffel", "messenger", "hobo", "fanny pack", "belt bag",
        ),
    ),
    (
        CategoryType.EYEWEAR,
        ("eyewear", "sunglasses", "glasses", "spectacles", "goggles", "eyeglasses"),
    ),
    (
        CategoryType.HEADWEAR,
        (
            "headwear", "hat", "cap", "beanie", "beret", "fedora", "helmet", "headband",
            "turban", "bandana", "visor", "bucket hat",
        ),
    ),
    (
        CategoryType.JEWELRY,
        (
            "jewelry", "jewellery", "necklace", "earring", "bracelet", "ring", "pendant",
            "anklet", "brooch", "chain", "choker",
        ),
    ),
    (
        CategoryType.CLOTHING_FULL,
        (
            "dress", "gown", "jumpsuit", "romper", "overalls", "suit", "swimsuit", "tracksuit",
            "onesie", "kimono", "playsuit",
        ),
    ),
    (
        CategoryType.CLOTHING_LOWER,
        (
            "pants", "trousers", "jeans", "shorts", "skirt", "leggings", "joggers", "chinos",
            "sweatpants", "culottes", "cargo",
        ),
    ),
    (
        CategoryType.CLOTHING_UPPER,
        (
            "shirt", "t-shirt", "tee", "top", "blouse", "jacket", "coat", "hoodie", "sweater",
            "sweatshirt", "cardigan", "blazer", "vest", "polo", "tank", "jumper", "parka",
            "tunic", "outerwear", "pullover", "windbreaker", "camisole",
        ),
    ),
    (
        CategoryType.ACCESSORY,
        (
            "accessory", "accessories", "watch", "scarf", "belt", "tie", "bowtie", "glove",
            "wallet", "umbrella", "shawl", "mitten",
        ),
    ),
)


def _keyword_pattern(keywords: Iterable[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(keyword) for keyword in keywords)
    return re.compile(rf"\b(?:{alternatives})(?:s|es)?\b", re.IGNORECASE)


_COMPILED_KEYWORDS: Tuple[Tuple[CategoryType, re.Pattern[str]], ...] = tuple(
    (category, _keyword_pattern(keywords)) for category, keywords in CATEGORY_KEYWORDS
)


_CONFIGS: dict[CategoryType, CategoryConfig] = {
    CategoryType.FOOTWEAR: CategoryConfig(
        type=CategoryType.FOOTWEAR,
        camera_hint="50mm full-body shot, camera at knee height, slight downward angle",
        target_framing="full-body",
        background_instruction=(
            "Clean studio floor with a seamless light-gray backdrop so the shoes stand out."
        ),
        negative_prompt_default=(
            "cropped feet, missing feet, feet out of frame, mismatched shoes, extra legs, "
            "floating shoes"
        ),
        requires_full_body=True,
        product_scale_category="medium",
        product_scale_ratio_to_head=1.1,
        pose_description=(
            "standing naturally facing the camera, both feet on the ground shoulder-width apart"
        ),
        focus_instruction="Both shoes must be fully visible, in sharp focus, and worn on the feet.",
        category_label="footwear",
    ),
    CategoryType.CLOTHING_UPPER: CategoryConfig(
        type=CategoryType.CLOTHING_UPPER,
        camera_hint="85mm three-quarter portrait, camera at chest height",
        target_framing="three-quarter",
        background_instruction=STUDIO_BACKGROUND,
        negative_prompt_default=(
            "wrong garment fit, extra sleeves, distorted collar, garment cut off, extra arms"
        ),
        requires_full_body=False,
        product_scale_category="large",
        product_scale_ratio_to_head=3.0,
        pose_description="relaxed upright stance, arms slightly away from the torso",
        focus_instruction="The garment must be fully visible from collar to hem.",
        category_label="top",
    ),
    CategoryType.CLOTHING_LOWER: CategoryConfig(
        type=CategoryType.CLOTHING_LOWER,
        camera_hint="50mm full-body shot, camera at hip height",
        target_framing="full-body",
        background_instruction=STUDIO_BACKGROUND,
        negative_prompt_default=(
            "cropped legs, legs out of frame, distorted waistband, extra legs, garment cut off"
        ),
        requires_full_body=True,
        product_scale_category="large",
        product_scale_ratio_to_head=3.5,
        pose_description="standing straight with legs slightly apart, weight evenly distributed",
        focus_instruction="The garment must be fully visible from waistband to hem.",
        category_label="bottoms",
    ),
    CategoryType.CLOTHING_FULL: CategoryConfig(
        type=CategoryType.CLOTHING_FULL,
        camera_hint="50mm full-body fashion shot, camera at waist height",
        target_framing="full-body",
        background_instruction=STUDIO_BACKGROUND,
        negative_prompt_default=(
            "garment cut off, cropped hem, distorted silhouette, extra limbs, wrong garment fit"
        ),
        requires_full_body=True,
        product_scale_category="large",
        product_scale_ratio_to_head=5.0,
        pose_description="elegant standing pose facing the camera, one foot slightly forward",
        focus_instruction="The entire garment must be visible from neckline to hem.",
        category_label="outfit",
    ),
    CategoryType.HEADWEAR: CategoryConfig(
        type=CategoryType.HEADWEAR,
        camera_hint="85mm head-and-shoulders portrait, camera at eye level",
        target_framing="head-and-shoulders",
        background_instruction=STUDIO_BACKGROUND,
        negative_prompt_default="hat floating above head, cropped head, distorted head shape",
        requires_full_body=False,
        product_scale_category="small",
        product_scale_ratio_to_head=1.2,
        pose_description="head facing the camera with a slight three-quarter turn",
        focus_instruction="The headwear must sit naturally on the head and be fully in frame.",
        category_label="headwear",
    ),
    CategoryType.EYEWEAR: CategoryConfig(
        type=CategoryType.EYEWEAR,
        camera_hint="85mm close portrait, camera at eye level",
        target_framing="head-and-shoulders",
        background_instruction=STUDIO_BACKGROUND,
        negative_prompt_default="glasses floating, warped lenses, asymmetric frames, hidden eyes",
        requires_full_body=False,
        product_scale_category="small",
        product_scale_ratio_to_head=0.6,
        pose_description="looking straight into the camera, chin level",
        focus_instruction="The frames must rest on the nose and ears with lenses clearly visible.",
        category_label="eyewear",
    ),
    CategoryType.JEWELRY: CategoryConfig(
        type=CategoryType.JEWELRY,
        camera_hint="100mm close-up portrait, shallow depth of field",
        target_framing="mid-shot",
        background_instruction=STUDIO_BACKGROUND,
        negative_prompt_default="oversized jewelry, duplicated jewelry, melted metal, blurry details",
        requires_full_body=False,
        product_scale_category="small",
        product_scale_ratio_to_head=0.3,
        pose_description="relaxed pose that presents the jewelry toward the camera",
        focus_instruction="The jewelry must be in sharp focus and shown at realistic size.",
        category_label="jewelry",
    ),
    CategoryType.BAG: CategoryConfig(
        type=CategoryType.BAG,
        camera_hint="70mm mid-shot, camera at waist height",
        target_framing="mid-shot",
        background_instruction=STUDIO_BACKGROUND,
        negative_prompt_default="bag floating, distorted straps, duplicated bag, wrong bag size",
        requires_full_body=False,
        product_scale_category="medium",
        product_scale_ratio_to_head=1.5,
        pose_description="carrying the bag naturally on the shoulder or in hand",
        focus_instruction="The bag must be carried naturally and shown at realistic size.",
        category_label="bag",
    ),
    CategoryType.ACCESSORY: CategoryConfig(
        type=CategoryType.ACCESSORY,
        camera_hint="70mm mid-shot, camera at chest height",
        target_framing="mid-shot",
        background_instruction=STUDIO_BACKGROUND,
        negative_prompt_default="floating accessory, duplicated accessory, wrong accessory size",
        requires_full_body=False,
        product_scale_category="small",
        product_scale_ratio_to_head=0.8,
        pose_description="natural relaxed pose that presents the accessory clearly",
        focus_instruction="The accessory must be worn naturally and clearly visible.",
        category_label="accessory",
    ),
    CategoryType.UNKNOWN: CategoryConfig(
        type=CategoryType.UNKNOWN,
        camera_hint="70mm mid-shot, camera at chest height",
        target_framing="mid-shot",
        background_instruction=STUDIO_BACKGROUND,
        negative_prompt_default=DEFAULT_NEGATIVE_PROMPT,
        requires_full_body=False,
        product_scale_category="medium",
        product_scale_ratio_to_head=1.0,
        pose_description="natural, confident standing pose",
        focus_instruction="The product must be clearly visible.",
        category_label="product",
    ),
}

CATEGORY_CONFIGS: Mapping[CategoryType, CategoryConfig] = MappingProxyType(_CONFIGS)


def map_category_to_type(detected_category: str | None) -> CategoryType:
    text = (detected_category or "").strip()
    if not text:
        return CategoryType.UNKNOWN
    for category, pattern in _COMPILED_KEYWORDS:
        if pattern.search(text):
            return category
    return CategoryType.UNKNOWN


def get_category_config(category_type: CategoryType) -> CategoryConfig:
    return CATEGORY_CONFIGS.get(category_type, CATEGORY_CONFIGS[CategoryType.UNKNOWN])


class CategoryResolver:
    """Map free-text category labels to a :class:`CategoryType` and its config.

    Total and pure: empty or unrecognised input resolves to ``UNKNOWN``.
    """

    def __init__(self, configs: Mapping[CategoryType, CategoryConfig] = CATEGORY_CONFIGS) -> None:
        self._configs = configs

    def resolve(self, detected_category_text: str | None) -> tuple[CategoryType, CategoryConfig]:
        category_type = map_category_to_type(detected_category_text)
        config = self._configs.get(category_type) or self._configs[CategoryType.UNKNOWN]
        return category_type, config


__all__ = [
    "CATEGORY_CONFIGS",
    "CATEGORY_KEYWORDS",
    "CategoryResolver",
    "DEFAULT_NEGATIVE_PROMPT",
    "STUDIO_BACKGROUND",
    "get_category_config",
    "map_category_to_type",
]
