import pytest

from conftest import make_image
from tryon.config import KB, MB
from tryon.models.category import CategoryType
from tryon.schemas import ProductMetadata
from tryon.services.category import get_category_config
from tryon.services.validators import (
    DEFAULT_CATEGORY,
    DEFAULT_DESCRIPTION,
    ValidationGate,
    sanitize_category,
    sanitize_description,
)


@pytest.mark.parametrize(
    "size, valid",
    [
        (10 * KB - 1, False),
        (10 * KB, True),
        (10 * MB, True),
        (10 * MB + 1, False),
    ],
)
def test_user_photo_size_bounds_are_inclusive(size, valid):
    result = ValidationGate().validate_user_photo(make_image(size=size))
    assert result.is_valid is valid


def test_user_photo_error_messages():
    gate = ValidationGate()
    too_big = gate.validate_user_photo(make_image(size=10 * MB + 1))
    too_small = gate.validate_user_photo(make_image(size=100))
    assert too_big.errors == ["User photo size exceeds 10MB limit"]
    assert too_small.errors == ["User photo size is too small (minimum 10KB)"]


def test_user_photo_required_and_type_checked():
    gate = ValidationGate()
    assert gate.validate_user_photo(None).errors == ["User photo is required"]
    result = gate.validate_user_photo(make_image(content_type="image/gif"))
    assert not result.is_valid
    assert "invalid file type" in result.errors[0]


def test_product_images_count_and_size():
    gate = ValidationGate()
    assert not gate.validate_product_images([]).is_valid

    six = [make_image(f"p{i}.jpg") for i in range(6)]
    result = gate.validate_product_images(six)
    assert "Maximum 5 product images allowed" in result.errors

    result = gate.validate_product_images([make_image(size=15 * MB), make_image(size=15 * MB + 1)])
    assert result.errors == ["Product image 2 size exceeds 15MB limit"]


def test_empty_filename_is_only_a_warning():
    result = ValidationGate().validate_user_photo(make_image(name=""))
    assert result.is_valid
    assert result.warnings == ["User photo filename is empty or invalid"]


def test_validate_files_merges_results():
    result = ValidationGate().validate_files(make_image(size=1), [])
    assert len(result.errors) == 2


def test_metadata_validation_never_blocks():
    gate = ValidationGate()
    result = gate.validate_metadata(ProductMetadata.model_validate({"productCategory": "Unknown"}))
    assert result.is_valid
    assert "Product category is missing or unknown" in result.warnings
    assert "User characteristics are missing or invalid" in result.warnings
    assert gate.validate_metadata(None).warnings == ["Product metadata is missing"]


def test_prompt_validation():
    gate = ValidationGate()
    config = get_category_config(CategoryType.BAG)

    short = gate.validate_prompt("ONE person with a BAG", config)
    assert not short.is_valid

    padded = "Generate EXACTLY ONE person carrying the BAG. " + "Studio light. " * 20
    assert gate.validate_prompt(padded, config).is_valid
    assert gate.validate_prompt(padded, config).warnings == []

    templated = padded + " {{productName}}"
    result = gate.validate_prompt(templated, config)
    assert not result.is_valid
    assert "{{productName}}" in result.errors[0]

    no_single = padded.replace("ONE person", "a model")
    result = gate.validate_prompt(no_single, config)
    assert result.is_valid
    assert "Prompt may not enforce single person constraint" in result.warnings

    assert not gate.validate_prompt(None, config).is_valid


@pytest.mark.parametrize(
    "url, valid",
    [
        ("https://replicate.delivery/abc/out.png", True),
        ("http://example.com/x.jpg", True),
        ("ftp://example.com/x.jpg", False),
        ("https://", False),
        ("not a url", False),
        ("", False),
        (None, False),
    ],
)
def test_output_url_validation(url, valid):
    assert ValidationGate().validate_output_url(url).is_valid is valid


def test_sanitizers():
    assert sanitize_category("  Running Shoes!!  ") == "Running Shoes"
    assert sanitize_category("@@@") == DEFAULT_CATEGORY
    assert sanitize_category(None) == DEFAULT_CATEGORY
    assert len(sanitize_category("a" * 500)) == 100
    assert sanitize_description("  two\n\n words ") == "two words"
    assert sanitize_description("") == DEFAULT_DESCRIPTION
    assert len(sanitize_description("x" * 5000)) == 1000
