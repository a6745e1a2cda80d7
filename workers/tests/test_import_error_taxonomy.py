from cairn_workers.import_adapter import ImportFailedItem
from cairn_workers.import_error_taxonomy import (
    classify_fail_step,
    classify_import_error_code,
    summarize_failed_items,
)


def test_classify_import_error_code_maps_known_codes():
    assert classify_import_error_code("parse_error") == "parse"
    assert classify_import_error_code("mapping_error") == "parse"
    assert classify_import_error_code("validation_error") == "validation"
    assert classify_import_error_code("not_found") == "not_found"
    assert classify_import_error_code("external_resolution_error") == "resolution"


def test_classify_import_error_code_normalizes_and_falls_back():
    assert classify_import_error_code("  PARSE_ERROR ") == "parse"
    assert classify_import_error_code("something_else") == "other"
    assert classify_import_error_code(None) == "other"


def test_fail_steps_are_classified():
    assert classify_fail_step("MediaDetailsFromProvider") == "resolution"
    assert classify_fail_step("InputTransformation") == "parse"
    assert classify_fail_step("Unknown") == "other"


def test_summarize_failed_items_counts_by_class():
    items = [
        ImportFailedItem(step="MediaDetailsFromProvider", identifier="a"),
        ImportFailedItem(step="MediaDetailsFromProvider", identifier="b"),
        ImportFailedItem(step="ReviewConversion", identifier="c"),
    ]
    assert summarize_failed_items(items) == {"resolution": 2, "validation": 1}
