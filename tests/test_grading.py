from decimal import Decimal

import pytest
from pydantic import ValidationError

from exam_scheduler.core.exceptions import GradingConfigError
from exam_scheduler.schemas.exam import GradeBand
from exam_scheduler.services.grading import validate_grading


def band(label, low, high):
    return GradeBand(label=label, min_percentage=Decimal(low), max_percentage=Decimal(high))


def test_valid_scheme_is_returned_sorted():
    bands = [band("A", "80", "100"), band("F", "0", "39"), band("C", "40", "79")]

    result = validate_grading(True, bands, Decimal("40"))

    assert [b.label for b in result] == ["F", "C", "A"]
    # input left as given
    assert [b.label for b in bands] == ["A", "F", "C"]


def test_adjacent_integer_bands_are_allowed():
    bands = [band("A", "60", "100"), band("B", "0", "59")]
    assert len(validate_grading(True, bands, Decimal("33"))) == 2


def test_shared_boundary_is_an_overlap():
    bands = [band("A", "80", "100"), band("B", "0", "80")]

    with pytest.raises(GradingConfigError) as exc:
        validate_grading(True, bands, Decimal("40"))

    assert exc.value.message == "overlapping bands"
    assert exc.value.details["bands"] == ["B", "A"]


def test_gap_at_the_top_is_incomplete_coverage():
    bands = [band("A", "0", "50"), band("B", "51", "90")]

    with pytest.raises(GradingConfigError) as exc:
        validate_grading(True, bands, Decimal("40"))

    assert exc.value.message == "incomplete coverage"


def test_gap_at_the_bottom_is_incomplete_coverage():
    with pytest.raises(GradingConfigError, match="incomplete coverage"):
        validate_grading(True, [band("A", "10", "100")], Decimal("40"))


def test_enabled_without_bands():
    with pytest.raises(GradingConfigError, match="bands required"):
        validate_grading(True, [], Decimal("40"))


def test_enabled_without_pass_percentage():
    with pytest.raises(GradingConfigError, match="pass percentage required"):
        validate_grading(True, [band("A", "0", "100")], None)


def test_band_with_min_above_max_names_the_label():
    with pytest.raises(GradingConfigError) as exc:
        validate_grading(True, [band("A", "0", "100"), band("Z", "90", "10")], Decimal("40"))

    assert exc.value.details["label"] == "Z"


def test_disabled_grading_skips_validation():
    bands = [band("A", "10", "20")]
    assert validate_grading(False, bands, None) == bands


def test_three_band_scheme_is_stored_ascending():
    bands = [band("A", "80", "100"), band("B", "60", "79"), band("C", "0", "59")]

    result = validate_grading(True, bands, Decimal("40"))

    assert [b.label for b in result] == ["C", "B", "A"]


def test_bands_overlapping_by_a_range_are_rejected():
    bands = [band("A", "50", "100"), band("B", "0", "60")]

    with pytest.raises(GradingConfigError, match="overlapping bands"):
        validate_grading(True, bands, Decimal("40"))


def test_band_values_limited_to_storage_precision():
    with pytest.raises(ValidationError):
        GradeBand(label="A", min_percentage=Decimal("80.005"), max_percentage=Decimal("100"))
    with pytest.raises(ValidationError):
        GradeBand(label="A", min_percentage=0, max_percentage=100, points=Decimal("100"))

    assert GradeBand(label="A", min_percentage=0, max_percentage=100, points=Decimal("4.5")).points == Decimal("4.5")
