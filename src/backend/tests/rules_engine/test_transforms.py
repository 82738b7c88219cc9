from decimal import Decimal

import pytest

from common.rules_engine.models import DataType
from common.rules_engine.transforms import (
    RuleConfigurationError,
    TransformError,
    TransformRegistry,
    apply_transform,
)


def test_multiply_uses_parameter():
    assert apply_transform("multiply", 10, 2) == Decimal("20")


def test_absolute_makes_positive():
    assert apply_transform("absolute", -7) == Decimal("7")
    assert apply_transform("absolute", "-7.25") == Decimal("7.25")


def test_multiply_without_parameter_is_a_configuration_error():
    with pytest.raises(RuleConfigurationError):
        apply_transform("multiply", 10)


def test_text_transforms():
    assert apply_transform("negate", Decimal("4.5")) == Decimal("-4.5")
    assert apply_transform("uppercase", "cafe") == "CAFE"
    assert apply_transform("lowercase", "CAFE") == "cafe"
    assert apply_transform("trim", "  cafe ") == "cafe"


def test_blank_values_are_left_untouched():
    assert apply_transform("absolute", "") == ""
    assert apply_transform("uppercase", None) is None


def test_numeric_transform_on_text_raises():
    with pytest.raises(TransformError):
        apply_transform("negate", "abc")


def test_unknown_transform_is_a_configuration_error():
    with pytest.raises(RuleConfigurationError):
        apply_transform("reverse", "abc")


def test_registry_rejects_duplicate_keys():
    registry = TransformRegistry()

    @registry.register("double", data_type=DataType.NUMBER)
    def _double(value, _parameter):
        return value * 2

    assert registry.apply("double", 3) == 6
    with pytest.raises(ValueError):
        registry.register("double", data_type=DataType.NUMBER)(_double)
