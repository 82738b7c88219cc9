from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional

from .models import DataType
from .values import coerce_decimal, is_blank

TransformFn = Callable[[Any, Optional[Decimal]], Any]


class TransformError(ValueError):
    """A transform could not be applied to a field value."""


class RuleConfigurationError(TransformError):
    """The action itself is misconfigured (unknown transform, missing parameter)."""


@dataclass(frozen=True)
class TransformSpec:
    key: str
    fn: TransformFn
    data_type: DataType
    label: str = ""
    requires_parameter: bool = False


class TransformRegistry:
    def __init__(self):
        self._transforms: Dict[str, TransformSpec] = {}

    def register(
        self,
        key: str,
        *,
        data_type: DataType,
        label: str = "",
        requires_parameter: bool = False,
    ) -> Callable[[TransformFn], TransformFn]:
        def _decorator(fn: TransformFn) -> TransformFn:
            if key in self._transforms:
                raise ValueError(f"Duplicate transform registered: {key}")
            self._transforms[key] = TransformSpec(
                key=key,
                fn=fn,
                data_type=data_type,
                label=label,
                requires_parameter=requires_parameter,
            )
            return fn

        return _decorator

    def get(self, key: str) -> TransformSpec:
        try:
            return self._transforms[key]
        except KeyError:
            raise RuleConfigurationError(f"unknown transform '{key}'") from None

    def keys(self) -> Iterable[str]:
        return self._transforms.keys()

    def specs(self) -> list[TransformSpec]:
        return list(self._transforms.values())

    def __contains__(self, key: object) -> bool:
        return key in self._transforms

    def apply(self, key: str, value: Any, parameter: Any = None) -> Any:
        spec = self.get(key)
        number_param: Optional[Decimal] = None
        if spec.requires_parameter:
            number_param = coerce_decimal(parameter)
            if number_param is None:
                raise RuleConfigurationError(f"transform '{key}' requires a numeric parameter")
        if is_blank(value):
            return value
        return spec.fn(value, number_param)


registry = TransformRegistry()
register_transform = registry.register


def apply_transform(key: str, value: Any, parameter: Any = None) -> Any:
    return registry.apply(key, value, parameter)


def _number(value: Any, key: str) -> Decimal:
    number = coerce_decimal(value)
    if number is None:
        raise TransformError(f"transform '{key}' needs a numeric value, got {value!r}")
    return number


@register_transform("absolute", data_type=DataType.NUMBER, label="Make positive")
def _absolute(value: Any, _parameter: Optional[Decimal]) -> Decimal:
    return abs(_number(value, "absolute"))


@register_transform("negate", data_type=DataType.NUMBER, label="Change sign")
def _negate(value: Any, _parameter: Optional[Decimal]) -> Decimal:
    return -_number(value, "negate")


@register_transform("multiply", data_type=DataType.NUMBER, label="Multiply by value", requires_parameter=True)
def _multiply(value: Any, parameter: Optional[Decimal]) -> Decimal:
    return _number(value, "multiply") * parameter


@register_transform("uppercase", data_type=DataType.STRING, label="Convert to uppercase")
def _uppercase(value: Any, _parameter: Optional[Decimal]) -> str:
    return str(value).upper()


@register_transform("lowercase", data_type=DataType.STRING, label="Convert to lowercase")
def _lowercase(value: Any, _parameter: Optional[Decimal]) -> str:
    return str(value).lower()


@register_transform("trim", data_type=DataType.STRING, label="Remove surrounding spaces")
def _trim(value: Any, _parameter: Optional[Decimal]) -> str:
    return str(value).strip()
