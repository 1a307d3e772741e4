"""Custom attribute value tree.

customAttributes is an open bag of JSON-compatible values. The alias below
is the closed set of shapes allowed in it; validate_attributes() checks a
caller-supplied value against that set before it reaches a store.
"""

import math
from typing import Union

from domain.model.errors import ValidationError

JSONValue = Union[str, int, float, bool, None, list["JSONValue"], dict[str, "JSONValue"]]
JSONObject = dict[str, JSONValue]

MAX_DEPTH = 32


def _check(value, path: str, depth: int) -> None:
    if depth > MAX_DEPTH:
        raise ValidationError(f"custom attributes nested too deeply at {path}")
    if value is None or isinstance(value, (str, bool, int)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"custom attribute {path} is not a finite number")
        return
    if isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _check(item, f"{path}[{i}]", depth + 1)
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationError(f"custom attribute keys must be strings at {path}")
            _check(item, f"{path}.{key}", depth + 1)
        return
    raise ValidationError(
        f"custom attribute {path} has unsupported type {type(value).__name__}"
    )


def validate_attributes(attributes) -> JSONObject:
    """Return a JSON-compatible copy of attributes or raise ValidationError.

    None becomes an empty object. Tuples are normalized to lists so the value
    round-trips through both stores unchanged.
    """
    if attributes is None:
        return {}
    if not isinstance(attributes, dict):
        raise ValidationError("custom attributes must be an object")
    _check(attributes, "custom_attributes", 0)
    return _normalize(attributes)


def _normalize(value):
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value
