"""Mapping helpers."""

from __future__ import annotations

import collections.abc as _abc
import typing as _typing


def deep_merge(
    *layers: _abc.Mapping[str, _typing.Any],
) -> dict[str, _typing.Any]:
    """
    Merge mappings, later layers taking precedence.

    Nested mappings are merged key by key; any other value (scalars,
    lists) from a later layer replaces the earlier one outright.

    Example:
        >>> deep_merge({"a": {"x": 1, "y": 2}}, {"a": {"y": 3}, "b": [1]})
        {'a': {'x': 1, 'y': 3}, 'b': [1]}
    """
    result: dict[str, _typing.Any] = {}
    for layer in layers:
        for key, value in layer.items():
            existing = result.get(key)
            if isinstance(existing, _abc.Mapping) and isinstance(value, _abc.Mapping):
                result[key] = deep_merge(existing, value)
            elif isinstance(value, _abc.Mapping):
                result[key] = deep_merge(value)
            else:
                result[key] = value
    return result
