"""Optimistic fold operations and their evaluator.

A fold describes how a not-yet-confirmed write changes a value the UI is
showing. Folds never mutate the base value; each call returns a new one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Union

from core.errors import FoldError
from datetime_utils import utc_now


@dataclass(frozen=True)
class Insert:
    item: Dict[str, Any]


@dataclass(frozen=True)
class Replace:
    value: Any


@dataclass(frozen=True)
class Remove:
    item_id: Any
    key: str = "id"


@dataclass(frozen=True)
class Patch:
    item_id: Any
    fields: Dict[str, Any]
    key: str = "id"


Fold = Union[Insert, Replace, Remove, Patch]


@dataclass(frozen=True)
class OptimisticOperation:
    operation_id: str
    fold: Fold
    timestamp: datetime = field(default_factory=utc_now)


def _as_list(base: Any, fold: Fold) -> List[Any]:
    if base is None:
        return []
    if not isinstance(base, list):
        raise FoldError(f"{type(fold).__name__} needs a list, got {type(base).__name__}")
    return base


def apply_fold(fold: Fold, base: Any) -> Any:
    if isinstance(fold, Replace):
        return fold.value

    if isinstance(fold, Insert):
        if not isinstance(fold.item, dict):
            raise FoldError("Insert item must be a record")
        return [*_as_list(base, fold), dict(fold.item)]

    if isinstance(fold, Remove):
        items = _as_list(base, fold)
        return [
            item
            for item in items
            if not (isinstance(item, dict) and item.get(fold.key) == fold.item_id)
        ]

    if isinstance(fold, Patch):
        items = _as_list(base, fold)
        result = []
        for item in items:
            if isinstance(item, dict) and item.get(fold.key) == fold.item_id:
                item = {**item, **fold.fields}
            result.append(item)
        return result

    raise FoldError(f"Unsupported fold: {fold!r}")


__all__ = [
    "Fold",
    "Insert",
    "OptimisticOperation",
    "Patch",
    "Remove",
    "Replace",
    "apply_fold",
]
