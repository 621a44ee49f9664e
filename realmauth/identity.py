from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, ClassVar, Dict, Iterator, Optional, Tuple

from realmauth.errors import ValidationError


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


def _coerce_claims(claims: Any) -> Dict[str, Any]:
    """Normalize the loosely typed inputs accepted by ``import_claims``."""

    if isinstance(claims, Identity):
        return claims.claims
    if isinstance(claims, Mapping):
        items: Iterable[Any] = claims.items()
    elif hasattr(claims, "model_dump"):
        # pydantic models and look-alikes
        items = claims.model_dump().items()
    elif isinstance(claims, (str, bytes)):
        raise ValidationError(
            "identity claims must be a mapping, not a string",
            detail={"type": type(claims).__name__},
        )
    elif isinstance(claims, Iterable):
        items = claims
    elif hasattr(claims, "__dict__"):
        items = vars(claims).items()
    else:
        raise ValidationError(
            "unsupported identity claims input",
            detail={"type": type(claims).__name__},
        )

    result: Dict[str, Any] = {}
    for item in items:
        try:
            name, value = item
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                "identity claims must be (name, value) pairs",
                detail={"item": repr(item)},
            ) from exc
        if not isinstance(name, str) or not name:
            raise ValidationError(
                "claim names must be non-empty strings", detail={"name": repr(name)}
            )
        result[name] = value
    return result


class Identity:
    """Who a request belongs to: a set of claims plus a fulfilled flag.

    An identity is either empty (the "no one" sentinel) or fulfilled, i.e.
    every name in ``required_claims`` carries a non-empty value. Subclasses
    narrow the minimum claim set for their authentication domain::

        class AdminIdentity(Identity):
            required_claims = ("uid", "role")
    """

    required_claims: ClassVar[Tuple[str, ...]] = ("uid",)

    def __init__(self, claims: Any = None) -> None:
        self._claims: Dict[str, Any] = {}
        self.import_claims(claims)

    @property
    def claims(self) -> Dict[str, Any]:
        return dict(self._claims)

    @property
    def fulfilled(self) -> bool:
        return self.is_fulfilled()

    def is_fulfilled(self) -> bool:
        if not self._claims:
            return False
        return all(
            not _is_empty(self._claims.get(name)) for name in self.required_claims
        )

    def import_claims(self, claims: Any) -> "Identity":
        """Merge ``claims`` into this identity.

        Accepts a mapping, an iterable of ``(name, value)`` pairs, another
        identity or a model/object. ``None`` leaves the identity untouched.
        """
        if claims is None:
            return self
        self._claims.update(_coerce_claims(claims))
        return self

    def clean(self) -> "Identity":
        self._claims.clear()
        return self

    def get(self, name: str, default: Optional[Any] = None) -> Any:
        return self._claims.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self._claims[name]

    def __contains__(self, name: object) -> bool:
        return name in self._claims

    def __iter__(self) -> Iterator[str]:
        return iter(self._claims)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Identity):
            return NotImplemented
        return type(self) is type(other) and self._claims == other._claims

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        state = "fulfilled" if self.is_fulfilled() else "empty" if not self._claims else "unfulfilled"
        return f"{type(self).__name__}({state}, claims={sorted(self._claims)})"
