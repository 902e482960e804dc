"""Parameter data types of voice app intents.

Only the finite types matter to the app server: their terms are sent to the
core so the core can recognise slot values in what the user said.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


class DataType:
    """Base data type.  Values are open-ended, so nothing is enumerable."""

    def __init__(self, id: str) -> None:
        self.id = id

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"


class StringDataType(DataType):
    def __init__(self, id: str = "string") -> None:
        super().__init__(id)


class NumberDataType(DataType):
    def __init__(self, id: str = "number") -> None:
        super().__init__(id)


class FiniteDataType(DataType):
    """A type whose legal values can be listed completely."""

    def __init__(self, id: str, terms: Optional[Iterable[str]] = None) -> None:
        super().__init__(id)
        self._terms: List[str] = []
        for term in terms or []:
            self._add_term(term)

    def _add_term(self, term: str) -> None:
        if term not in self._terms:
            self._terms.append(term)

    @property
    def terms(self) -> List[str]:
        return list(self._terms)


class EnumDataType(FiniteDataType):
    """Fixed set of values, declared together with the intent."""


class ListDataType(FiniteDataType):
    """Values are added by the app at load time, e.g. from its own data."""

    def add_value(self, term: str) -> None:
        self._add_term(term)

    def add_values(self, terms: Iterable[str]) -> None:
        for term in terms:
            self._add_term(term)


class NamedValuesDataType(FiniteDataType):
    """Maps spoken names to app values.  The names are the terms."""

    def __init__(self, id: str, values: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(id)
        self._values: Dict[str, Any] = {}
        for name, value in (values or {}).items():
            self.add_value(name, value)

    def add_value(self, name: str, value: Any) -> None:
        self._values[name] = value
        self._add_term(name)

    def value_for(self, name: str) -> Any:
        return self._values[name]


__all__ = [
    "DataType",
    "StringDataType",
    "NumberDataType",
    "FiniteDataType",
    "EnumDataType",
    "ListDataType",
    "NamedValuesDataType",
]
