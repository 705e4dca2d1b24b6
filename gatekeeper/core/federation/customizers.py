"""Ordered predicate → strategy tables.

A registry is filled once at startup and only read afterwards:

    registry = CustomizerRegistry()
    registry.register(provider_is("wechat_open", "wechat_mp"), wechat.customize_authorization)
    strategy = registry.resolve("wechat_mp")   # None → use the standard behaviour
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Generic, Iterator, List, Optional, TypeVar, Union

T = TypeVar("T")

Predicate = Callable[[str], bool]


@dataclass(frozen=True)
class CustomizerEntry(Generic[T]):
    predicate: Predicate
    apply: T


def provider_is(*names: str) -> Predicate:
    """Predicate matching any of the given provider names."""
    wanted = frozenset(names)

    def _matches(key: str) -> bool:
        return key in wanted

    _matches.__name__ = f"provider_is({', '.join(sorted(wanted))})"
    return _matches


class CustomizerRegistry(Generic[T]):
    """First registered entry whose predicate accepts the key wins."""

    def __init__(self):
        self._entries: List[CustomizerEntry[T]] = []

    def register(self, predicate: Union[CustomizerEntry[T], Predicate], apply: Optional[T] = None) -> None:
        if isinstance(predicate, CustomizerEntry):
            entry = predicate
        else:
            if apply is None:
                raise ValueError("register() needs a strategy when given a predicate")
            entry = CustomizerEntry(predicate, apply)
        self._entries.append(entry)

    def resolve(self, key: str) -> Optional[T]:
        for entry in self._entries:
            if entry.predicate(key):
                return entry.apply
        return None

    def __iter__(self) -> Iterator[CustomizerEntry[T]]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
