"""Ethereum address headache tools."""

from typing import Iterable


class LowercaseDict(dict):
    """A dictionary subclass that automatically converts all string keys to lowercase.

    - Callers mix lowercased and checksum-cased addresses,
      ledger balances must land in the same slot either way
    """

    def __init__(self, *args, **kwargs):
        super().__init__()
        if args:
            if len(args) > 1:
                raise TypeError("expected at most 1 argument, got %d" % len(args))
            self.update(args[0])
        if kwargs:
            self.update(kwargs)

    def __setitem__(self, key, value):
        super().__setitem__(key.lower(), value)

    def __getitem__(self, key):
        return super().__getitem__(key.lower())

    def __delitem__(self, key):
        super().__delitem__(key.lower())

    def __contains__(self, key):
        return super().__contains__(key.lower())

    def get(self, key, default=None):
        return super().get(key.lower(), default)

    def pop(self, key, *args):
        return super().pop(key.lower(), *args)

    def update(self, other=None, **kwargs):
        if other is not None:
            for k, v in other.items() if isinstance(other, dict) else other:
                self[k] = v
        for k, v in kwargs.items():
            self[k] = v

    def setdefault(self, key, default=None):
        return super().setdefault(key.lower(), default)

    def copy(self) -> "LowercaseDict":
        return LowercaseDict(self)


class LowercaseSet(set):
    """A set of addresses that compares members case-insensitively."""

    def __init__(self, items: Iterable[str] = ()):
        super().__init__(i.lower() for i in items)

    def add(self, item: str):
        super().add(item.lower())

    def discard(self, item: str):
        super().discard(item.lower())

    def __contains__(self, item):
        return super().__contains__(item.lower())

    def copy(self) -> "LowercaseSet":
        return LowercaseSet(self)
