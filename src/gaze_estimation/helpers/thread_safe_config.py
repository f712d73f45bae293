from dataclasses import asdict, replace
from typing import Generic, TypeVar

import threading
from copy import deepcopy

T = TypeVar("T")


# ---------- Thread-safe config wrapper ----------
class ThreadSafeConfig(Generic[T]):
    """Lock-protected holder for one config dataclass instance."""

    def __init__(self, data_obj: T):
        self._lock = threading.Lock()
        self._data = data_obj

    def get(self) -> T:
        with self._lock:
            return deepcopy(self._data)

    def set(self, field, value):
        with self._lock:
            if not hasattr(self._data, field):
                raise AttributeError(f"{type(self._data).__name__} has no field '{field}'")
            setattr(self._data, field, value)

    def update(self, **kwargs):
        with self._lock:
            # replace() validates the field names before anything is changed
            self._data = replace(self._data, **kwargs)

    def get_field(self, field):
        with self._lock:
            return getattr(self._data, field)

    def get_raw(self) -> T:  # non-deepcopy for internal save use
        with self._lock:
            return self._data

    def asdict(self) -> dict:
        with self._lock:
            return asdict(self._data)
