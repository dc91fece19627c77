"""Resolution of step behaviors referenced as ``module:function``.

User-authored patterns never carry source code. They name an importable
callable, so the trust boundary is the Python import path: anything the
resolver can import is trusted to run inside the executor process.
"""

from __future__ import annotations

import importlib
import sys
import threading
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Optional, Union

from .errors import BehaviorResolutionError

Behavior = Callable[..., Any]


def split_reference(reference: str) -> tuple[str, str]:
    module_name, sep, function_name = reference.partition(":")
    if not sep or not module_name.strip() or not function_name.strip():
        raise BehaviorResolutionError(
            f"Behavior reference {reference!r} must look like 'package.module:function'"
        )
    return module_name.strip(), function_name.strip()


class BehaviorResolver:
    """Caches behavior callables, optionally importing from an extra search root."""

    def __init__(self, search_root: Optional[Path] = None) -> None:
        self.search_root = search_root
        self._cache: dict[str, Behavior] = {}
        self._modules: dict[str, ModuleType] = {}
        self._path_added = False
        self._lock = threading.Lock()

    def resolve(self, behavior: Union[Behavior, str]) -> Behavior:
        if callable(behavior):
            return behavior
        with self._lock:
            cached = self._cache.get(behavior)
            if cached is not None:
                return cached

            module_name, function_name = split_reference(behavior)
            self._ensure_path()
            module = self._modules.get(module_name)
            if module is None:
                try:
                    module = importlib.import_module(module_name)
                except ImportError as exc:
                    raise BehaviorResolutionError(f"Cannot import behavior module {module_name}: {exc}") from exc
                self._modules[module_name] = module
            func = getattr(module, function_name, None)
            if func is None or not callable(func):
                raise BehaviorResolutionError(f"Behavior function {function_name} not found in {module_name}")
            self._cache[behavior] = func
            return func

    def _ensure_path(self) -> None:
        if self._path_added or self.search_root is None:
            return
        root = str(self.search_root)
        if root not in sys.path:
            sys.path.insert(0, root)
        self._path_added = True
