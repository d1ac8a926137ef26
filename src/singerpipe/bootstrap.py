from __future__ import annotations

import importlib
import sys
from typing import Iterable


_LOADED: set[str] = set()


def load_plugins(modules: Iterable[str], *, reload: bool = False) -> None:
    """Import plugin modules so their ``@register_tap`` decorators run.

    In tests, call with reload=True after clearing the registry to re-run
    decorators.
    """

    for module_name in modules:
        if module_name in _LOADED and not reload:
            continue
        if reload:
            sys.modules.pop(module_name, None)
        importlib.import_module(module_name)
        _LOADED.add(module_name)
