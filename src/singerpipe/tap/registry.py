from __future__ import annotations

from typing import Any, Callable, ClassVar, Dict, Optional, Type


class TapRegistryError(RuntimeError):
    pass


class TapRegistry:
    _registry: ClassVar[Dict[str, Type[Any]]] = {}

    @classmethod
    def register(
        cls,
        *,
        name: str,
        tap_class: Type[Any],
        overwrite: bool = False,
    ) -> None:
        if not overwrite and name in cls._registry:
            existing = cls._registry[name]
            raise TapRegistryError(f"Tap already registered for name={name!r}: {existing}")
        cls._registry[name] = tap_class

    @classmethod
    def get(cls, name: str) -> Type[Any]:
        try:
            return cls._registry[name]
        except KeyError as exc:
            raise TapRegistryError(f"No tap registered for name={name!r}") from exc

    @classmethod
    def try_get(cls, name: str) -> Optional[Type[Any]]:
        return cls._registry.get(name)

    @classmethod
    def names(cls) -> list[str]:
        return sorted(cls._registry)

    @classmethod
    def clear(cls) -> None:
        cls._registry.clear()


def register_tap(name: str, *, overwrite: bool = False) -> Callable[[Type[Any]], Type[Any]]:
    def decorator(tap_class: Type[Any]) -> Type[Any]:
        TapRegistry.register(name=name, tap_class=tap_class, overwrite=overwrite)
        return tap_class

    return decorator
