from __future__ import annotations

from typing import List, Literal, Mapping, Optional, get_args

from pydantic import BaseModel

from singerpipe.core.exceptions import InvalidOptionError, OptionNotSetError

TapOption = Literal["config", "catalog", "state", "properties"]
TAP_OPTIONS: tuple[str, ...] = get_args(TapOption)


class TapContext(BaseModel):
    """File paths handed to a tap on its command line.

    Only ``config`` is required to invoke a tap; ``catalog``, ``state`` and
    ``properties`` are passed in sync mode when set.
    """

    config: Optional[str] = None
    catalog: Optional[str] = None
    state: Optional[str] = None
    properties: Optional[str] = None

    @classmethod
    def from_paths(cls, paths: Mapping[str, Optional[str]]) -> "TapContext":
        """Build a context from an option-name mapping, rejecting unknown names."""
        context = cls()
        for option, value in paths.items():
            if value is not None:
                context.set_option(option, value)
            elif option not in TAP_OPTIONS:
                raise InvalidOptionError(option)
        return context

    def get_option(self, option: str) -> str:
        if option not in TAP_OPTIONS:
            raise InvalidOptionError(option)
        value = getattr(self, option)
        if value is None:
            raise OptionNotSetError(option)
        return value

    def try_get_option(self, option: str) -> Optional[str]:
        """Like ``get_option`` but returns ``None`` for an unset option.

        Unknown option names still raise ``InvalidOptionError``.
        """
        try:
            return self.get_option(option)
        except OptionNotSetError:
            return None

    def set_option(self, option: str, value: str) -> Optional[str]:
        """Set an option and return its previous value."""
        if option not in TAP_OPTIONS:
            raise InvalidOptionError(option)
        previous = getattr(self, option)
        setattr(self, option, str(value))
        return previous

    def sync_args(self) -> List[str]:
        args = ["--config", self.get_option("config")]
        for option in ("catalog", "state", "properties"):
            value = self.try_get_option(option)
            if value is not None:
                args.extend([f"--{option}", value])
        return args

    def discover_args(self) -> List[str]:
        return ["--config", self.get_option("config"), "--discover"]
