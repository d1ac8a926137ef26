from __future__ import annotations

from abc import ABC, abstractmethod

from singerpipe.core.logger import get_logger
from singerpipe.models.catalog import Catalog
from singerpipe.models.tap_context import TapContext
from singerpipe.tap.writer import MessageWriter


class Tap(ABC):
    """A producer of Singer messages.

    Subclasses implement discovery (describe the available streams) and sync
    (write SCHEMA, RECORD and STATE messages to the writer).
    """

    def __init__(self):
        self.log = get_logger(self.__class__.__name__)

    # --- Required methods ---
    @abstractmethod
    def discover(self, context: TapContext) -> Catalog:
        raise NotImplementedError

    @abstractmethod
    def sync(self, context: TapContext, writer: MessageWriter) -> None:
        raise NotImplementedError

    # --- Logging helpers ---
    def log_info(self, msg: str):
        self.log.info(msg)

    def log_debug(self, msg: str):
        self.log.debug(msg)
