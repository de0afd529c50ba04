"""Context — groups functions that may call each other and owns engine memory."""

from __future__ import annotations

import logging
from typing import Any

from . import constants
from .engine import Engine
from .engine_types import EngineConfig
from .memory import Memory

logger = logging.getLogger(__name__)


class Context:
    """Owner of a set of functions and the engine that runs them.

    Usable as a context manager; functions built inside the ``with`` block
    stay callable after it exits::

        with Context() as context:
            f = Function(context, signature)
            ...
            f.compile()
        f(1, 2)
    """

    def __init__(self, config: EngineConfig = EngineConfig()):
        self._config = config
        self._memory = Memory()
        self._engine = Engine(self._memory, config)
        self._functions: list[Any] = []
        self._building = False

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def memory(self) -> Memory:
        return self._memory

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def functions(self) -> list[Any]:
        return list(self._functions)

    @property
    def is_building(self) -> bool:
        return self._building

    def build_start(self) -> None:
        self._building = True

    def build_end(self) -> None:
        self._building = False

    def next_function_name(self) -> str:
        return f"{constants.FUNCTION_NAME_PREFIX}{len(self._functions)}"

    def register(self, function: Any) -> None:
        self._functions.append(function)
        logger.debug("Registered %s in context", function.name)

    def __enter__(self) -> Context:
        self.build_start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.build_end()

    def __repr__(self) -> str:
        return f"<Context functions={len(self._functions)}>"
