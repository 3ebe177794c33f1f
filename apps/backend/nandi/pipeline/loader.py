from __future__ import annotations

import asyncio
import logging
from typing import Callable, Generic, TypeVar

from nandi.pipeline.errors import ModelLoadError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ModelProvider(Generic[T]):
    """Single-flight, load-once holder for a model.

    The first ``get()`` schedules ``factory`` on a worker thread. Callers that
    arrive while that load is running await the same future, so the factory
    runs at most once per successful load. The check-and-schedule step never
    awaits, which makes it atomic on the event loop.

    A failed load is not cached; the next ``get()`` tries again. Waiters are
    shielded from each other: cancelling one caller leaves the load running
    for the rest.
    """

    def __init__(self, name: str, factory: Callable[[], T]) -> None:
        self.name = name
        self._factory = factory
        self._model: T | None = None
        self._inflight: asyncio.Future[T] | None = None
        self._generation = 0

    @property
    def loaded(self) -> bool:
        return self._model is not None

    async def get(self) -> T:
        if self._model is not None:
            return self._model

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._load())
            self._inflight.add_done_callback(_consume_exception)

        return await asyncio.shield(self._inflight)

    def reset(self, factory: Callable[[], T] | None = None) -> None:
        """Drop the cached model; an in-flight load still serves its own waiters."""
        if factory is not None:
            self._factory = factory
        self._generation += 1
        self._model = None
        self._inflight = None

    async def _load(self) -> T:
        generation = self._generation
        logger.info("loading %s model", self.name)
        try:
            model = await asyncio.to_thread(self._factory)
        except ModelLoadError:
            logger.warning("%s model failed to load", self.name, exc_info=True)
            raise
        except Exception as error:
            logger.warning("%s model failed to load", self.name, exc_info=True)
            raise ModelLoadError(f"{self.name} model failed to load: {error}") from error
        finally:
            if generation == self._generation:
                self._inflight = None

        if generation == self._generation:
            self._model = model
        logger.info("%s model ready", self.name)
        return model


def _consume_exception(future: asyncio.Future) -> None:
    # Keeps asyncio quiet when every waiter was cancelled before a failed load finished.
    if not future.cancelled():
        future.exception()
