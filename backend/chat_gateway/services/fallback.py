"""Model-availability fallback over an ordered candidate list."""

from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import Any, TypeVar

from loguru import logger

from chat_gateway.errors import ModelUnavailableError
from chat_gateway.models.catalog import fallback_candidates

T = TypeVar("T")


class ModelFallbackResolver:
    """Retries a call down a fallback chain while the model is unavailable.

    Only ModelUnavailableError advances to the next candidate. Every other
    error propagates from the candidate that raised it. Once a candidate
    succeeds it stays pinned, so later calls in the same request (tool
    follow-ups, reopened streams) go straight to the model that worked.

    One resolver serves one gateway request.

    Args:
        model: The requested model id
        chains: Fallback chains to use instead of the catalog defaults
    """

    def __init__(self, model: str, chains: dict[str, list[str]] | None = None):
        self.requested_model = model
        self.candidates = fallback_candidates(model, chains)
        self._start = 0
        self.attempted: list[str] = []

    @property
    def active_model(self) -> str:
        """The candidate the next call starts from."""
        return self.candidates[self._start]

    async def invoke(self, call: Callable[[str], Awaitable[T]]) -> T:
        """Run `call(model)` for each candidate until one succeeds.

        Args:
            call: Coroutine factory taking the candidate model id

        Returns:
            The first successful result

        Raises:
            ModelUnavailableError: If every candidate was unavailable. It
                names the requested model and lists all attempted ids.
        """
        last_error: ModelUnavailableError | None = None
        for index in range(self._start, len(self.candidates)):
            candidate = self.candidates[index]
            self._record(candidate)
            try:
                result = await call(candidate)
            except ModelUnavailableError as e:
                last_error = e
                self._log_step(candidate, index)
                continue
            self._start = index
            return result

        raise self._exhausted(last_error)

    async def stream(
        self, open_stream: Callable[[str], AsyncIterator[T]]
    ) -> AsyncGenerator[T, None]:
        """Stream from the first candidate that produces a first item.

        A candidate is abandoned only if it fails before yielding anything.
        After the first item, errors propagate to the consumer unchanged.
        """
        last_error: ModelUnavailableError | None = None
        for index in range(self._start, len(self.candidates)):
            candidate = self.candidates[index]
            self._record(candidate)
            source = open_stream(candidate)
            if not isinstance(source, AsyncGenerator):
                source = _as_generator(source)
            async with aclosing(source) as items:
                try:
                    first = await anext(items)
                except StopAsyncIteration:
                    self._start = index
                    return
                except ModelUnavailableError as e:
                    last_error = e
                    self._log_step(candidate, index)
                    continue

                self._start = index
                yield first
                async for item in items:
                    yield item
                return

        raise self._exhausted(last_error)

    def _record(self, candidate: str) -> None:
        if candidate not in self.attempted:
            self.attempted.append(candidate)

    def _log_step(self, candidate: str, index: int) -> None:
        if index + 1 < len(self.candidates):
            logger.warning(
                f"Model {candidate} unavailable, falling back to {self.candidates[index + 1]}"
            )
        else:
            logger.warning(f"Model {candidate} unavailable, no fallbacks left")

    def _exhausted(self, last_error: ModelUnavailableError | None) -> ModelUnavailableError:
        detail = last_error.message if last_error else "no candidates"
        return ModelUnavailableError(
            f"Model '{self.requested_model}' is unavailable "
            f"(tried {', '.join(self.attempted)}): {detail}",
            model=self.requested_model,
            attempted=list(self.attempted),
        )


async def _as_generator(items: AsyncIterator[Any]) -> AsyncGenerator[Any, None]:
    async for item in items:
        yield item
