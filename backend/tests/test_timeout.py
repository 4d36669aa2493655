"""Tests for the overall deadline decorator."""

import asyncio

import pytest

from chat_gateway.errors import TimeoutHTTPException
from chat_gateway.middleware.timeout import with_timeout


class TestWithTimeoutDecorator:
    """Test the with_timeout decorator."""

    async def test_fast_function_succeeds(self) -> None:
        """Function completing before timeout returns normally."""

        @with_timeout(1.0)
        async def fast_function() -> str:
            await asyncio.sleep(0.01)
            return "success"

        assert await fast_function() == "success"

    async def test_slow_function_raises_timeout(self) -> None:
        """Function exceeding timeout raises TimeoutHTTPException."""

        @with_timeout(0.05)
        async def slow_function() -> str:
            await asyncio.sleep(1.0)
            return "never returned"

        with pytest.raises(TimeoutHTTPException) as exc_info:
            await slow_function()

        assert exc_info.value.status_code == 408
        assert exc_info.value.timeout_seconds == 0.05
        assert "timed out" in str(exc_info.value.detail).lower()

    async def test_preserves_function_metadata(self) -> None:
        """Decorated function preserves name and docstring."""

        @with_timeout(1.0)
        async def documented_function() -> str:
            """This is a docstring."""
            return "ok"

        assert documented_function.__name__ == "documented_function"
        assert documented_function.__doc__ == "This is a docstring."

    async def test_exception_propagates(self) -> None:
        """Non-timeout exceptions propagate normally."""

        @with_timeout(1.0)
        async def raising_function() -> str:
            raise ValueError("test error")

        with pytest.raises(ValueError, match="test error"):
            await raising_function()

    async def test_wraps_bound_methods(self) -> None:
        """Works on a bound method applied at call time."""

        class Service:
            async def greet(self, name: str, greeting: str = "Hello") -> str:
                await asyncio.sleep(0.01)
                return f"{greeting}, {name}!"

        greet = with_timeout(1.0)(Service().greet)
        assert await greet("World", greeting="Hi") == "Hi, World!"


class TestTimeoutHTTPException:
    """Test TimeoutHTTPException properties."""

    def test_default_detail_mentions_seconds(self) -> None:
        exc = TimeoutHTTPException(timeout_seconds=30.0)
        assert exc.status_code == 408
        assert exc.timeout_seconds == 30.0
        assert "30" in exc.detail

    def test_custom_detail(self) -> None:
        exc = TimeoutHTTPException(timeout_seconds=60.0, detail="Custom timeout message")
        assert exc.detail == "Custom timeout message"
