"""Tests for the ordered fallback combinator."""

import pytest

from y2md.services.pipeline.fallback_chain import FallbackExhausted, Strategy, first_successful


class Boom(Exception):
    pass


def returning(value):
    async def run():
        return value

    return run


def raising(error):
    async def run():
        raise error

    return run


class TestFirstSuccessful:
    async def test_first_strategy_wins(self):
        result = await first_successful([Strategy("a", returning(1)), Strategy("b", returning(2))])

        assert result.value == 1
        assert result.strategy == "a"
        assert not result.degraded

    async def test_recoverable_error_moves_on(self, caplog):
        error = Boom("down")

        result = await first_successful(
            [
                Strategy("primary", raising(error), recoverable=(Boom,)),
                Strategy("backup", returning("ok")),
            ]
        )

        assert result.value == "ok"
        assert result.strategy == "backup"
        assert result.failures == [("primary", error)]
        assert result.degraded
        assert "primary failed: down, using fallback" in caplog.text

    async def test_unrecoverable_error_propagates(self):
        with pytest.raises(ValueError):
            await first_successful(
                [
                    Strategy("primary", raising(ValueError("bad")), recoverable=(Boom,)),
                    Strategy("backup", returning("never")),
                ]
            )

    async def test_all_recoverable_failures(self):
        with pytest.raises(FallbackExhausted) as exc_info:
            await first_successful(
                [
                    Strategy("a", raising(Boom("one")), recoverable=(Boom,)),
                    Strategy("b", raising(Boom("two")), recoverable=(Boom,)),
                ]
            )

        assert [name for name, _ in exc_info.value.failures] == ["a", "b"]

    async def test_empty_chain(self):
        with pytest.raises(ValueError):
            await first_successful([])
