"""Tests for token estimation, budgets and the correlated token counter."""

import asyncio
import time

import pytest

from chainflow.errors import ChannelError, ChannelTimeoutError
from chainflow.pipeline import TokenCounter, check_token_budget, estimate_tokens
from chainflow.utils.correlation import CorrelatedChannel, Reply


class TestEstimateTokens:

    @pytest.mark.unit
    def test_latin_is_quarter_token(self):
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    @pytest.mark.unit
    def test_cjk_is_half_token(self):
        assert estimate_tokens("你好") == 1
        assert estimate_tokens("你好吗") == 2

    @pytest.mark.unit
    def test_empty(self):
        assert estimate_tokens("") == 0


class TestTokenBudget:

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "used,limit,level",
        [(0, 100, "ok"), (49, 100, "ok"), (50, 100, "warning"), (79, 100, "warning"), (80, 100, "critical"), (5, 0, "ok")],
    )
    def test_levels(self, used, limit, level):
        budget = check_token_budget(used, limit)
        assert budget.level == level
        assert budget.limit == limit

    @pytest.mark.unit
    def test_percentage(self):
        assert check_token_budget(25, 200).percentage == 12.5


class TestCorrelatedChannel:

    @pytest.mark.asyncio
    async def test_reply_resolves_matching_request(self):
        sent = []
        channel = CorrelatedChannel(sent.append, timeout=1.0)

        request = asyncio.ensure_future(channel.request("ping"))
        await asyncio.sleep(0)
        assert channel.pending == 1

        assert channel.dispatch(Reply(sent[0].id, result="pong"))
        assert await request == "pong"
        assert channel.pending == 0

    @pytest.mark.asyncio
    async def test_ids_are_unique_and_out_of_order_replies_work(self):
        sent = []
        channel = CorrelatedChannel(sent.append, timeout=1.0)

        first = asyncio.ensure_future(channel.request("a"))
        second = asyncio.ensure_future(channel.request("b"))
        await asyncio.sleep(0)
        assert sent[0].id != sent[1].id

        channel.dispatch(Reply(sent[1].id, result="B"))
        channel.dispatch(Reply(sent[0].id, result="A"))
        assert await first == "A"
        assert await second == "B"

    @pytest.mark.asyncio
    async def test_timeout_rejects_and_clears(self):
        sent = []
        channel = CorrelatedChannel(sent.append, timeout=0.01)

        with pytest.raises(ChannelTimeoutError):
            await channel.request("slow")
        assert channel.pending == 0
        # Late reply is dropped
        assert channel.dispatch(Reply(sent[0].id, result="late")) is False

    @pytest.mark.asyncio
    async def test_error_reply(self):
        sent = []
        channel = CorrelatedChannel(sent.append, timeout=1.0)
        request = asyncio.ensure_future(channel.request("x"))
        await asyncio.sleep(0)

        channel.dispatch(Reply(sent[0].id, error="bad input"))
        with pytest.raises(ChannelError, match="bad input"):
            await request

    @pytest.mark.asyncio
    async def test_close_rejects_pending(self):
        channel = CorrelatedChannel(lambda message: None, timeout=1.0)
        request = asyncio.ensure_future(channel.request("x"))
        await asyncio.sleep(0)

        channel.close()
        with pytest.raises(ChannelError):
            await request
        with pytest.raises(ChannelError):
            await channel.request("after close")


class TestTokenCounter:

    @pytest.mark.asyncio
    async def test_counts_through_worker(self):
        async with TokenCounter(tokenize=lambda text: len(text.split())) as counter:
            assert counter.running
            assert await counter.count("one two three") == 3
        assert not counter.running

    @pytest.mark.asyncio
    async def test_slow_tokenizer_falls_back_to_estimate(self):
        def slow(text):
            time.sleep(0.2)
            return 999

        async with TokenCounter(tokenize=slow, timeout=0.01) as counter:
            assert await counter.count("abcdefgh") == estimate_tokens("abcdefgh")

    @pytest.mark.asyncio
    async def test_failing_tokenizer_falls_back_to_estimate(self):
        def broken(text):
            raise ValueError("no vocab")

        async with TokenCounter(tokenize=broken) as counter:
            assert await counter.count("abcd") == 1

    @pytest.mark.asyncio
    async def test_not_started_uses_estimate(self):
        counter = TokenCounter(tokenize=lambda text: 42)
        assert await counter.count("abcd") == 1
