"""Tests for the request pipeline: pre-processors, behavior chain, post-processors."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from cloudmediator.contracts.messages import PipelineBehavior, Request, RequestHandler
from cloudmediator.middleware.chain import BehaviorChain
from cloudmediator.runtime.context import CancellationToken

from sample_messages import (
    FailingBehavior,
    FailingPostProcessor,
    FailingPreProcessor,
    FirstBehavior,
    GetWeatherHandler,
    GetWeatherQuery,
    Ping,
    PingHandler,
    PingPostProcessor,
    PingPreProcessor,
    SecondBehavior,
    SecondPingPreProcessor,
    ShortCircuitBehavior,
    ThirdBehavior,
)


@pytest.mark.asyncio
async def test_behaviors_run_first_registered_outermost(builder, trace):
    app = (
        builder.add_request_handler(PingHandler)
        .add_behavior(FirstBehavior)
        .add_behavior(SecondBehavior)
        .add_behavior(ThirdBehavior)
        .build()
    )

    assert await app.mediator.send(Ping("x")) == "pong:x"
    assert trace == [
        "first-before",
        "second-before",
        "third-before",
        "handler",
        "third-after",
        "second-after",
        "first-after",
    ]


@pytest.mark.asyncio
async def test_behavior_not_calling_next_short_circuits_rest_of_chain(builder, trace):
    app = (
        builder.add_request_handler(PingHandler)
        .add_behavior(FirstBehavior)
        .add_behavior(ShortCircuitBehavior)
        .add_behavior(SecondBehavior)
        .add_post_processor(PingPostProcessor)
        .build()
    )

    assert await app.mediator.send(Ping("x")) == "cached"
    assert trace == ["first-before", "short-circuit", "first-after", "post:cached"]


@pytest.mark.asyncio
async def test_pre_processors_run_in_order_before_behaviors_and_post_after(builder, trace):
    app = (
        builder.add_request_handler(PingHandler)
        .add_pre_processor(PingPreProcessor)
        .add_pre_processor(SecondPingPreProcessor)
        .add_behavior(FirstBehavior)
        .add_post_processor(PingPostProcessor)
        .build()
    )

    await app.mediator.send(Ping("x"))

    assert trace == ["pre", "pre-2", "first-before", "handler", "first-after", "post:pong:x"]


@pytest.mark.asyncio
async def test_pre_processor_failure_aborts_call(builder, trace):
    app = (
        builder.add_request_handler(PingHandler)
        .add_pre_processor(FailingPreProcessor)
        .add_pre_processor(PingPreProcessor)
        .add_behavior(FirstBehavior)
        .add_post_processor(PingPostProcessor)
        .build()
    )

    with pytest.raises(ValueError, match="invalid ping"):
        await app.mediator.send(Ping("x"))

    assert trace == ["failing-pre"]


@pytest.mark.asyncio
async def test_behavior_failure_skips_handler_and_post_processors(builder, trace):
    app = (
        builder.add_request_handler(PingHandler)
        .add_behavior(FirstBehavior)
        .add_behavior(FailingBehavior)
        .add_post_processor(PingPostProcessor)
        .build()
    )

    with pytest.raises(RuntimeError, match="behavior failed"):
        await app.mediator.send(Ping("x"))

    assert trace == ["first-before", "failing-behavior"]


@pytest.mark.asyncio
async def test_post_processor_failure_fails_whole_call(builder, trace):
    app = (
        builder.add_request_handler(PingHandler)
        .add_post_processor(FailingPostProcessor)
        .add_post_processor(PingPostProcessor)
        .build()
    )

    with pytest.raises(RuntimeError, match="post failed"):
        await app.mediator.send(Ping("x"))

    assert trace == ["handler", "failing-post"]


@pytest.mark.asyncio
async def test_send_without_stages_calls_handler_directly(builder, trace):
    app = builder.add_request_handler(PingHandler).build()

    await app.mediator.send(Ping("x"))

    assert trace == ["handler"]


@pytest.mark.asyncio
async def test_behavior_bound_to_request_type_does_not_wrap_others(builder, trace):
    app = (
        builder.add_request_handler(PingHandler)
        .add_request_handler(GetWeatherHandler)
        .add_behavior(FirstBehavior)
        .build()
    )

    await app.mediator.send(GetWeatherQuery(city="Rome"))

    assert trace == ["weather:Rome"]


@pytest.mark.asyncio
async def test_open_behavior_wraps_every_request_type(builder, trace):
    class TracingBehavior(PipelineBehavior):
        async def handle(self, request, nxt, cancellation):
            trace.append(f"open:{type(request).__name__}")
            return await nxt()

    app = (
        builder.add_request_handler(PingHandler)
        .add_request_handler(GetWeatherHandler)
        .add_behavior(TracingBehavior)
        .build()
    )

    await app.mediator.send(Ping("x"))
    await app.mediator.send(GetWeatherQuery(city="Rome"))

    assert trace == ["open:Ping", "handler", "open:GetWeatherQuery", "weather:Rome"]


@pytest.mark.asyncio
async def test_behavior_bound_to_base_class_applies_to_subclasses(builder, trace):
    @dataclass(frozen=True)
    class AuditedRequest(Request[str]):
        pass

    @dataclass(frozen=True)
    class DeleteUserCommand(AuditedRequest):
        user_id: int

    class DeleteUserHandler(RequestHandler[DeleteUserCommand, str]):
        async def handle(self, request, cancellation):
            trace.append("delete")
            return "deleted"

    class AuditBehavior(PipelineBehavior[AuditedRequest, str]):
        async def handle(self, request, nxt, cancellation):
            trace.append("audit")
            return await nxt()

    app = (
        builder.add_request_handler(DeleteUserHandler)
        .add_request_handler(PingHandler)
        .add_behavior(AuditBehavior)
        .build()
    )

    assert await app.mediator.send(DeleteUserCommand(user_id=1)) == "deleted"
    await app.mediator.send(Ping("x"))

    assert trace == ["audit", "delete", "handler"]


@pytest.mark.asyncio
async def test_behavior_instance_is_shared_between_calls(builder):
    class CountingBehavior(PipelineBehavior):
        def __init__(self):
            self.calls = 0

        async def handle(self, request, nxt, cancellation):
            self.calls += 1
            return await nxt()

    counter = CountingBehavior()
    app = builder.add_request_handler(PingHandler).add_behavior(counter).build()

    await app.mediator.send(Ping("a"))
    await app.mediator.send(Ping("b"))

    assert counter.calls == 2


@pytest.mark.asyncio
async def test_behavior_can_replace_response(builder):
    class UpperBehavior(PipelineBehavior[Ping, str]):
        async def handle(self, request, nxt, cancellation):
            return (await nxt()).upper()

    app = builder.add_request_handler(PingHandler).add_behavior(UpperBehavior).build()

    assert await app.mediator.send(Ping("x")) == "PONG:X"


@pytest.mark.asyncio
async def test_behavior_chain_run_standalone():
    calls = []

    class Tag(PipelineBehavior):
        def __init__(self, name):
            self.name = name

        async def handle(self, request, nxt, cancellation):
            calls.append(self.name)
            return await nxt()

    async def terminal():
        calls.append("terminal")
        return 42

    chain = BehaviorChain()
    chain.add(Tag("a"))
    chain.add(Tag("b"))

    assert await chain.run("req", terminal, CancellationToken()) == 42
    assert calls == ["a", "b", "terminal"]
