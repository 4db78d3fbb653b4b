"""
Tests for query handler construction and request orchestration.
"""

import asyncio
from unittest.mock import Mock

import pytest

from conftest import FakeEngine, FakeInboundRequest, RecordingResponse, chunks_of
from query_http.exceptions import ArgumentCountError, ConfigurationError, HttpQueryError
from query_http.handler import QueryHandler, query_handler
from query_http.middleware import ErrorHandlerMiddleware, get_current_request_id
from query_http.models import Forwarded, Handled, QueryFailure, SingleResult, StreamedResult
from query_http.options import CallableOptions, StaticOptions


class TestConstruction:
    """Configuration faults surface when the handler is built."""

    def test_missing_options(self):
        with pytest.raises(ConfigurationError, match="requires options"):
            query_handler(engine=FakeEngine())

    def test_none_options(self):
        with pytest.raises(ConfigurationError, match="requires options"):
            query_handler(None, engine=FakeEngine())

    def test_two_arguments(self):
        with pytest.raises(ArgumentCountError, match="exactly one argument, got 2") as exc_info:
            query_handler({"schema": "s"}, {"extra": True}, engine=FakeEngine())

        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 2
        assert isinstance(exc_info.value, ConfigurationError)

    def test_missing_engine(self):
        with pytest.raises(ConfigurationError, match="requires an engine"):
            query_handler({"schema": "s"}, engine=None)

    def test_static_options_wrapped(self):
        handler = query_handler({"schema": "s"}, engine=FakeEngine())

        assert isinstance(handler, QueryHandler)
        assert isinstance(handler.options, StaticOptions)

    def test_callable_options_wrapped(self):
        handler = query_handler(lambda req, res: {"schema": "s"}, engine=FakeEngine())

        assert isinstance(handler.options, CallableOptions)


class TestRequestHandling:
    """End-to-end behavior of one handler call against fake transports."""

    @pytest.mark.asyncio
    async def test_post_single_result(self):
        engine = FakeEngine(SingleResult(body='{"data":{}}'))
        handler = query_handler({"schema": "s"}, engine=engine)
        response = RecordingResponse()

        result = await handler(FakeInboundRequest("POST", body={"query": "{ hello }"}), response)

        assert result == Handled("single")
        assert response.status_code == 200
        assert response.body == b'{"data":{}}'

        execution_request = engine.requests[0]
        assert execution_request.method == "POST"
        assert execution_request.query == {"query": "{ hello }"}
        assert execution_request.options == {"schema": "s"}
        assert execution_request.request.url == "http://testserver/graphql"

    @pytest.mark.asyncio
    async def test_get_uses_query_string(self):
        engine = FakeEngine(StreamedResult(responses=chunks_of('{"a":1}', '{"b":2}')))
        handler = query_handler({"schema": "s"}, engine=engine)
        response = RecordingResponse()
        inbound = FakeInboundRequest("GET", body={"ignored": True}, query_params={"query": "{ a b }"})

        result = await handler(inbound, response)

        assert result == Handled("streamed")
        assert engine.requests[0].query == {"query": "{ a b }"}
        assert response.headers["Content-Type"] == 'multipart/mixed; boundary="-"'
        assert response.body.endswith(b"\r\n-----\r\n")

    @pytest.mark.asyncio
    async def test_recognized_error_rendered(self):
        handler = query_handler({"schema": "s"}, engine=FakeEngine(error=HttpQueryError(400, "Syntax Error")))
        response = RecordingResponse()

        result = await handler(FakeInboundRequest(body={"query": "{"}), response)

        assert result == Handled("failure")
        assert response.status_code == 400
        assert response.body == b"Syntax Error"

    @pytest.mark.asyncio
    async def test_returned_failure_rendered(self):
        outcome = QueryFailure(HttpQueryError(422, "Unprocessable"))
        handler = query_handler({"schema": "s"}, engine=FakeEngine(outcome))
        response = RecordingResponse()

        await handler(FakeInboundRequest(body={}), response)

        assert response.status_code == 422
        assert response.body == b"Unprocessable"

    @pytest.mark.asyncio
    async def test_unrecognized_error_forwarded_to_next_handler(self):
        error = KeyError("resolver")
        handler = query_handler({"schema": "s"}, engine=FakeEngine(error=error))
        response = RecordingResponse()
        next_handler = Mock()

        result = await handler(FakeInboundRequest(body={}), response, next_handler)

        assert isinstance(result, Forwarded)
        assert result.error is error
        next_handler.assert_called_once_with(error)
        assert response.written is False

    @pytest.mark.asyncio
    async def test_async_next_handler_awaited(self):
        error = RuntimeError("boom")
        handler = query_handler({"schema": "s"}, engine=FakeEngine(error=error))
        seen = []

        async def next_handler(err):
            seen.append(err)

        await handler(FakeInboundRequest(body={}), RecordingResponse(), next_handler)

        assert seen == [error]

    @pytest.mark.asyncio
    async def test_next_handler_sees_request_context(self):
        handler = query_handler({"schema": "s"}, engine=FakeEngine(error=RuntimeError("boom")))
        rendered = []

        def next_handler(err):
            rendered.append(ErrorHandlerMiddleware(logger=Mock()).process_error(err))

        await handler(FakeInboundRequest("get"), RecordingResponse(), next_handler)

        context = rendered[0]["details"]["request_context"]
        assert context["metadata"] == {"method": "GET", "outcome": "failure"}
        assert rendered[0]["request_id"] == context["request_id"]
        assert get_current_request_id() is None

    @pytest.mark.asyncio
    async def test_forwarded_without_next_handler(self):
        handler = query_handler({"schema": "s"}, engine=FakeEngine(error=ValueError("x")))
        response = RecordingResponse()

        result = await handler(FakeInboundRequest(body={}), response)

        assert result.forwarded is True
        assert response.written is False

    @pytest.mark.asyncio
    async def test_nothing_written_before_engine_settles(self):
        response = RecordingResponse()
        gate = asyncio.Event()
        snapshots = []

        class SlowEngine:
            async def execute(self, request):
                await gate.wait()
                snapshots.append(response.written)
                return SingleResult(body="{}")

        handler = query_handler({"schema": "s"}, engine=SlowEngine())
        task = asyncio.create_task(handler(FakeInboundRequest(body={}), response))
        await asyncio.sleep(0)
        assert response.written is False

        gate.set()
        await task

        assert snapshots == [False]
        assert response.body == b"{}"

    @pytest.mark.asyncio
    async def test_unsupported_engine_result_forwarded(self):
        handler = query_handler({"schema": "s"}, engine=FakeEngine({"data": {}}))
        response = RecordingResponse()

        result = await handler(FakeInboundRequest(body={}), response)

        assert isinstance(result, Forwarded)
        assert isinstance(result.error, TypeError)
        assert response.written is False


class TestOptionsResolution:
    """Options are resolved once per request before the engine runs."""

    @pytest.mark.asyncio
    async def test_sync_function_receives_request_and_response(self):
        engine = FakeEngine(SingleResult(body="{}"))
        calls = []

        def options(req, res):
            calls.append((req, res))
            return {"user": req.headers.get("x-user")}

        handler = query_handler(options, engine=engine)
        inbound = FakeInboundRequest(body={}, headers={"x-user": "ada"})
        response = RecordingResponse()

        await handler(inbound, response)
        await handler(inbound, response)

        assert calls == [(inbound, response), (inbound, response)]
        assert engine.requests[0].options == {"user": "ada"}

    @pytest.mark.asyncio
    async def test_async_function(self):
        engine = FakeEngine(SingleResult(body="{}"))

        async def options(req, res):
            return {"schema": "async"}

        await query_handler(options, engine=engine)(FakeInboundRequest(body={}), RecordingResponse())

        assert engine.requests[0].options == {"schema": "async"}

    @pytest.mark.asyncio
    async def test_failing_resolver_becomes_500(self):
        engine = FakeEngine(SingleResult(body="{}"))

        def options(req, res):
            raise ValueError("schema missing")

        response = RecordingResponse()
        result = await query_handler(options, engine=engine)(FakeInboundRequest(body={}), response)

        assert result == Handled("failure")
        assert engine.requests == []
        assert response.status_code == 500
        assert response.headers["Content-Type"] == "application/json"
        assert b"Invalid options provided to the query server: schema missing" in response.body

    @pytest.mark.asyncio
    async def test_resolver_returning_none_becomes_500(self):
        engine = FakeEngine(SingleResult(body="{}"))
        response = RecordingResponse()

        await query_handler(lambda req, res: None, engine=engine)(FakeInboundRequest(body={}), response)

        assert response.status_code == 500
        assert engine.requests == []


class TestMalformedBody:
    """A body that cannot be parsed is a recognized 400."""

    @pytest.mark.asyncio
    async def test_body_parse_error_rendered(self):
        class BrokenBodyRequest(FakeInboundRequest):
            @property
            def body(self):
                raise HttpQueryError(400, "POST body sent invalid JSON.")

            @body.setter
            def body(self, value):
                pass

        engine = FakeEngine(SingleResult(body="{}"))
        response = RecordingResponse()

        await query_handler({"schema": "s"}, engine=engine)(BrokenBodyRequest("POST"), response)

        assert response.status_code == 400
        assert response.body == b"POST body sent invalid JSON."
        assert engine.requests == []
