"""
Tests for the GraphQL fetch client and page parsing.
"""

import asyncio

import aiohttp
import pytest
from aioresponses import aioresponses
from yarl import URL

from rollsync.exceptions import ProtocolError, TransportError
from rollsync.sync.fetcher import GraphQLFetcher, parse_page
from rollsync.sync.types import PayloadEncoding, Stream

URL_ = "http://localhost:5000/graphql"


def connection(edges=(), end_cursor=None, has_next_page=False):
    return {
        "edges": list(edges),
        "pageInfo": {
            "startCursor": edges[0]["cursor"] if edges else None,
            "endCursor": end_cursor,
            "hasNextPage": has_next_page,
            "hasPreviousPage": False,
        },
    }


def body(outputs=None, inputs=None, reports=None):
    return {
        "data": {
            "outputs": outputs or connection(),
            "inputs": inputs or connection(),
            "reports": reports or connection(),
        }
    }


class TestParsePage:
    def test_empty_source(self):
        page = parse_page(body())
        for stream in (Stream.OUTPUTS, Stream.INPUTS, Stream.REPORTS):
            assert page.get(stream).is_empty
            assert page.get(stream).page_info.end_cursor is None
        assert page.entry_count == 0

    def test_entries_preserve_order(self):
        edges = [
            {"cursor": "o1", "node": {"index": 1, "inputIndex": 0, "blob": "0x01"}},
            {"cursor": "o2", "node": {"index": 2, "inputIndex": 0, "blob": "0x02"}},
        ]
        page = parse_page(body(outputs=connection(edges, end_cursor="o2", has_next_page=True)))

        assert [e.index for e in page.outputs.entries] == [1, 2]
        assert page.outputs.entries[0].cursor == "o1"
        assert page.outputs.page_info.start_cursor == "o1"
        assert page.outputs.page_info.end_cursor == "o2"
        assert page.outputs.page_info.has_next_page is True

    def test_indices_as_decimal_strings(self):
        edges = [{"cursor": "r", "node": {"index": "12", "inputIndex": "5", "blob": "0xdeadbeef"}}]
        entry = parse_page(body(reports=connection(edges, end_cursor="r"))).reports.entries[0]
        assert entry.index == 12
        assert entry.input_index == 5

    def test_inputs_ignore_input_index(self):
        edges = [{"cursor": "i", "node": {"index": 3, "blob": "0x"}}]
        entry = parse_page(body(inputs=connection(edges))).inputs.entries[0]
        assert entry.input_index is None

    def test_output_proof_and_encoding(self):
        proof = {"validityInputIndexWithinEpoch": 0, "validityMachineStateHash": "0xab"}
        edges = [
            {
                "cursor": "o",
                "node": {
                    "index": 0,
                    "inputIndex": 0,
                    "blob": "0x",
                    "payloadEncoding": "V1",
                    "proofByInputIndexAndOutputIndex": proof,
                },
            }
        ]
        entry = parse_page(body(outputs=connection(edges))).outputs.entries[0]
        assert entry.encoding is PayloadEncoding.V1
        assert entry.proof == proof

    def test_only_requested_streams(self):
        page = parse_page({"data": {"reports": connection()}}, [Stream.REPORTS])
        assert page.outputs is None
        assert page.inputs is None
        assert page.reports is not None

    def test_graphql_errors(self):
        with pytest.raises(ProtocolError, match="Cannot query field"):
            parse_page({"errors": [{"message": "Cannot query field 'foo'"}], "data": None})

    def test_missing_data(self):
        with pytest.raises(ProtocolError):
            parse_page({"data": None})

    def test_missing_stream(self):
        with pytest.raises(ProtocolError, match="data.inputs"):
            parse_page({"data": {"outputs": connection(), "reports": connection()}})

    def test_missing_page_info(self):
        with pytest.raises(ProtocolError):
            parse_page(body(outputs={"edges": []}))

    @pytest.mark.parametrize("index", ["abc", 1.5, True, None, "-1"])
    def test_non_integer_index(self, index):
        edges = [{"cursor": "o", "node": {"index": index, "inputIndex": 0, "blob": "0x"}}]
        with pytest.raises(ProtocolError):
            parse_page(body(outputs=connection(edges)))

    def test_missing_blob(self):
        edges = [{"cursor": "o", "node": {"index": 0, "inputIndex": 0}}]
        with pytest.raises(ProtocolError, match="blob"):
            parse_page(body(outputs=connection(edges)))

    def test_unknown_encoding(self):
        edges = [{"cursor": "o", "node": {"index": 0, "inputIndex": 0, "blob": "0x", "payloadEncoding": "v9"}}]
        with pytest.raises(ProtocolError):
            parse_page(body(outputs=connection(edges)))

    def test_body_not_an_object(self):
        with pytest.raises(ProtocolError):
            parse_page([])

    def test_errors_must_be_a_list(self):
        with pytest.raises(ProtocolError, match="'errors' must be a list"):
            parse_page({"errors": 1, "data": None})

    @pytest.mark.parametrize("flag", ["false", 0, "true"])
    def test_page_flags_must_be_booleans(self, flag):
        connection_ = connection(end_cursor="r1")
        connection_["pageInfo"]["hasNextPage"] = flag
        with pytest.raises(ProtocolError, match="hasNextPage"):
            parse_page(body(reports=connection_))

    def test_absent_page_flags_default_to_false(self):
        page = parse_page(body(reports={"edges": [], "pageInfo": {"endCursor": "r1"}}))
        assert page.reports.page_info.has_next_page is False
        assert page.reports.page_info.has_previous_page is False

    @pytest.mark.parametrize("stream", ["outputs", "reports"])
    def test_missing_input_index(self, stream):
        edges = [{"cursor": "x", "node": {"index": 0, "blob": "0x"}}]
        with pytest.raises(ProtocolError, match="inputIndex") as exc_info:
            parse_page(body(**{stream: connection(edges)}))
        assert exc_info.value.retryable is True


class TestGraphQLFetcher:
    def test_init(self):
        fetcher = GraphQLFetcher(URL_, streams=[Stream.REPORTS, Stream.OUTPUTS], timeout=5, headers={"X-Key": "k"})
        assert fetcher.streams == (Stream.OUTPUTS, Stream.REPORTS)
        assert fetcher.timeout.total == 5
        assert fetcher.default_headers["X-Key"] == "k"
        assert fetcher.session is None

    @pytest.mark.asyncio
    async def test_fetch_posts_query(self):
        with aioresponses() as m:
            m.post(URL_, payload=body())
            async with GraphQLFetcher(URL_) as fetcher:
                page = await fetcher.fetch("query { x }")

            assert page.entry_count == 0
            request = m.requests[("POST", URL(URL_))][0]
            assert request.kwargs["json"] == {"query": "query { x }", "variables": {}, "operationName": None}

    @pytest.mark.asyncio
    async def test_one_call_per_fetch(self):
        with aioresponses() as m:
            m.post(URL_, status=503, body="unavailable")
            async with GraphQLFetcher(URL_) as fetcher:
                with pytest.raises(ProtocolError):
                    await fetcher.fetch("query { x }")
            assert len(m.requests[("POST", URL(URL_))]) == 1

    @pytest.mark.asyncio
    async def test_bad_status(self):
        with aioresponses() as m:
            m.post(URL_, status=500, body="boom")
            async with GraphQLFetcher(URL_) as fetcher:
                with pytest.raises(ProtocolError) as exc_info:
                    await fetcher.fetch("query { x }")
        assert exc_info.value.details["status"] == 500
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_not_json(self):
        with aioresponses() as m:
            m.post(URL_, status=200, body="<html>")
            async with GraphQLFetcher(URL_) as fetcher:
                with pytest.raises(ProtocolError, match="not JSON"):
                    await fetcher.fetch("query { x }")

    @pytest.mark.asyncio
    async def test_body_not_utf8(self):
        with aioresponses() as m:
            m.post(URL_, status=200, body=b"\xff\xfe garbage")
            async with GraphQLFetcher(URL_) as fetcher:
                with pytest.raises(ProtocolError, match="not JSON") as exc_info:
                    await fetcher.fetch("query { x }")
        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.__cause__, UnicodeDecodeError)

    @pytest.mark.asyncio
    async def test_bad_status_with_binary_body(self):
        with aioresponses() as m:
            m.post(URL_, status=502, body=b"\xff\xfe")
            async with GraphQLFetcher(URL_) as fetcher:
                with pytest.raises(ProtocolError, match="502"):
                    await fetcher.fetch("query { x }")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        with aioresponses() as m:
            m.post(URL_, exception=aiohttp.ClientConnectionError("refused"))
            async with GraphQLFetcher(URL_) as fetcher:
                with pytest.raises(TransportError) as exc_info:
                    await fetcher.fetch("query { x }")
        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.__cause__, aiohttp.ClientConnectionError)

    @pytest.mark.asyncio
    async def test_timeout(self):
        with aioresponses() as m:
            m.post(URL_, exception=asyncio.TimeoutError())
            async with GraphQLFetcher(URL_, timeout=1) as fetcher:
                with pytest.raises(TransportError, match="Timed out"):
                    await fetcher.fetch("query { x }")

    @pytest.mark.asyncio
    async def test_session_closed_on_exit(self):
        fetcher = GraphQLFetcher(URL_)
        async with fetcher:
            assert fetcher.session is not None
        assert fetcher.session is None
