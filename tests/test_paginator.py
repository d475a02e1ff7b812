import logging

import pytest

from caproneiter import Page, PageOptions, PageRequest, PaginationState, Paginator
from caproneiter.exceptions import ResponseError

from fakes import FakeTransport, scroll_page, scroll_server, search_after_server


MATCH_ALL = {"match_all": {}}
FAST = dict(wait_ms=10)


def no_sleep(_seconds):
    pass


def make_paginator(transport, request=None, **options):
    request = request or PageRequest("test", query=MATCH_ALL)
    return Paginator(transport, request, PageOptions(**{**FAST, **options}), sleep=no_sleep)


class TestScrollSearch:
    def test_pages_then_single_clear(self):
        transport = FakeTransport(scroll_server([3, 3, 3, 0]))
        pages = list(make_paginator(transport))

        assert len(pages) == 3
        assert all(isinstance(p, Page) for p in pages)
        assert [p.body["count"] for p in pages] == [1, 2, 3]
        assert all(p.body["_scroll_id"] == "id" for p in pages)
        assert len(transport.fetches) == 4
        assert len(transport.clears) == 1
        assert transport.clears[0].body == {"scroll_id": ["id"]}
        assert transport.calls[-1].method == "DELETE"

    def test_no_clear_when_exhaustion_expires_cursor(self):
        transport = FakeTransport(scroll_server([3, 3, 3, 0]))
        pages = list(make_paginator(transport, clear_on_exhaustion=False))

        assert len(pages) == 3
        assert len(transport.fetches) == 4
        assert transport.clears == []

    def test_request_shape(self):
        transport = FakeTransport(scroll_server([3, 3, 0]))
        list(make_paginator(transport))

        first, second = transport.fetches[0], transport.fetches[1]
        assert first.method == "POST"
        assert first.path == "/test/_search"
        assert first.querystring == {"scroll": "1m"}
        assert first.body == {"query": MATCH_ALL}
        assert second.path == "/_search/scroll"
        assert second.body == {"scroll": "1m", "scroll_id": "id"}

    def test_custom_lifetime(self):
        transport = FakeTransport(scroll_server([1, 0]))
        list(make_paginator(transport, scroll="5m"))
        assert transport.fetches[0].querystring == {"scroll": "5m"}
        assert transport.fetches[1].body["scroll"] == "5m"

    def test_size_is_sent(self):
        transport = FakeTransport(scroll_server([1, 1, 1, 0]))
        pages = list(make_paginator(transport, PageRequest("test", query=MATCH_ALL, size=1)))
        assert [len(p.hits) for p in pages] == [1, 1, 1]
        assert transport.fetches[0].body["size"] == 1

    def test_first_page_empty(self):
        transport = FakeTransport(scroll_server([0]))
        assert list(make_paginator(transport)) == []
        assert len(transport.clears) == 1

    def test_missing_scroll_id_ends_iteration(self):
        responses = [scroll_page(3, scroll_id="id"), scroll_page(3, scroll_id=None)]

        def on_request(call):
            if call.method == "DELETE":
                return {"body": {}}
            return responses.pop(0)

        transport = FakeTransport(on_request)
        pages = list(make_paginator(transport))

        assert len(pages) == 2
        assert pages[-1].is_exhausted is True
        assert len(transport.fetches) == 2
        assert transport.clears[0].body == {"scroll_id": ["id"]}

    def test_new_scroll_ids_are_followed(self):
        tokens = iter(["a", "b", "c"])

        def on_request(call):
            if call.method == "DELETE":
                return {"body": {}}
            token = next(tokens)
            return scroll_page(0 if token == "c" else 2, scroll_id=token)

        transport = FakeTransport(on_request)
        list(make_paginator(transport))

        assert [c.body.get("scroll_id") for c in transport.fetches[1:]] == ["a", "b"]
        assert transport.clears[0].body == {"scroll_id": ["c"]}

    def test_filter_path_is_combined(self):
        transport = FakeTransport(scroll_server([1, 0]))
        request = PageRequest("test", query=MATCH_ALL, params={"filter_path": "hits.hits._id"})
        list(make_paginator(transport, request))
        assert transport.fetches[0].querystring["filter_path"] == "hits.hits._id,_scroll_id"

    def test_filter_path_not_added_when_absent(self):
        transport = FakeTransport(scroll_server([1, 0]))
        list(make_paginator(transport))
        assert "filter_path" not in transport.fetches[0].querystring

    def test_page_exposes_envelope(self):
        transport = FakeTransport(scroll_server([2, 0]))
        page = next(iter(make_paginator(transport)))
        assert page.status_code == 200
        assert page.documents == [{"n": 0}, {"n": 1}]
        assert len(page) == 2
        assert page.is_exhausted is False


class TestClear:
    def test_explicit_clear_stops_iteration(self):
        transport = FakeTransport(scroll_server([3, 3, 3, 3, 0]))
        seen = 0
        for page in make_paginator(transport):
            seen += 1
            if seen == 2:
                page.clear()

        assert seen == 2
        assert len(transport.fetches) == 2
        assert len(transport.clears) == 1
        assert transport.clears[0].body == {"scroll_id": ["id"]}

    def test_clear_is_idempotent(self):
        transport = FakeTransport(scroll_server([3, 3, 0]))
        paginator = make_paginator(transport)
        pages = iter(paginator)
        page = next(pages)

        page.clear()
        page.clear()
        paginator.clear()

        assert len(transport.clears) == 1
        assert paginator.state is PaginationState.CLOSED

    def test_abandoned_iteration_clears_once(self):
        transport = FakeTransport(scroll_server([3, 3, 3, 3, 0]))
        for number, _page in enumerate(make_paginator(transport), 1):
            if number == 2:
                break

        assert len(transport.fetches) == 2
        assert len(transport.clears) == 1
        assert transport.clears[0].body == {"scroll_id": ["id"]}

    def test_with_block_clears_on_exit(self):
        transport = FakeTransport(scroll_server([3, 3, 0]))
        with make_paginator(transport) as paginator:
            pages = iter(paginator)
            next(pages)

        assert paginator.closed
        assert len(transport.clears) == 1

    def test_release_ignores_missing_cursor_statuses(self):
        transport = FakeTransport(scroll_server([1, 0]))
        list(make_paginator(transport, ignore=(409,)))
        assert set(transport.clears[0].options.ignore) == {400, 404, 409}

    def test_release_failure_is_swallowed_and_logged(self, caplog):
        def on_request(call):
            if call.method == "DELETE":
                return {"body": {"error": "boom"}, "status": 500}
            return scroll_page(2)

        transport = FakeTransport(on_request)
        with caplog.at_level(logging.WARNING, logger="caproneiter.paginator"):
            for _page in make_paginator(transport):
                break

        assert len(transport.clears) == 1
        assert any("Failed to release scroll cursor" in r.message for r in caplog.records)

    def test_iterating_after_close_yields_nothing(self):
        transport = FakeTransport(scroll_server([3, 0]))
        paginator = make_paginator(transport)
        paginator.clear()
        assert list(paginator) == []
        assert transport.calls == []


class TestErrors:
    def test_non_retryable_error_propagates_and_clears(self):
        def on_request(call):
            if call.method == "DELETE":
                return {"body": {}}
            if call.path == "/_search/scroll":
                return {"body": {"error": {"type": "search_phase_execution_exception"}}, "status": 500}
            return scroll_page(3)

        transport = FakeTransport(on_request)
        seen = []
        with pytest.raises(ResponseError) as exc_info:
            for page in make_paginator(transport):
                seen.append(page)

        assert exc_info.value.status_code == 500
        assert exc_info.value.reason == "search_phase_execution_exception"
        assert len(seen) == 1
        assert len(transport.fetches) == 2
        assert len(transport.clears) == 1

    def test_release_failure_does_not_mask_error(self):
        def on_request(call):
            if call.method == "DELETE":
                return {"body": {}, "status": 503}
            if call.path == "/_search/scroll":
                return {"body": {}, "status": 400}
            return scroll_page(3)

        transport = FakeTransport(on_request)
        with pytest.raises(ResponseError) as exc_info:
            list(make_paginator(transport))
        assert exc_info.value.status_code == 400

    def test_ignored_status_is_not_an_error(self):
        transport = FakeTransport(lambda call: {"body": {"error": "index_not_found"}, "status": 404})
        paginator = make_paginator(transport, ignore=(404,))
        assert list(paginator) == []
        assert len(transport.fetches) == 1
        assert transport.clears == []


class TestRetry:
    def test_retry_then_continue(self):
        count = {"n": 0}

        def on_request(call):
            count["n"] += 1
            if count["n"] == 1:
                return {"body": {}, "status": 429}
            if call.method == "DELETE":
                return {"body": {}}
            return scroll_page(0 if count["n"] == 4 else 3, count=count["n"])

        transport = FakeTransport(on_request)
        pages = list(make_paginator(transport))

        assert [p.body["count"] for p in pages] == [2, 3]
        assert count["n"] == 5
        assert transport.calls[-1].method == "DELETE"

    def test_retry_exhausted_on_first_page(self):
        transport = FakeTransport(lambda call: {"body": {}, "status": 429})
        with pytest.raises(ResponseError) as exc_info:
            list(make_paginator(transport, max_retries=5, ignore=(404,)))
        assert exc_info.value.status_code == 429
        assert len(transport.calls) == 6

    def test_no_retry_when_max_retries_is_zero(self):
        transport = FakeTransport(lambda call: {"body": {}, "status": 429})
        with pytest.raises(ResponseError):
            list(make_paginator(transport, max_retries=0))
        assert len(transport.calls) == 1

    def test_retry_throws_later(self):
        count = {"n": 0}

        def on_request(call):
            count["n"] += 1
            if call.method == "DELETE":
                return {"body": {}}
            if count["n"] > 1:
                return {"body": {}, "status": 429}
            return scroll_page(3, count=count["n"])

        transport = FakeTransport(on_request)
        seen = []
        with pytest.raises(ResponseError) as exc_info:
            for page in make_paginator(transport, max_retries=5):
                seen.append(page.body["count"])

        assert exc_info.value.status_code == 429
        assert seen == [1]
        assert len(transport.fetches) == 1 + 6
        assert len(transport.clears) == 1

    def test_attempt_counter_resets_per_page(self):
        count = {"n": 0}

        def on_request(call):
            if call.method == "DELETE":
                return {"body": {}}
            count["n"] += 1
            # every page fails once before succeeding
            if count["n"] % 2 == 1:
                return {"body": {}, "status": 429}
            return scroll_page(0 if count["n"] == 8 else 2)

        transport = FakeTransport(on_request)
        pages = list(make_paginator(transport, max_retries=1))
        assert len(pages) == 3

    def test_backoff_uses_wait(self):
        slept = []
        responses = [{"body": {}, "status": 429}, scroll_page(1), scroll_page(0), {"body": {}}]
        transport = FakeTransport(lambda call: responses.pop(0))
        paginator = Paginator(
            transport,
            PageRequest("test"),
            PageOptions(wait_ms=1500),
            sleep=slept.append
        )
        list(paginator)
        assert slept == [1.5]


class TestSearchAfter:
    DOCS = [{"id": i, "title": f"doc {i}"} for i in (7, 3, 9, 1, 5, 2, 8, 4, 6, 10)]

    def test_pages_cover_everything_in_order(self):
        transport = FakeTransport(search_after_server(self.DOCS))
        request = PageRequest("test", query=MATCH_ALL, size=3)
        pages = list(make_paginator(transport, request, search_after=True))

        ids = [doc["id"] for page in pages for doc in page.documents]
        assert ids == list(range(1, 11))
        assert [len(p) for p in pages] == [3, 3, 3, 1]
        assert pages[-1].is_exhausted is True
        assert transport.clears == []

    def test_sort_values_are_monotonic(self):
        transport = FakeTransport(search_after_server(self.DOCS))
        request = PageRequest("test", size=4)
        sort_values = [
            hit["sort"]
            for page in make_paginator(transport, request, search_after=True)
            for hit in page.hits
        ]
        assert sort_values == sorted(sort_values)
        assert len(sort_values) == len({tuple(v) for v in sort_values})

    def test_requests_carry_previous_sort_values(self):
        transport = FakeTransport(search_after_server(self.DOCS))
        request = PageRequest("test", size=4)
        list(make_paginator(transport, request, search_after=True))

        assert "search_after" not in transport.calls[0].body
        assert transport.calls[1].body["search_after"] == [4]
        assert transport.calls[2].body["search_after"] == [8]
        assert all(c.body["sort"] == [{"id": "asc"}] for c in transport.calls)
        assert len(transport.calls) == 3

    def test_exact_multiple_ends_on_empty_page(self):
        transport = FakeTransport(search_after_server(self.DOCS))
        request = PageRequest("test", size=5)
        pages = list(make_paginator(transport, request, search_after=True))

        assert [len(p) for p in pages] == [5, 5]
        assert len(transport.calls) == 3

    def test_abandoning_search_after_sends_nothing(self):
        transport = FakeTransport(search_after_server(self.DOCS))
        request = PageRequest("test", size=2)
        for _page in make_paginator(transport, request, search_after=True):
            break
        assert len(transport.calls) == 1

    def test_state_transitions(self):
        transport = FakeTransport(search_after_server(self.DOCS))
        paginator = make_paginator(transport, PageRequest("test", size=6), search_after=True)
        assert paginator.state is PaginationState.IDLE
        assert paginator.kind == "search_after"

        pages = iter(paginator)
        next(pages)
        assert paginator.state is PaginationState.YIELDING
        assert paginator.cursor.sort_values == [6]

        next(pages)
        with pytest.raises(StopIteration):
            next(pages)
        assert paginator.state is PaginationState.CLOSED


def test_independent_paginators_do_not_share_state():
    first = FakeTransport(scroll_server([2, 2, 0], scroll_id="first"))
    second = FakeTransport(scroll_server([1, 0], scroll_id="second"))

    a = iter(make_paginator(first))
    b = iter(make_paginator(second))
    next(a)
    next(b)
    assert len(list(a)) == 1
    assert len(list(b)) == 0

    assert first.clears[0].body == {"scroll_id": ["first"]}
    assert second.clears[0].body == {"scroll_id": ["second"]}
