"""
UrlFrontierImpl 的 pytest 测试套件
覆盖：去重、重定向目标登记、深度限制、协议过滤、主机轮转、限速归还、排空判定、并发
"""

import threading

import pytest
from hypothesis import given, settings, strategies as st

from tarantula.crawl.domain.value_objects.offer_result import RejectReason
from tarantula.crawl.infrastructure.url_frontier_impl import UrlFrontierImpl


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def frontier(clock):
    return UrlFrontierImpl(run_id="run-1", max_depth=2, clock=clock)


# ============================================================================
# offer
# ============================================================================

class TestOffer:

    def test_accepts_new_url(self, frontier):
        result = frontier.offer("http://example.com/a", 0)

        assert result.accepted
        assert result.task.url == "http://example.com/a"
        assert result.task.depth == 0
        assert result.task.host == "example.com"
        assert result.task.run_id == "run-1"
        assert frontier.counts() == (1, 0, 0)

    def test_duplicate_after_normalization(self, frontier):
        frontier.offer("http://example.com/a", 0)
        result = frontier.offer("HTTP://EXAMPLE.com:80/a#frag", 1)

        assert not result.accepted
        assert result.reason == RejectReason.DUPLICATE

    def test_depth_exceeded(self, frontier):
        assert frontier.offer("http://example.com/deep", 2).accepted
        result = frontier.offer("http://example.com/deeper", 3)

        assert result.reason == RejectReason.DEPTH_EXCEEDED

    def test_scheme_unsupported(self, frontier):
        result = frontier.offer("ftp://example.com/file", 1)
        assert result.reason == RejectReason.SCHEME_UNSUPPORTED

    def test_malformed(self, frontier):
        assert frontier.offer("http://", 0).reason == RejectReason.MALFORMED
        assert frontier.offer("", 0).reason == RejectReason.MALFORMED

    def test_relative_url_resolved_against_referrer(self, frontier):
        result = frontier.offer("../b", 1, referrer="http://example.com/x/y/page")
        assert result.task.url == "http://example.com/x/b"
        assert result.task.referrer == "http://example.com/x/y/page"

    def test_in_flight_and_visited_are_duplicates(self, frontier):
        frontier.offer("http://example.com/a", 0)
        task = frontier.take(timeout=0)
        assert frontier.offer("http://example.com/a", 1).reason == RejectReason.DUPLICATE

        frontier.mark_done(task)
        assert frontier.offer("http://example.com/a", 1).reason == RejectReason.DUPLICATE
        assert frontier.is_visited("http://example.com/a")

    def test_negative_max_depth_rejected(self):
        with pytest.raises(ValueError):
            UrlFrontierImpl(run_id="r", max_depth=-1)


# ============================================================================
# take / mark_done
# ============================================================================

class TestTake:

    def test_take_moves_task_to_in_flight(self, frontier):
        frontier.offer("http://example.com/a", 0)
        task = frontier.take(timeout=0)

        assert task.url == "http://example.com/a"
        assert frontier.counts() == (0, 1, 0)

    def test_take_returns_none_when_drained(self, frontier):
        assert frontier.take() is None
        assert frontier.is_drained()

    def test_take_times_out_while_work_in_flight(self, frontier):
        frontier.offer("http://example.com/a", 0)
        frontier.take(timeout=0)
        # 在途任务可能产生新链接，不能视为排空
        assert frontier.take(timeout=0) is None
        assert not frontier.is_drained()

    def test_round_robin_between_hosts(self, frontier):
        for path in ("1", "2", "3"):
            frontier.offer(f"http://a.com/{path}", 1)
        frontier.offer("http://b.com/1", 1)
        frontier.offer("http://c.com/1", 1)

        hosts = [frontier.take(timeout=0).host for _ in range(5)]

        assert hosts[:3] == ["a.com", "b.com", "c.com"]
        assert hosts[3:] == ["a.com", "a.com"]

    def test_fifo_within_host(self, frontier):
        frontier.offer("http://a.com/1", 1)
        frontier.offer("http://a.com/2", 1)
        assert frontier.take(timeout=0).url == "http://a.com/1"
        assert frontier.take(timeout=0).url == "http://a.com/2"

    def test_mark_done_adds_to_visited(self, frontier):
        frontier.offer("http://example.com/a", 0)
        task = frontier.take(timeout=0)
        frontier.mark_done(task)

        assert frontier.counts() == (0, 0, 1)
        assert frontier.is_drained()

    def test_blocked_take_wakes_on_mark_done(self, frontier):
        frontier.offer("http://example.com/a", 0)
        task = frontier.take(timeout=0)
        results = []

        waiter = threading.Thread(target=lambda: results.append(frontier.take()))
        waiter.start()
        frontier.mark_done(task)
        waiter.join(timeout=5)

        assert not waiter.is_alive()
        assert results == [None]

    def test_blocked_take_wakes_on_offer(self):
        frontier = UrlFrontierImpl(run_id="r", max_depth=3)
        frontier.offer("http://example.com/a", 0)
        parent = frontier.take(timeout=0)
        results = []

        waiter = threading.Thread(target=lambda: results.append(frontier.take(timeout=5)))
        waiter.start()
        frontier.offer("http://example.com/b", 1)
        waiter.join(timeout=5)

        assert results[0].url == "http://example.com/b"
        frontier.mark_done(parent)

    def test_close_releases_waiters(self, frontier):
        frontier.offer("http://example.com/a", 0)
        frontier.take(timeout=0)
        results = []

        waiter = threading.Thread(target=lambda: results.append(frontier.take()))
        waiter.start()
        frontier.close()
        waiter.join(timeout=5)

        assert results == [None]
        assert frontier.is_closed

    def test_mark_in_flight_removes_pending_task(self, frontier):
        task = frontier.offer("http://example.com/a", 0).task

        assert frontier.mark_in_flight(task)
        assert frontier.counts() == (0, 1, 0)
        assert not frontier.mark_in_flight(task)


# ============================================================================
# requeue
# ============================================================================

class TestRequeue:

    def test_requeue_defers_host(self, frontier, clock):
        frontier.offer("http://a.com/1", 1)
        task = frontier.take(timeout=0)

        frontier.requeue(task, 2.0)
        assert frontier.counts() == (1, 0, 0)
        assert frontier.take(timeout=0) is None

        clock.advance(2.0)
        assert frontier.take(timeout=0).url == "http://a.com/1"

    def test_other_hosts_are_not_blocked(self, frontier):
        frontier.offer("http://a.com/1", 1)
        frontier.offer("http://b.com/1", 1)
        task = frontier.take(timeout=0)
        assert task.host == "a.com"

        frontier.requeue(task, 10.0)
        assert frontier.take(timeout=0).host == "b.com"

    def test_requeued_task_goes_to_front(self, frontier, clock):
        frontier.offer("http://a.com/1", 1)
        frontier.offer("http://a.com/2", 1)
        task = frontier.take(timeout=0)
        frontier.requeue(task, 0.5)

        clock.advance(0.5)
        assert frontier.take(timeout=0).url == "http://a.com/1"

    def test_requeue_unknown_task_is_ignored(self, frontier):
        task = frontier.offer("http://a.com/1", 1).task
        frontier.requeue(task, 1.0)
        assert frontier.counts() == (1, 0, 0)

    def test_requeued_url_still_deduplicated(self, frontier):
        frontier.offer("http://a.com/1", 1)
        frontier.requeue(frontier.take(timeout=0), 1.0)
        assert frontier.offer("http://a.com/1", 1).reason == RejectReason.DUPLICATE


# ============================================================================
# claim
# ============================================================================

class TestClaim:

    def test_claim_marks_visited(self, frontier):
        assert frontier.claim("http://a.com/target")

        assert frontier.is_visited("http://a.com/target")
        assert frontier.counts() == (0, 0, 1)
        assert frontier.offer("http://a.com/target", 1).reason == RejectReason.DUPLICATE

    def test_known_urls_cannot_be_claimed(self, frontier):
        frontier.offer("http://a.com/pending", 1)
        taken = frontier.mark_in_flight(frontier.offer("http://c.com/x", 1).task)
        frontier.claim("http://a.com/visited")

        assert taken
        assert not frontier.claim("http://a.com/pending")
        assert not frontier.claim("http://c.com/x")
        assert not frontier.claim("http://a.com/visited")

    def test_concurrent_claims_have_one_winner(self):
        frontier = UrlFrontierImpl(run_id="r", max_depth=1)
        wins = []
        barrier = threading.Barrier(8)

        def claimer():
            barrier.wait()
            if frontier.claim("http://a.com/target"):
                wins.append(threading.get_ident())

        threads = [threading.Thread(target=claimer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert len(wins) == 1


# ============================================================================
# 并发
# ============================================================================

class TestConcurrency:

    def test_each_url_dispatched_once(self):
        frontier = UrlFrontierImpl(run_id="r", max_depth=5)
        urls = [f"http://h{i % 5}.com/{i}" for i in range(200)]
        taken = []
        taken_lock = threading.Lock()

        def producer():
            for url in urls:
                frontier.offer(url, 1)

        def consumer():
            while True:
                task = frontier.take(timeout=0.5)
                if task is None:
                    return
                with taken_lock:
                    taken.append(task.url)
                frontier.mark_done(task)

        producers = [threading.Thread(target=producer) for _ in range(4)]
        for p in producers:
            p.start()
        for p in producers:
            p.join()

        consumers = [threading.Thread(target=consumer) for _ in range(4)]
        for c in consumers:
            c.start()
        for c in consumers:
            c.join(timeout=10)

        assert sorted(taken) == sorted(urls)
        assert frontier.counts() == (0, 0, 200)


_EQUIVALENT = {
    "http://a.com/": "a-root",
    "http://A.com:80/": "a-root",
    "http://a.com/#x": "a-root",
    "http://a.com/p": "a-p",
    "http://a.com/p#y": "a-p",
    "https://a.com/p": "a-p-https",
    "http://b.com/p": "b-p",
    "HTTP://B.COM/p": "b-p",
}


class TestDedupProperty:

    @settings(max_examples=50, deadline=None)
    @given(st.lists(st.sampled_from(sorted(_EQUIVALENT)), min_size=1, max_size=30))
    def test_accepted_count_equals_distinct_normalized(self, offered):
        frontier = UrlFrontierImpl(run_id="r", max_depth=1)
        accepted = [frontier.offer(url, 1).accepted for url in offered]

        assert sum(accepted) == len({_EQUIVALENT[u] for u in offered})
