import pytest

from csirotation.workqueue import (
    MAX_NUM_OF_REQUEUES,
    RateLimitingQueue,
    handle_error,
)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def queue(clock):
    return RateLimitingQueue(clock)


def test_handle_error_sequence_from_source(queue, clock):
    handle_error(queue, RuntimeError("failed error"), "key1", False)
    assert len(queue) == 0
    clock.advance(11)
    assert len(queue) == 1

    for i in range(5):
        clock.advance(1)
        handle_error(queue, RuntimeError("failed error"), "key1", True)
        assert queue.num_requeues("key1") == i + 1
        assert queue.get() == "key1"
        queue.done("key1")

    handle_error(queue, RuntimeError("failed error"), "key1", True)
    assert queue.num_requeues("key1") == 0
    clock.advance(1)
    assert len(queue) == 1


def test_handle_error_success_forgets(queue, clock):
    queue.add_rate_limited("k")
    assert queue.num_requeues("k") == 1
    handle_error(queue, None, "k", True)
    assert queue.num_requeues("k") == 0


def test_handle_error_not_rate_limited_waits_ten_seconds(queue, clock):
    handle_error(queue, ValueError("boom"), "k", False)
    clock.advance(9.9)
    assert queue.get() is None
    clock.advance(0.2)
    assert queue.get() == "k"


def test_handle_error_budget_exhausted_drops(queue, clock):
    for _ in range(MAX_NUM_OF_REQUEUES):
        queue.add_rate_limited("k")
    assert queue.num_requeues("k") == MAX_NUM_OF_REQUEUES
    handle_error(queue, ValueError("boom"), "k", True)
    assert queue.num_requeues("k") == 0


def test_add_deduplicates(queue):
    queue.add("a")
    queue.add("a")
    queue.add("b")
    assert len(queue) == 2
    assert queue.get() == "a"
    assert queue.get() == "b"
    assert queue.get() is None


def test_readd_while_processing_waits_for_done(queue):
    queue.add("a")
    assert queue.get() == "a"
    queue.add("a")
    assert len(queue) == 0
    queue.done("a")
    assert len(queue) == 1
    assert queue.get() == "a"


def test_done_without_readd_leaves_queue_empty(queue):
    queue.add("a")
    queue.get()
    queue.done("a")
    assert len(queue) == 0


def test_add_after_keeps_earliest_time(queue, clock):
    queue.add_after("a", 5)
    queue.add_after("a", 2)
    clock.advance(2)
    assert len(queue) == 1
    assert queue.get() == "a"
    queue.done("a")
    clock.advance(5)
    assert len(queue) == 0


def test_add_after_non_positive_adds_now(queue):
    queue.add_after("a", 0)
    assert queue.get() == "a"


def test_exponential_backoff_delays(queue, clock):
    queue.add_rate_limited("a")
    clock.advance(0.004)
    assert len(queue) == 0
    clock.advance(0.001)
    assert queue.get() == "a"
    queue.done("a")

    queue.add_rate_limited("a")
    clock.advance(0.009)
    assert len(queue) == 0
    clock.advance(0.001)
    assert queue.get() == "a"


def test_backoff_is_capped(queue, clock):
    for _ in range(40):
        queue.add_rate_limited("a")
    clock.advance(1000)
    assert queue.get() == "a"


def test_forget_resets_backoff(queue, clock):
    for _ in range(3):
        queue.add_rate_limited("a")
    queue.forget("a")
    assert queue.num_requeues("a") == 0
    clock.advance(1)
    queue.get()
    queue.done("a")
    queue.add_rate_limited("a")
    clock.advance(0.005)
    assert queue.get() == "a"


def test_bucket_limits_after_burst(queue, clock):
    for n in range(100):
        queue.add_rate_limited(f"k{n}")
    queue.add_rate_limited("extra")
    clock.advance(0.05)
    assert len(queue) == 100
    clock.advance(0.05)
    assert len(queue) == 101