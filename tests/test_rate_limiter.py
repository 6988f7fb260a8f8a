import threading
import time

from expedition_route.directions_client import RateLimiter


def worker(limiter: RateLimiter, started_evt: threading.Event, release_evt: threading.Event):
    """Acquire a slot, signal start, wait until release, then free slot."""
    limiter.before_request()
    started_evt.set()
    release_evt.wait()
    limiter.after_response(None, 200)


def test_rate_limiter_blocks_until_slot_frees_and_resize():
    limiter = RateLimiter(max_concurrent=1, jitter_range=(0.0, 0.0))

    a_started, a_release = threading.Event(), threading.Event()
    a_thread = threading.Thread(target=worker, args=(limiter, a_started, a_release))
    a_thread.start()
    assert a_started.wait(0.3), "First worker failed to start in time"

    b_started, b_release = threading.Event(), threading.Event()
    b_thread = threading.Thread(target=worker, args=(limiter, b_started, b_release))
    b_thread.start()
    assert not b_started.wait(0.07), "Second worker should block with limit=1"

    limiter.resize(2)
    assert b_started.wait(0.3), "Blocked worker did not start after resize increase"

    a_release.set()
    b_release.set()
    a_thread.join(timeout=0.6)
    b_thread.join(timeout=0.6)
    assert limiter.snapshot()["in_flight"] == 0


def test_429_sets_throttle_window():
    limiter = RateLimiter(max_concurrent=2, throttle_seconds=5)
    limiter.before_request()
    before = time.time()
    limiter.after_response({}, 429)
    snap = limiter.snapshot()
    assert snap["throttle_until"] >= before + 5
    assert snap["in_flight"] == 0


def test_low_remaining_header_throttles():
    limiter = RateLimiter(max_concurrent=2, throttle_seconds=3)
    limiter.before_request()
    limiter.after_response({"X-Rate-Limit-Remaining": "1", "X-Rate-Limit-Limit": "300"}, 200)
    assert limiter.snapshot()["throttle_until"] > time.time()


def test_healthy_or_unparseable_headers_do_not_throttle():
    limiter = RateLimiter(max_concurrent=2)
    limiter.before_request()
    limiter.after_response({"X-Rate-Limit-Remaining": "250"}, 200)
    limiter.before_request()
    limiter.after_response({"X-Rate-Limit-Remaining": "n/a"}, 200)
    assert limiter.snapshot()["throttle_until"] == 0.0


def test_reset_header_sets_throttle_deadline():
    limiter = RateLimiter(max_concurrent=2, throttle_seconds=3)
    reset_at = time.time() + 42
    limiter.before_request()
    limiter.after_response(
        {"X-Rate-Limit-Remaining": "0", "X-Rate-Limit-Reset": str(reset_at)}, 200
    )
    assert limiter.snapshot()["throttle_until"] == reset_at
