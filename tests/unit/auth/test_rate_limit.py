from src.server.auth.rate_limit import InMemoryRateLimiter


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_allows_up_to_limit_then_blocks():
    clock = _Clock()
    limiter = InMemoryRateLimiter(limit=2, window_seconds=60, clock=clock)

    assert limiter.hit("ip-alice") is None
    assert limiter.remaining("ip-alice") == 1
    assert limiter.hit("ip-alice") is None
    assert limiter.hit("ip-alice") == 60

    clock.now += 45
    assert limiter.hit("ip-alice") == 15
    # other keys are independent
    assert limiter.hit("ip-bob") is None


def test_window_expiry_frees_attempts():
    clock = _Clock()
    limiter = InMemoryRateLimiter(limit=1, window_seconds=10, clock=clock)
    assert limiter.hit("k") is None
    assert limiter.hit("k") is not None

    clock.now += 10
    assert limiter.hit("k") is None


def test_prune_drops_idle_buckets():
    clock = _Clock()
    limiter = InMemoryRateLimiter(limit=1, window_seconds=10, clock=clock)
    limiter.hit("k")
    clock.now += 11
    limiter.prune()
    assert limiter.remaining("k") == 1

    limiter.hit("k")
    limiter.reset()
    assert limiter.remaining("k") == 1


def test_window_is_fixed_from_first_hit():
    clock = _Clock()
    limiter = InMemoryRateLimiter(limit=2, window_seconds=60, clock=clock)
    assert limiter.hit("k") is None
    clock.now += 50
    assert limiter.hit("k") is None
    assert limiter.hit("k") == 10

    # the whole window resets 60s after the first hit, not after the latest one
    clock.now += 11
    assert limiter.remaining("k") == 2
    assert limiter.hit("k") is None
    assert limiter.remaining("k") == 1
