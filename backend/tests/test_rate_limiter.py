from bizcontacts.services.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def make_limiter(clock, calls=5, window=60.0, min_delay=0.0):
    return RateLimiter(calls, window, min_delay, clock=clock, sleep=clock.sleep)


def test_calls_within_budget_do_not_wait():
    clock = FakeClock()
    limiter = make_limiter(clock, calls=3)
    assert [limiter.acquire() for _ in range(3)] == [0, 0, 0]
    assert clock.sleeps == []
    assert limiter.calls_in_window == 3


def test_call_over_budget_waits_for_window():
    clock = FakeClock()
    limiter = make_limiter(clock, calls=3, window=60)
    for _ in range(3):
        limiter.acquire()
    clock.now = 10
    assert limiter.acquire() == 50
    assert clock.now == 60


def test_no_window_ever_exceeds_budget():
    clock = FakeClock()
    limiter = make_limiter(clock, calls=5, window=60, min_delay=2)
    stamps = []
    for _ in range(23):
        limiter.acquire()
        stamps.append(clock.now)
        clock.now += 1

    for start in stamps:
        in_window = [t for t in stamps if start <= t < start + 60]
        assert len(in_window) <= 5


def test_min_delay_between_calls():
    clock = FakeClock()
    limiter = make_limiter(clock, calls=100, min_delay=12)
    limiter.acquire()
    clock.now = 5
    assert limiter.acquire() == 7
    assert clock.now == 12


def test_reset_clears_window_but_keeps_min_delay():
    clock = FakeClock()
    limiter = make_limiter(clock, calls=2, min_delay=1)
    limiter.acquire()
    clock.now = 1
    limiter.acquire()
    limiter.reset()
    assert limiter.calls_in_window == 0
    assert limiter.acquire() == 1
