from fcr.objects import ObjectKey
from fcr.workqueue import ExponentialBackoff, WorkQueue


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


A = ObjectKey("default", "a")
B = ObjectKey("default", "b")


def test_duplicate_adds_collapse():
    q = WorkQueue()
    q.add(A)
    q.add(A)
    q.add(B)
    assert len(q) == 2
    assert q.get(timeout=0) == A
    assert q.get(timeout=0) == B
    assert q.get(timeout=0) is None


def test_key_is_not_handed_out_twice_while_processing():
    q = WorkQueue()
    q.add(A)
    assert q.get(timeout=0) == A

    q.add(A)
    assert q.get(timeout=0) is None

    q.done(A)
    assert q.get(timeout=0) == A
    q.done(A)
    assert q.get(timeout=0) is None


def test_add_after_waits_for_clock():
    clock = FakeClock()
    q = WorkQueue(clock=clock)
    q.add_after(A, 10)
    assert q.scheduled() == 1
    assert q.get(timeout=0) is None

    clock.now += 10
    assert q.get(timeout=0) == A
    assert q.scheduled() == 0


def test_earlier_schedule_wins():
    clock = FakeClock()
    q = WorkQueue(clock=clock)
    q.add_after(A, 30)
    q.add_after(A, 5)
    q.add_after(A, 60)

    clock.now += 5
    assert q.get(timeout=0) == A
    q.done(A)
    clock.now += 100
    assert q.get(timeout=0) is None


def test_shutdown_unblocks_get():
    q = WorkQueue()
    q.shutdown()
    q.add(A)
    assert q.get() is None
    assert q.is_shutdown


def test_backoff_doubles_and_caps():
    b = ExponentialBackoff(base_s=1, max_s=5)
    assert [b.when(A) for _ in range(5)] == [1, 2, 4, 5, 5]
    assert b.failures(A) == 5
    assert b.when(B) == 1
    b.forget(A)
    assert b.failures(A) == 0
    assert b.when(A) == 1
