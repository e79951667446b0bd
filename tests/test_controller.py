import time

from fcr import db
from fcr.controller import Controller
from fcr.errors import ReloadError
from fcr.objects import ObjectKey, Phase
from fcr.reconciler import ClientReconciler
from fcr.workqueue import ExponentialBackoff, WorkQueue

from conftest import RecordingNotifier


KEY = ObjectKey("default", "edge")


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _controller(store, notifier, clock=None):
    rec = ClientReconciler(
        store=store,
        notifier=notifier,
        image="fatedier/frpc:v0.43.0",
        worker_start_delay_s=0,
        not_ready_requeue_s=10,
        steady_requeue_s=30,
        write_back=True,
    )
    queue = WorkQueue(clock=clock or FakeClock())
    return Controller(rec, queue=queue, workers=1, backoff=ExponentialBackoff(1, 60))


def test_success_requeues_after_result_delay(store, notifier, make_client):
    clock = FakeClock()
    ctl = _controller(store, notifier, clock)
    store.create(make_client())
    ctl.enqueue(KEY)

    assert ctl.process_next(timeout=0) is True
    st = ctl.runtime.get(KEY)
    assert st.state == "WorkerStarting"
    assert st.requeue_after == 10
    assert ctl.queue.scheduled() == 1

    store.set_worker_status(KEY, Phase.RUNNING, "10.0.0.5")
    assert ctl.process_next(timeout=0) is False
    clock.now += 10
    assert ctl.process_next(timeout=0) is True
    assert ctl.runtime.get(KEY).state == "InSync"
    assert ctl.runtime.get(KEY).requeue_after == 30
    assert ctl.runtime.get(KEY).updated_at.endswith("Z")


def test_deleted_client_is_not_requeued(store, notifier):
    ctl = _controller(store, notifier)
    ctl.enqueue(KEY)

    assert ctl.process_next(timeout=0) is True
    assert ctl.runtime.get(KEY).state == "Deleted"
    assert ctl.queue.scheduled() == 0
    assert len(ctl.queue) == 0


def test_errors_back_off_per_key(store, make_client, make_upstream):
    notifier = RecordingNotifier(error=ReloadError("boom"))
    clock = FakeClock()
    ctl = _controller(store, notifier, clock)
    store.create(make_client())
    ctl.enqueue(KEY)
    ctl.process_next(timeout=0)
    store.set_worker_status(KEY, Phase.RUNNING, "10.0.0.5")
    store.create(make_upstream("web"))

    clock.now += 10
    ctl.process_next(timeout=0)
    st = ctl.runtime.get(KEY)
    assert st.state == "Failed"
    assert "boom" in st.message
    assert st.failures == 1
    assert st.requeue_after == 1

    clock.now += 1
    ctl.process_next(timeout=0)
    assert ctl.runtime.get(KEY).requeue_after == 2

    notifier.error = None
    clock.now += 2
    ctl.process_next(timeout=0)
    assert ctl.runtime.get(KEY).state == "Reloaded"
    assert ctl.backoff.failures(KEY) == 0

    levels = [e["level"] for e in db.latest_events(client="edge")]
    assert "ERROR" in levels


def test_upstream_triggers_clients_with_matching_name(store, notifier, make_client, make_upstream):
    ctl = _controller(store, notifier)
    store.create(make_client())
    store.create(make_client(namespace="team-b"))
    store.create(make_client(name="core"))

    keys = ctl.enqueue_upstream(store, make_upstream("web"))
    assert sorted(keys) == [ObjectKey("default", "edge"), ObjectKey("team-b", "edge")]
    assert len(ctl.queue) == 2


def test_resync_queues_every_client(store, notifier, make_client):
    ctl = _controller(store, notifier)
    store.create(make_client())
    store.create(make_client(name="core"))
    assert ctl.resync(store) == 2
    assert len(ctl.queue) == 2


def test_worker_threads_process_and_stop(store, notifier, make_client):
    rec = ClientReconciler(store=store, notifier=notifier, image="img", worker_start_delay_s=0)
    ctl = Controller(rec, workers=2, backoff=ExponentialBackoff(1, 60))
    store.create(make_client())

    ctl.start(store)
    deadline = time.time() + 5
    while ctl.runtime.get(KEY) is None and time.time() < deadline:
        time.sleep(0.01)
    ctl.stop()

    assert ctl.runtime.get(KEY) is not None
    assert ctl.runtime.get(KEY).state == "WorkerStarting"
    assert ctl.queue.is_shutdown
