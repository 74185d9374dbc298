import threading
import time

from ridecloak.data import repo
from ridecloak.data.models import Driver, DriverStatus, Order
from ridecloak.service import geo
from ridecloak.service.buckets import BucketGenerator, FreshnessWindow
from ridecloak.service.core import RideService

CENTER = (40.0, 116.33)


def make_driver(driver_id, lat=CENTER[0], lon=CENTER[1], tokens=(), status=DriverStatus.AVAILABLE, resolution=9):
    return Driver(driver_id, (lat, lon), geo.cell_of(lat, lon, resolution), tuple(tokens), status)


def make_order(order_id="o-1", tokens=("A", "B", "C"), resolution=5, lat=CENTER[0], lon=CENTER[1]):
    return Order(
        order_id=order_id,
        rider_id="rider-1",
        origin=(lat, lon),
        destination=(lat + 0.01, lon + 0.01),
        resolution=resolution,
        cell_id=geo.cell_of(lat, lon, resolution),
        signatures=tuple("s%d" % i for i in range(len(tokens))),
        bucket_tokens=tuple(tokens),
    )


class RecordingPublisher:
    def __init__(self):
        self._lock = threading.Lock()
        self.events = []

    def publish(self, event, payload, recipient=None):
        with self._lock:
            self.events.append((event, payload, recipient))

    def names(self):
        return [e[0] for e in self.events]

    def of(self, name):
        return [e for e in self.events if e[0] == name]


def make_service(drivers=(), publisher=None, **kwargs):
    return RideService(
        repo.DirectoryStore(drivers),
        repo.MemoryOrderStore(),
        BucketGenerator("test_secret", count=3, window=FreshnessWindow(0)),
        publisher=publisher if publisher is not None else RecordingPublisher(),
        **kwargs,
    )


def run_concurrently(fn, args_list):
    """Start every call behind one barrier; return [(args, result or exception)]."""
    barrier = threading.Barrier(len(args_list))
    results = [None] * len(args_list)

    def worker(i, args):
        barrier.wait()
        try:
            results[i] = (args, fn(*args))
        except Exception as e:  # collected for assertions
            results[i] = (args, e)

    threads = [threading.Thread(target=worker, args=(i, a)) for i, a in enumerate(args_list)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results


def wait_until(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
