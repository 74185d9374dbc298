import string
import time
import unittest

from helpers import CENTER, RecordingPublisher, make_driver, make_service, run_concurrently
from ridecloak.data.models import OrderStatus
from ridecloak.service import events, matching
from ridecloak.service.errors import AlreadyAccepted, DuplicateOrder, InvalidInput, OrderNotFound

HEX = set(string.hexdigits.lower())


class TestCreateOrder(unittest.TestCase):

    def setUp(self):
        self.publisher = RecordingPublisher()
        self.service = make_service([make_driver(f"d-{i}") for i in range(3)], self.publisher)

    def test_sparse_area_gets_coarse_cell(self):
        result = self.service.create_order("o-1", "rider-1", 40.000000, 116.330000, (40.01, 116.34))
        self.assertEqual(result["resolution"], 5)
        self.assertEqual(len(result["bucketTokens"]), 3)
        for token in result["bucketTokens"]:
            self.assertEqual(len(token), 32)
            self.assertTrue(set(token) <= HEX)
        self.assertEqual(self.service.get_order("o-1")["status"], "pending")

    def test_dense_area_gets_fine_cell(self):
        service = make_service([make_driver(f"d-{i}") for i in range(51)])
        self.assertEqual(service.create_order("o-1", "r", *CENTER, [40.01, 116.34])["resolution"], 9)

    def test_announces_creation(self):
        result = self.service.create_order("o-1", "rider-1", *CENTER, {"lat": 40.01, "lon": 116.34})
        (event, payload, recipient), = self.publisher.events
        self.assertEqual(event, events.ORDER_CREATED)
        self.assertIsNone(recipient)
        self.assertEqual(payload, {
            "orderId": "o-1",
            "cellId": result["cellId"],
            "bucketTokens": result["bucketTokens"],
            "resolution": 5,
        })

    def test_same_location_orders_get_unrelated_tokens(self):
        a = self.service.create_order("o-1", "r", *CENTER, CENTER)
        b = self.service.create_order("o-2", "r", *CENTER, CENTER)
        self.assertEqual(a["cellId"], b["cellId"])
        self.assertTrue(set(a["bucketTokens"]).isdisjoint(b["bucketTokens"]))

    def test_invalid_input_creates_nothing(self):
        bad = [
            ("o-1", "r", 95.0, 116.33, CENTER),
            ("o-1", "r", 40.0, 116.33, (40.0,)),
            ("o-1", "r", 40.0, 116.33, (40.0, 200.0)),
            ("", "r", 40.0, 116.33, CENTER),
            ("o-1", None, 40.0, 116.33, CENTER),
        ]
        for args in bad:
            with self.assertRaises(InvalidInput):
                self.service.create_order(*args)
        self.assertEqual(self.service.orders.all(), [])
        self.assertEqual(self.publisher.events, [])

    def test_duplicate_order_id(self):
        first = self.service.create_order("o-1", "r", *CENTER, CENTER)
        with self.assertRaises(DuplicateOrder):
            self.service.create_order("o-1", "r2", 41.0, 117.0, CENTER)
        self.assertEqual(self.service.get_order("o-1")["bucketTokens"], first["bucketTokens"])
        self.assertEqual(len(self.publisher.of(events.ORDER_CREATED)), 1)

    def test_concurrent_creation_of_distinct_orders(self):
        results = run_concurrently(self.service.create_order,
                                   [(f"o-{i}", "r", *CENTER, CENTER) for i in range(16)])
        self.assertFalse([r for _, r in results if isinstance(r, Exception)])
        self.assertEqual(len(self.service.orders.all()), 16)


class TestQueryCandidates(unittest.TestCase):

    def setUp(self):
        self.service = make_service([make_driver(f"d-{i}", tokens=("x%d" % i,)) for i in range(4)])

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFound):
            self.service.query_candidates("never-created")

    def test_driver_sharing_tokens_is_ranked(self):
        tokens = self.service.create_order("o-1", "r", *CENTER, CENTER)["bucketTokens"]
        self.service.directory.register(make_driver("d-12", tokens=tokens[:2]))
        self.service.directory.register(make_driver("d-13", tokens=tokens[2:]))
        result = self.service.query_candidates("o-1")
        self.assertEqual([c["maskedId"] for c in result["candidates"]], ["d-**", "d-**"])
        self.assertEqual([c["intersectionCount"] for c in result["candidates"]], [2, 1])
        self.assertEqual(result["debug"], {"totalDrivers": 6, "matchedCount": 2})

    def test_no_overlap(self):
        self.service.create_order("o-1", "r", *CENTER, CENTER)
        self.assertEqual(self.service.query_candidates("o-1"),
                         {"candidates": [], "debug": {"totalDrivers": 4, "matchedCount": 0}})

    def test_empty_directory(self):
        service = make_service([])
        service.create_order("o-1", "r", *CENTER, CENTER)
        self.assertEqual(service.query_candidates("o-1")["candidates"], [])

    def test_available_only_filter(self):
        service = make_service([], eligible=matching.available_only, coordinates=matching.EXACT)
        tokens = service.create_order("o-1", "r", *CENTER, CENTER)["bucketTokens"]
        service.directory.register(make_driver("d-1", lat=40.001, lon=116.331, tokens=tokens))
        service.directory.register(make_driver("d-2", tokens=tokens))
        service.create_order("o-2", "r", *CENTER, CENTER)
        service.accept("o-2", "d-2")
        [only] = service.query_candidates("o-1")["candidates"]
        self.assertEqual((only["lat"], only["lon"]), (40.001, 116.331))


class TestLifecycleOperations(unittest.TestCase):

    def setUp(self):
        self.publisher = RecordingPublisher()
        self.service = make_service([make_driver(f"d-{i}") for i in range(5)], self.publisher)
        self.service.create_order("o-1", "r", *CENTER, CENTER)

    def test_accept_start_complete(self):
        self.assertEqual(self.service.accept("o-1", "d-2"), {"orderId": "o-1", "driverId": "d-2", "status": "accepted"})
        self.assertEqual(self.service.start("o-1"), {"orderId": "o-1", "status": "in_progress"})
        self.assertEqual(self.service.complete("o-1"), {"orderId": "o-1", "status": "completed"})
        view = self.service.get_order("o-1")
        self.assertEqual((view["status"], view["driverId"]), ("completed", "d-2"))

    def test_concurrent_accepts(self):
        results = run_concurrently(self.service.accept, [("o-1", f"d-{i}") for i in range(5)])
        rejected = [r for _, r in results if isinstance(r, AlreadyAccepted)]
        self.assertEqual(len(rejected), 4)

    def test_malformed_ids_are_invalid_input(self):
        for call in (
            lambda: self.service.accept(["o-1"], "d-1"),
            lambda: self.service.accept("o-1", ["d-1"]),
            lambda: self.service.accept("o-1", None),
            lambda: self.service.start({"id": "o-1"}),
            lambda: self.service.complete([1]),
            lambda: self.service.get_order(7),
            lambda: self.service.query_candidates(""),
        ):
            with self.assertRaises(InvalidInput):
                call()
        self.assertEqual(self.service.get_order("o-1")["status"], "pending")
        self.assertEqual(self.publisher.names(), [events.ORDER_CREATED])

    def test_list_drivers_reflects_status(self):
        self.service.accept("o-1", "d-4")
        statuses = {d["id"]: d["status"] for d in self.service.list_drivers()}
        self.assertEqual(statuses["d-4"], "matched")
        self.assertEqual(statuses["d-0"], "available")
        self.assertEqual(len(statuses), 5)

    def test_relay_is_verbatim(self):
        payload = {"orderId": "o-1", "blob": [1, 2, {"nested": True}]}
        self.service.relay(events.ENCRYPTED_COORDS, payload)
        self.assertIs(self.publisher.events[-1][1], payload)
        with self.assertRaises(InvalidInput):
            self.service.relay(events.ORDER_ACCEPTED, payload)


class TestOrderExpiry(unittest.TestCase):

    def test_completed_orders_evicted_after_ttl(self):
        service = make_service([make_driver("d-1")], order_ttl_seconds=60)
        service.create_order("o-1", "r", *CENTER, CENTER)
        service.create_order("o-2", "r", *CENTER, CENTER)
        service.accept("o-1", "d-1")
        service.start("o-1")
        service.complete("o-1")
        self.assertEqual(service.evict_expired(now=time.time() + 10), 0)
        self.assertEqual(service.evict_expired(now=time.time() + 120), 1)
        with self.assertRaises(OrderNotFound):
            service.get_order("o-1")
        self.assertEqual(service.get_order("o-2")["status"], OrderStatus.PENDING.value)

    def test_disabled_by_default(self):
        service = make_service([])
        self.assertEqual(service.evict_expired(now=time.time() + 10 ** 6), 0)


if __name__ == "__main__":
    unittest.main()
