import unittest

from trafficstats import InvariantViolation, RecordHandle, RecordStore


class RecordStoreTest(unittest.TestCase):
    def test_append_returns_stable_handles(self) -> None:
        store = RecordStore()
        first = store.append("a")
        second = store.append("b")

        self.assertEqual(first, RecordHandle(0, 0))
        self.assertEqual(second.index, 1)
        self.assertEqual(store.get(first), "a")
        self.assertEqual(store.get(1), "b")
        self.assertEqual(store[0], "a")
        self.assertEqual(len(store), 2)
        self.assertEqual(list(store), ["a", "b"])

    def test_replace_keeps_index(self) -> None:
        store = RecordStore()
        handle = store.append("old")
        previous = store.replace(handle, "new")

        self.assertEqual(previous, "old")
        self.assertEqual(store.get(handle), "new")
        self.assertEqual(len(store), 1)

    def test_reset_invalidates_previous_handles(self) -> None:
        store = RecordStore()
        handle = store.append("a")
        store.reset()

        self.assertEqual(len(store), 0)
        self.assertEqual(store.generation, 1)
        with self.assertRaises(InvariantViolation):
            store.get(handle)

        fresh = store.append("b")
        self.assertEqual(fresh, RecordHandle(0, 1))
        with self.assertRaises(InvariantViolation):
            store.get(handle)

    def test_out_of_range_index(self) -> None:
        store = RecordStore()
        store.append("a")
        with self.assertRaises(InvariantViolation):
            store.get(1)
        with self.assertRaises(InvariantViolation):
            store.handle(-1)

    def test_iteration_is_a_snapshot(self) -> None:
        store = RecordStore()
        store.append("a")
        iterator = iter(store)
        store.append("b")
        self.assertEqual(list(iterator), ["a"])


if __name__ == "__main__":
    unittest.main()
