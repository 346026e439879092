from shared.dedupe import ExpiringKeys


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_keys_expire_lazily_and_sweep():
    clock = Clock()
    keys = ExpiringKeys(10, clock=clock)
    keys.add("a", "title a")
    assert "a" in keys
    assert keys.get("a") == "title a"
    assert keys.find_value("title a") == "a"
    clock.now = 10
    assert "a" not in keys
    assert keys.find_value("title a") is None
    assert len(keys) == 1
    assert keys.sweep() == 1
    assert len(keys) == 0


def test_oldest_key_evicted_past_capacity():
    keys = ExpiringKeys(60, max_keys=2, clock=Clock())
    for key in ("a", "b", "c"):
        keys.add(key)
    assert list(keys) == ["b", "c"]
    keys.discard("b")
    assert list(keys) == ["c"]
    assert 5 not in keys
