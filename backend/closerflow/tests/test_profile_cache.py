from closerflow.core.profile_cache import ProfileCache, UserProfile


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def profile(user_id=1, role="gerente"):
    return UserProfile(id=user_id, name="Ana", email="ana@test.com", role=role, organization_id=1, store_id=None)


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = ProfileCache(ttl_seconds=300, clock=clock)
    cache.set(profile())
    clock.now = 299
    assert cache.get(1) == profile()
    clock.now = 300
    assert cache.get(1) is None
    assert len(cache) == 0


def test_get_or_load_only_loads_on_miss():
    calls = []

    def loader(user_id):
        calls.append(user_id)
        return profile(user_id)

    cache = ProfileCache(clock=FakeClock())
    assert cache.get_or_load(5, loader).id == 5
    assert cache.get_or_load(5, loader).id == 5
    assert calls == [5]


def test_missing_users_are_not_cached():
    calls = []

    def loader(user_id):
        calls.append(user_id)
        return None

    cache = ProfileCache(clock=FakeClock())
    assert cache.get_or_load(9, loader) is None
    assert cache.get_or_load(9, loader) is None
    assert calls == [9, 9]


def test_invalidate_and_clear():
    cache = ProfileCache(clock=FakeClock())
    cache.set(profile(1))
    cache.set(profile(2))
    cache.invalidate(1)
    assert cache.get(1) is None
    assert cache.get(2) is not None
    cache.clear()
    assert len(cache) == 0


def test_writes_sweep_expired_entries_of_other_users():
    clock = FakeClock()
    cache = ProfileCache(ttl_seconds=300, clock=clock)
    cache.set(profile(1))
    cache.set(profile(2))
    clock.now = 400
    cache.set(profile(3))
    assert len(cache) == 1
    assert cache.get(3) is not None
