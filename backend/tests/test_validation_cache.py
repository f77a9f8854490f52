"""ValidationCache and error policy tests."""

import pytest

from vinepallet.middleware.exceptions import (
    BusinessLogicError,
    ServiceUnavailableError,
)
from vinepallet.services.policy import ErrorPolicy, run_with_policy
from vinepallet.utils.validation_cache import ValidationCache, cart_fingerprint


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.unit
class TestValidationCache:

    def test_fingerprint_ignores_line_order(self):
        assert cart_fingerprint([("b", 6), ("a", 12)]) == cart_fingerprint([("a", 12), ("b", 6)])
        assert cart_fingerprint([("a", 12), ("b", 6)]) == "a:12|b:6"

    def test_fingerprint_changes_with_quantity(self):
        assert cart_fingerprint([("a", 6)]) != cart_fingerprint([("a", 7)])

    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = ValidationCache(ttl_seconds=5, max_entries=10, clock=clock)
        cache.set("k", "v")

        clock.now += 4.9
        assert cache.get("k") == "v"
        clock.now += 0.1
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_least_recently_used_is_evicted(self):
        cache = ValidationCache(ttl_seconds=60, max_entries=2, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.get("a") == 1
        assert cache.get("b") is None
        assert cache.get("c") == 3

    def test_expired_entries_pruned_before_lru(self):
        clock = FakeClock()
        cache = ValidationCache(ttl_seconds=5, max_entries=2, clock=clock)
        cache.set("old", 1)
        clock.now += 3
        cache.set("fresh", 2)
        clock.now += 3  # "old" expired, "fresh" still valid
        cache.set("new", 3)

        assert len(cache) == 2
        assert cache.get("fresh") == 2
        assert cache.get("new") == 3

    def test_clear(self):
        cache = ValidationCache()
        cache.set("k", "v")
        cache.clear()
        assert cache.get("k") is None


@pytest.mark.asyncio
class TestErrorPolicy:

    async def test_success_passes_through(self):
        async def op():
            return 42

        assert await run_with_policy(op, ErrorPolicy.FAIL_CLOSED) == 42

    async def test_fail_open_returns_fallback(self):
        async def op():
            raise RuntimeError("database went away")

        result = await run_with_policy(
            op, ErrorPolicy.FAIL_OPEN, fallback=lambda: "allowed", label="cart validation"
        )
        assert result == "allowed"

    async def test_fail_closed_raises_unavailable(self):
        async def op():
            raise RuntimeError("database went away")

        with pytest.raises(ServiceUnavailableError) as exc:
            await run_with_policy(op, ErrorPolicy.FAIL_CLOSED, label="zone determination")
        assert exc.value.status_code == 503
        assert exc.value.error_code == "ZONE_DETERMINATION_UNAVAILABLE"

    async def test_domain_errors_propagate_under_fail_open(self):
        async def op():
            raise BusinessLogicError("Cart is empty", error_code="CART_EMPTY")

        with pytest.raises(BusinessLogicError):
            await run_with_policy(op, ErrorPolicy.FAIL_OPEN, fallback=lambda: None)
