import asyncio

from whatsapp_agent.state_store import InMemoryStateStore


class TestGet:
    def test_unknown_sender_is_empty(self):
        store = InMemoryStateStore()
        assert asyncio.run(store.get("905551112233")) == {}

    def test_get_returns_a_copy(self):
        store = InMemoryStateStore()

        async def scenario():
            await store.merge("905551112233", {"quantity": "500"})
            snapshot = await store.get("905551112233")
            snapshot["quantity"] = "1"
            return await store.get("905551112233")

        assert asyncio.run(scenario())["quantity"] == "500"


class TestMerge:
    def test_merge_overwrites_and_preserves(self):
        store = InMemoryStateStore()

        async def scenario():
            await store.merge("905551112233", {"usage": "denim jacket", "quantity": "500"})
            return await store.merge("905551112233", {"quantity": "1000"})

        state = asyncio.run(scenario())
        assert state["usage"] == "denim jacket"
        assert state["quantity"] == "1000"
        assert state["updated_at"]

    def test_merge_is_idempotent_except_timestamp(self):
        store = InMemoryStateStore()

        async def scenario():
            first = await store.merge("905551112233", {"quantity": "500"})
            second = await store.merge("905551112233", {"quantity": "500"})
            return first, second

        first, second = asyncio.run(scenario())
        first.pop("updated_at")
        second.pop("updated_at")
        assert first == second

    def test_merge_refreshes_timestamp_with_empty_partial(self):
        store = InMemoryStateStore()
        state = asyncio.run(store.merge("905551112233", {}))
        assert set(state) == {"updated_at"}

    def test_unknown_fields_are_dropped(self):
        store = InMemoryStateStore()
        state = asyncio.run(store.merge("905551112233", {"favourite_colour": "red", "last_intent": "qualify"}))
        assert "favourite_colour" not in state
        assert state["last_intent"] == "qualify"

    def test_senders_are_isolated(self):
        store = InMemoryStateStore()

        async def scenario():
            await store.merge("905551112233", {"quantity": "500"})
            return await store.get("905559998877")

        assert asyncio.run(scenario()) == {}
