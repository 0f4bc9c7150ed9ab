"""Tests for the rewarded-ad unlock state machine and the bridge-driven flow."""

import asyncio
from datetime import date

import pytest

from propredict.services.ad_flow import AdWatchInProgress, BridgeMessage, RewardedAdFlow
from propredict.services.ad_unlock import (
    AdUnlockNotAllowed,
    AdUnlockState,
    AdUnlockTracker,
    InMemoryUnlockStore,
    InvalidAdUnlockTransition,
    PendingAdWatches,
    canonical_content_id,
)
from propredict.services.entitlements import ContentTier, ContentType
from propredict.services.platform import BridgeCapability, BridgeCapabilityError, NativeBridge

USER = "user-1"
TIP = ContentType.TIP


class Day:
    def __init__(self, value: date):
        self.value = value

    def __call__(self) -> date:
        return self.value


def make_tracker(clock, day=None, timeout=60.0):
    day = day or Day(date(2025, 3, 1))
    return AdUnlockTracker(
        InMemoryUnlockStore(),
        PendingAdWatches(timeout=timeout, timer=clock),
        today=day,
    )


class TestAdUnlockTracker:
    def test_begin_complete(self, clock):
        tracker = make_tracker(clock)

        async def scenario():
            assert await tracker.state(USER, TIP, "t1") is AdUnlockState.LOCKED
            assert await tracker.begin(USER, TIP, "t1", ContentTier.EXCLUSIVE) is AdUnlockState.PENDING
            assert await tracker.complete(USER, TIP, "t1") is AdUnlockState.UNLOCKED
            return await tracker.unlocked_ids(USER)

        assert asyncio.run(scenario()) == {(TIP, "t1")}

    def test_cancel_returns_to_locked(self, clock):
        tracker = make_tracker(clock)

        async def scenario():
            await tracker.begin(USER, TIP, "t1", ContentTier.DAILY)
            cancelled = await tracker.cancel(USER, TIP, "t1")
            return cancelled, await tracker.state(USER, TIP, "t1")

        assert asyncio.run(scenario()) == (AdUnlockState.LOCKED, AdUnlockState.LOCKED)

    def test_cancel_never_relocks_an_unlocked_item(self, clock):
        tracker = make_tracker(clock)

        async def scenario():
            await tracker.begin(USER, TIP, "t1", ContentTier.DAILY)
            await tracker.complete(USER, TIP, "t1")
            return await tracker.cancel(USER, TIP, "t1")

        assert asyncio.run(scenario()) is AdUnlockState.UNLOCKED

    def test_begin_on_unlocked_item_is_a_no_op(self, clock):
        tracker = make_tracker(clock)

        async def scenario():
            await tracker.begin(USER, TIP, "t1", ContentTier.DAILY)
            await tracker.complete(USER, TIP, "t1")
            return await tracker.begin(USER, TIP, "t1", ContentTier.DAILY)

        assert asyncio.run(scenario()) is AdUnlockState.UNLOCKED

    def test_complete_without_pending_is_rejected(self, clock):
        tracker = make_tracker(clock)

        with pytest.raises(InvalidAdUnlockTransition) as exc:
            asyncio.run(tracker.complete(USER, TIP, "t1"))
        assert exc.value.current is AdUnlockState.LOCKED

    def test_premium_cannot_be_unlocked_with_an_ad(self, clock):
        tracker = make_tracker(clock)

        with pytest.raises(AdUnlockNotAllowed):
            asyncio.run(tracker.begin(USER, TIP, "t1", ContentTier.PREMIUM))

    def test_pending_watch_times_out(self, clock):
        tracker = make_tracker(clock, timeout=60)

        async def scenario():
            await tracker.begin(USER, TIP, "t1", ContentTier.DAILY)
            clock.advance(59)
            still_pending = await tracker.state(USER, TIP, "t1")
            clock.advance(2)
            return still_pending, await tracker.state(USER, TIP, "t1")

        assert asyncio.run(scenario()) == (AdUnlockState.PENDING, AdUnlockState.LOCKED)

    def test_completion_after_timeout_is_rejected(self, clock):
        tracker = make_tracker(clock, timeout=60)

        async def scenario():
            await tracker.begin(USER, TIP, "t1", ContentTier.DAILY)
            clock.advance(61)
            await tracker.complete(USER, TIP, "t1")

        with pytest.raises(InvalidAdUnlockTransition):
            asyncio.run(scenario())

    def test_unlocks_reset_the_next_day(self, clock):
        day = Day(date(2025, 3, 1))
        tracker = make_tracker(clock, day=day)

        async def scenario():
            await tracker.begin(USER, TIP, "t1", ContentTier.DAILY)
            await tracker.complete(USER, TIP, "t1")
            day.value = date(2025, 3, 2)
            return await tracker.state(USER, TIP, "t1")

        assert asyncio.run(scenario()) is AdUnlockState.LOCKED

    def test_unlocks_are_per_subject(self, clock):
        tracker = make_tracker(clock)

        async def scenario():
            await tracker.begin(USER, TIP, "t1", ContentTier.DAILY)
            await tracker.complete(USER, TIP, "t1")
            return await tracker.state("user-2", TIP, "t1")

        assert asyncio.run(scenario()) is AdUnlockState.LOCKED


class TestCanonicalContentId:
    @pytest.mark.parametrize(
        "raw",
        [
            "6F1C2A9E-3B4D-4E5F-8A7B-9C0D1E2F3A4B",
            "6f1c2a9e3b4d4e5f8a7b9c0d1e2f3a4b",
            "{6f1c2a9e-3b4d-4e5f-8a7b-9c0d1e2f3a4b}",
        ],
    )
    def test_uuid_spellings(self, raw):
        assert canonical_content_id(raw) == "6f1c2a9e-3b4d-4e5f-8a7b-9c0d1e2f3a4b"

    def test_other_ids_unchanged(self):
        assert canonical_content_id("tip-daily") == "tip-daily"
        assert canonical_content_id("") == ""


class FakeBridge(NativeBridge):
    """Bridge that answers a rewarded ad with a fixed message, or never."""

    capabilities = frozenset({BridgeCapability.REWARDED_AD})

    def __init__(self, reply=None):
        self.reply = reply
        self.flow = None
        self.shown = 0

    def show_rewarded_ad(self) -> None:
        self.require(BridgeCapability.REWARDED_AD)
        self.shown += 1
        if self.reply is not None:
            asyncio.get_running_loop().call_soon(self.flow.deliver, self.reply)


class NoAdsBridge(NativeBridge):
    capabilities = frozenset({BridgeCapability.PURCHASE_PLAN})


def make_flow(clock, bridge, timeout=1.0):
    tracker = make_tracker(clock)
    flow = RewardedAdFlow(tracker, bridge, timeout=timeout)
    bridge.flow = flow
    return tracker, flow


class TestRewardedAdFlow:
    def test_success_unlocks(self, clock):
        bridge = FakeBridge(BridgeMessage.AD_UNLOCK_SUCCESS)
        tracker, flow = make_flow(clock, bridge)

        state = asyncio.run(flow.watch(USER, TIP, "t1", ContentTier.EXCLUSIVE))

        assert state is AdUnlockState.UNLOCKED
        assert bridge.shown == 1
        assert flow.pending is None

    def test_cancellation_message_locks(self, clock):
        bridge = FakeBridge("AD_UNLOCK_CANCELLED")
        tracker, flow = make_flow(clock, bridge)

        async def scenario():
            state = await flow.watch(USER, TIP, "t1", ContentTier.EXCLUSIVE)
            return state, await tracker.state(USER, TIP, "t1")

        assert asyncio.run(scenario()) == (AdUnlockState.LOCKED, AdUnlockState.LOCKED)

    def test_missing_reply_times_out_to_locked(self, clock):
        bridge = FakeBridge(reply=None)
        tracker, flow = make_flow(clock, bridge, timeout=0.01)

        async def scenario():
            state = await flow.watch(USER, TIP, "t1", ContentTier.DAILY)
            return state, await tracker.state(USER, TIP, "t1")

        assert asyncio.run(scenario()) == (AdUnlockState.LOCKED, AdUnlockState.LOCKED)
        assert flow.pending is None

    def test_second_watch_while_pending(self, clock):
        bridge = FakeBridge(reply=None)
        tracker, flow = make_flow(clock, bridge, timeout=5)

        async def scenario():
            first = asyncio.ensure_future(flow.watch(USER, TIP, "t1", ContentTier.DAILY))
            await asyncio.sleep(0)
            assert flow.pending == (TIP, "t1")
            with pytest.raises(AdWatchInProgress):
                await flow.watch(USER, TIP, "t2", ContentTier.DAILY)
            assert flow.deliver(BridgeMessage.AD_UNLOCK_SUCCESS)
            return await first

        assert asyncio.run(scenario()) is AdUnlockState.UNLOCKED

    def test_bridge_without_rewarded_ads(self, clock):
        bridge = NoAdsBridge()
        tracker, flow = make_flow(clock, bridge)

        with pytest.raises(BridgeCapabilityError):
            asyncio.run(flow.watch(USER, TIP, "t1", ContentTier.DAILY))
        assert asyncio.run(tracker.state(USER, TIP, "t1")) is AdUnlockState.LOCKED

    def test_message_without_pending_watch_is_dropped(self, clock):
        _, flow = make_flow(clock, FakeBridge())
        assert flow.deliver(BridgeMessage.AD_UNLOCK_SUCCESS) is False
