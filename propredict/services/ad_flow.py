"""
Rewarded-ad flow driven through a native bridge.

The wrapper shows the ad and later posts back a single message. Only one
ad watch may be in flight; the message carries no content id, so it is
matched to the watch that is currently pending.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from propredict.services.ad_unlock import AdUnlockState, AdUnlockTracker
from propredict.services.entitlements import ContentTier, ContentType, UnlockKey
from propredict.services.platform import BridgeCapability, NativeBridge

logger = logging.getLogger(__name__)


class BridgeMessage(str, Enum):
    AD_UNLOCK_SUCCESS = "AD_UNLOCK_SUCCESS"
    AD_UNLOCK_CANCELLED = "AD_UNLOCK_CANCELLED"


class AdWatchInProgress(RuntimeError):
    """Raised when an ad watch starts while another one is pending."""


@dataclass
class _PendingWatch:
    subject: str
    content_type: ContentType
    content_id: str
    future: "asyncio.Future[BridgeMessage]"


class RewardedAdFlow:
    """
    Run one rewarded-ad watch end to end.

    Args:
        tracker: Unlock state machine to drive.
        bridge: Native bridge that shows the ad.
        timeout: Seconds to wait for the bridge's reply before the item
            is rolled back to locked.
    """

    def __init__(
        self,
        tracker: AdUnlockTracker,
        bridge: NativeBridge,
        timeout: float = 60.0,
    ):
        self.tracker = tracker
        self.bridge = bridge
        self.timeout = timeout
        self._pending: Optional[_PendingWatch] = None

    @property
    def pending(self) -> Optional[UnlockKey]:
        if self._pending is None:
            return None
        return (self._pending.content_type, self._pending.content_id)

    async def watch(
        self,
        subject: str,
        content_type: ContentType,
        content_id: str,
        tier: ContentTier,
    ) -> AdUnlockState:
        """
        Show an ad for an item and wait for the outcome.

        Returns:
            The item's state once the watch settles: unlocked on success,
            locked on cancellation or timeout.

        Raises:
            AdWatchInProgress: If another watch is still pending.
            BridgeCapabilityError: If the bridge cannot show rewarded ads.
        """
        if self._pending is not None:
            raise AdWatchInProgress("Another ad watch is already pending")
        self.bridge.require(BridgeCapability.REWARDED_AD)

        state = await self.tracker.begin(subject, content_type, content_id, tier)
        if state is not AdUnlockState.PENDING:
            return state

        future: "asyncio.Future[BridgeMessage]" = asyncio.get_running_loop().create_future()
        self._pending = _PendingWatch(subject, ContentType(content_type), str(content_id), future)
        try:
            self.bridge.show_rewarded_ad()
            message = await asyncio.wait_for(future, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Ad watch timed out after {self.timeout}s: {content_type}:{content_id}")
            return await self.tracker.cancel(subject, content_type, content_id)
        except Exception:
            await self.tracker.cancel(subject, content_type, content_id)
            raise
        finally:
            self._pending = None

        if message is BridgeMessage.AD_UNLOCK_SUCCESS:
            return await self.tracker.complete(subject, content_type, content_id)
        return await self.tracker.cancel(subject, content_type, content_id)

    def deliver(self, message: Union[BridgeMessage, str]) -> bool:
        """
        Hand a bridge message to the pending watch.

        Returns:
            True if a pending watch consumed the message.
        """
        message = BridgeMessage(message)
        if self._pending is None or self._pending.future.done():
            logger.warning(f"Dropping bridge message with no pending ad watch: {message.value}")
            return False
        self._pending.future.set_result(message)
        return True
