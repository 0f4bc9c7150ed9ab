"""
Client platform detection and the native bridge interface.

The Android wrapper is an in-app browser that exposes a JavaScript
bridge. Instead of probing that bridge ad hoc, callers describe it
explicitly: the wrapper identifies itself with ``?platform=android`` or
an ``X-Client-Platform`` header and lists what its bridge can do in
``X-Bridge-Capabilities``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

logger = logging.getLogger(__name__)


class BridgeCapability(str, Enum):
    REWARDED_AD = "rewarded_ad"
    INTERSTITIAL = "interstitial"
    PURCHASE_PLAN = "purchase_plan"
    RESTORE_PURCHASES = "restore_purchases"
    PUSH_PERMISSION = "push_permission"


class BridgeCapabilityError(RuntimeError):
    """Raised when a bridge call needs a capability the bridge lacks."""

    def __init__(self, capability: BridgeCapability):
        super().__init__(f"Native bridge does not support {capability.value}")
        self.capability = capability


@dataclass(frozen=True)
class ClientPlatform:
    """Platform the request came from."""

    is_native: bool = False
    capabilities: FrozenSet[BridgeCapability] = frozenset()

    @property
    def name(self) -> str:
        return "android" if self.is_native else "web"

    def supports(self, capability: BridgeCapability) -> bool:
        return capability in self.capabilities


WEB = ClientPlatform()


def parse_capabilities(raw: Optional[str]) -> FrozenSet[BridgeCapability]:
    """Parse a comma-separated capability list, ignoring unknown entries."""
    if not raw:
        return frozenset()
    capabilities = set()
    for item in raw.split(","):
        name = item.strip().lower()
        if not name:
            continue
        try:
            capabilities.add(BridgeCapability(name))
        except ValueError:
            logger.debug(f"Ignoring unknown bridge capability: {name}")
    return frozenset(capabilities)


def detect_platform(
    platform_param: Optional[str] = None,
    platform_header: Optional[str] = None,
    capabilities_header: Optional[str] = None,
) -> ClientPlatform:
    """
    Build the client platform from request hints.

    Args:
        platform_param: ``platform`` query parameter.
        platform_header: ``X-Client-Platform`` header.
        capabilities_header: ``X-Bridge-Capabilities`` header.

    Returns:
        ClientPlatform, native when either hint says android or the
        request declares bridge capabilities.
    """
    hints = [h.strip().lower() for h in (platform_param, platform_header) if h]
    capabilities = parse_capabilities(capabilities_header)

    if "android" in hints or capabilities:
        return ClientPlatform(is_native=True, capabilities=capabilities)
    return WEB


class NativeBridge:
    """
    Capability-checked interface to the wrapper's bridge.

    Subclasses declare ``capabilities`` and override the calls they
    support. Calling anything else raises BridgeCapabilityError.
    """

    capabilities: FrozenSet[BridgeCapability] = frozenset()

    def supports(self, capability: BridgeCapability) -> bool:
        return capability in self.capabilities

    def require(self, capability: BridgeCapability) -> None:
        if not self.supports(capability):
            raise BridgeCapabilityError(capability)

    def show_rewarded_ad(self) -> None:
        self.require(BridgeCapability.REWARDED_AD)
        raise NotImplementedError

    def show_interstitial(self, context: str) -> None:
        self.require(BridgeCapability.INTERSTITIAL)
        raise NotImplementedError

    def purchase_plan(self, plan_id: str) -> None:
        self.require(BridgeCapability.PURCHASE_PLAN)
        raise NotImplementedError

    @property
    def platform(self) -> ClientPlatform:
        return ClientPlatform(is_native=True, capabilities=frozenset(self.capabilities))
