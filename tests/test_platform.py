"""Tests for client platform detection and the native bridge interface."""

import pytest

from propredict.services.platform import (
    WEB,
    BridgeCapability,
    BridgeCapabilityError,
    NativeBridge,
    detect_platform,
    parse_capabilities,
)


class TestDetectPlatform:
    def test_plain_browser(self):
        assert detect_platform() is WEB
        assert not WEB.is_native

    def test_query_param(self):
        platform = detect_platform("android")
        assert platform.is_native
        assert platform.name == "android"
        assert platform.capabilities == frozenset()

    def test_header_is_case_insensitive(self):
        assert detect_platform(None, " Android ").is_native

    def test_capabilities_imply_native(self):
        platform = detect_platform(None, None, "rewarded_ad, purchase_plan")
        assert platform.is_native
        assert platform.supports(BridgeCapability.REWARDED_AD)
        assert not platform.supports(BridgeCapability.INTERSTITIAL)

    def test_ios_hint_is_web(self):
        assert detect_platform("ios") is WEB


class TestParseCapabilities:
    def test_ignores_unknown_and_blank(self):
        assert parse_capabilities("REWARDED_AD,,teleport") == frozenset({BridgeCapability.REWARDED_AD})

    @pytest.mark.parametrize("raw", [None, ""])
    def test_empty(self, raw):
        assert parse_capabilities(raw) == frozenset()


class PurchaseOnlyBridge(NativeBridge):
    capabilities = frozenset({BridgeCapability.PURCHASE_PLAN})

    def __init__(self):
        self.purchased = []

    def purchase_plan(self, plan_id: str) -> None:
        self.require(BridgeCapability.PURCHASE_PLAN)
        self.purchased.append(plan_id)


class TestNativeBridge:
    def test_supported_call(self):
        bridge = PurchaseOnlyBridge()
        bridge.purchase_plan("premium_monthly")
        assert bridge.purchased == ["premium_monthly"]

    def test_unsupported_call_raises(self):
        bridge = PurchaseOnlyBridge()
        with pytest.raises(BridgeCapabilityError) as exc:
            bridge.show_rewarded_ad()
        assert exc.value.capability is BridgeCapability.REWARDED_AD

    def test_platform_reflects_capabilities(self):
        platform = PurchaseOnlyBridge().platform
        assert platform.is_native
        assert platform.capabilities == frozenset({BridgeCapability.PURCHASE_PLAN})
