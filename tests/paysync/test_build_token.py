# ruff: noqa: S101
"""Tests for build token resolution."""

from typing import Any

import pytest

from paysync.connectors.gateway import GatewayResponse
from paysync.errors import GatewayError, SetupError
from paysync.providers.build_token import BuildTokenResolver

NAVER_DOCUMENT = "https://pay.naver.com/pc/history?page=1"
COUPANG_BOOTSTRAP = (
    "https://mc.coupang.com/ssr/api/myorders/model/page"
    "?requestYear=0&pageIndex=0&size=1"
)


@pytest.mark.unit
class TestNaverToken:
    """Fixed document URL with a provider-specific and a generic pattern."""

    def test_specific_pattern_wins(self, gateway_class: Any) -> None:
        html = (
            '<script src="/_next/static/GENERIC/_buildManifest.js"></script>'
            '<script src="https://financial.pstatic.net/naverpay-web/v2/_next/'
            'static/NAVER123/_buildManifest.js"></script>'
        )
        gateway = gateway_class({NAVER_DOCUMENT: html})

        token = BuildTokenResolver(gateway, {}).resolve("naver")

        assert token == "NAVER123"

    def test_falls_back_to_generic_pattern(self, gateway_class: Any) -> None:
        html = '<script src="/_next/static/abc-DEF_1/_buildManifest.js"></script>'
        gateway = gateway_class({NAVER_DOCUMENT: html})

        assert BuildTokenResolver(gateway, {}).resolve("naver") == "abc-DEF_1"

    def test_token_is_cached_per_resolver(self, gateway_class: Any) -> None:
        html = '<script src="/_next/static/ONCE/_buildManifest.js"></script>'
        gateway = gateway_class({NAVER_DOCUMENT: html})
        resolver = BuildTokenResolver(gateway, {})

        resolver.resolve("naver")
        resolver.resolve("naver")

        assert gateway.calls == [NAVER_DOCUMENT]

    def test_login_page_means_expired_session(self, gateway_class: Any) -> None:
        html = "<title>네이버 : 로그인</title>"
        gateway = gateway_class({NAVER_DOCUMENT: html})

        with pytest.raises(SetupError, match="expired"):
            BuildTokenResolver(gateway, {}).resolve("naver")

    def test_redirect_to_login_host_means_expired_session(
        self, gateway_class: Any
    ) -> None:
        redirected = GatewayResponse(
            status=200,
            body="<html></html>",
            final_url="https://nid.naver.com/nidlogin.login?url=https%3A%2F%2Fpay.naver.com",
        )
        gateway = gateway_class({NAVER_DOCUMENT: redirected})

        with pytest.raises(SetupError, match="expired"):
            BuildTokenResolver(gateway, {}).resolve("naver")

    def test_no_pattern_match(self, gateway_class: Any) -> None:
        gateway = gateway_class({NAVER_DOCUMENT: "<html></html>"})

        with pytest.raises(SetupError, match="not found"):
            BuildTokenResolver(gateway, {}).resolve("naver")

    def test_document_error_status(self, gateway_class: Any) -> None:
        gateway = gateway_class({NAVER_DOCUMENT: GatewayResponse(status=500, body="")})

        with pytest.raises(SetupError, match="HTTP 500"):
            BuildTokenResolver(gateway, {}).resolve("naver")

    def test_transport_error(self, gateway_class: Any) -> None:
        gateway = gateway_class({NAVER_DOCUMENT: GatewayError("connection reset")})

        with pytest.raises(SetupError, match="connection reset"):
            BuildTokenResolver(gateway, {}).resolve("naver")


@pytest.mark.unit
class TestCoupangToken:
    """Bootstrap listing first, then the order document."""

    def test_bootstrap_then_document(self, gateway_class: Any) -> None:
        document = "https://mc.coupang.com/ssr/desktop/order/9001"
        gateway = gateway_class(
            {
                COUPANG_BOOTSTRAP: {"orderList": [{"orderId": 9001}]},
                document: '<link href="/ssr/_next/static/CP42/_buildManifest.js">',
            }
        )

        token = BuildTokenResolver(gateway, {}).resolve("coupang")

        assert token == "CP42"
        assert gateway.calls == [COUPANG_BOOTSTRAP, document]

    def test_empty_bootstrap_listing(self, gateway_class: Any) -> None:
        gateway = gateway_class({COUPANG_BOOTSTRAP: {"orderList": []}})

        with pytest.raises(SetupError, match="no transactions"):
            BuildTokenResolver(gateway, {}).resolve("coupang")

    def test_bootstrap_not_json(self, gateway_class: Any) -> None:
        gateway = gateway_class({COUPANG_BOOTSTRAP: "<html>login</html>"})

        with pytest.raises(SetupError, match="not valid JSON"):
            BuildTokenResolver(gateway, {}).resolve("coupang")

    def test_bootstrap_redirected_to_login(self, gateway_class: Any) -> None:
        redirected = GatewayResponse(
            status=200,
            body="<html>login</html>",
            final_url="https://login.coupang.com/login/login.pang",
        )
        gateway = gateway_class({COUPANG_BOOTSTRAP: redirected})

        with pytest.raises(SetupError, match="expired"):
            BuildTokenResolver(gateway, {}).resolve("coupang")

    def test_bootstrap_error_status(self, gateway_class: Any) -> None:
        gateway = gateway_class(
            {COUPANG_BOOTSTRAP: GatewayResponse(status=403, body="forbidden")}
        )

        with pytest.raises(SetupError, match="HTTP 403"):
            BuildTokenResolver(gateway, {}).resolve("coupang")


@pytest.mark.unit
def test_unknown_provider(gateway_class: Any) -> None:
    with pytest.raises(SetupError):
        BuildTokenResolver(gateway_class(), {}).resolve("elsewhere")
