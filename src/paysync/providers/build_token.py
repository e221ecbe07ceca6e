"""Build token resolution for provider data endpoints.

Both providers serve their history through Next.js data routes addressed by
a build id. The id rotates with every deployment, so it is scraped from an
HTML document at the start of each run and cached for that run only.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from ..connectors.gateway import GatewayResponse, RequestGateway
from ..errors import GatewayError, SetupError
from .normalize import as_str, dig

logger = logging.getLogger(__name__)

_NEXT_BUILD_MANIFEST = re.compile(r"_next/static/([^/\"']+)/_buildManifest\.js")


@dataclass(frozen=True)
class BuildTokenSpec:
    """How to locate the build token for one provider.

    When ``bootstrap_url`` is set, the first listing entry is fetched and its
    id is substituted into ``document_url`` as ``{item_id}``.
    """

    document_url: str
    patterns: tuple[re.Pattern[str], ...]
    bootstrap_url: str | None = None
    bootstrap_id: Callable[[Any], str | None] | None = None
    login_markers: tuple[str, ...] = field(default_factory=tuple)
    login_hosts: tuple[str, ...] = field(default_factory=tuple)


BUILD_TOKEN_SPECS: dict[str, BuildTokenSpec] = {
    "naver": BuildTokenSpec(
        document_url="https://pay.naver.com/pc/history?page=1",
        patterns=(
            re.compile(
                r"financial\.pstatic\.net/naverpay-web/[^/]+/_next/static/([^/\"']+)/_buildManifest\.js"
            ),
            _NEXT_BUILD_MANIFEST,
        ),
        login_markers=("네이버 : 로그인",),
        login_hosts=("nid.naver.com",),
    ),
    "coupang": BuildTokenSpec(
        document_url="https://mc.coupang.com/ssr/desktop/order/{item_id}",
        patterns=(_NEXT_BUILD_MANIFEST,),
        bootstrap_url=(
            "https://mc.coupang.com/ssr/api/myorders/model/page"
            "?requestYear=0&pageIndex=0&size=1"
        ),
        bootstrap_id=lambda data: as_str(dig(data, "orderList", 0, "orderId")),
        login_hosts=("login.coupang.com",),
    ),
}


class BuildTokenResolver:
    """Derives and caches session-scoped build tokens.

    One resolver is created per run; tokens are never reused across runs.
    """

    def __init__(
        self,
        gateway: RequestGateway,
        headers: dict[str, str],
        specs: dict[str, BuildTokenSpec] | None = None,
    ) -> None:
        self._gateway = gateway
        self._headers = headers
        self._specs = specs if specs is not None else BUILD_TOKEN_SPECS
        self._cache: dict[str, str] = {}

    def resolve(self, provider_id: str) -> str:
        """Return the build token for a provider, fetching it on first use.

        Raises:
            SetupError: If the bootstrap listing is empty or fails, the
                document fetch fails, the session is expired, or no pattern
                matches the document
        """
        if provider_id in self._cache:
            return self._cache[provider_id]

        spec = self._specs.get(provider_id)
        if spec is None:
            raise SetupError(f"No build token configuration for {provider_id}")

        document_url = spec.document_url
        if spec.bootstrap_url:
            item_id = self._bootstrap_item_id(provider_id, spec)
            document_url = document_url.format(item_id=item_id)

        logger.info(f"Resolving {provider_id} build token from {document_url}")
        response = self._get(provider_id, document_url, "document")
        self._check_session(provider_id, spec, response)
        html = response.body

        for pattern in spec.patterns:
            match = pattern.search(html)
            if match and match.group(1):
                token = match.group(1)
                logger.debug(f"{provider_id} build token matched {pattern.pattern}")
                self._cache[provider_id] = token
                return token

        raise SetupError(f"{provider_id} build token not found in {document_url}")

    def _bootstrap_item_id(self, provider_id: str, spec: BuildTokenSpec) -> str:
        response = self._get(provider_id, spec.bootstrap_url or "", "bootstrap listing")
        self._check_session(provider_id, spec, response)
        try:
            data = json.loads(response.body)
        except json.JSONDecodeError as e:
            raise SetupError(
                f"{provider_id} bootstrap listing is not valid JSON: {e}"
            ) from e

        item_id = spec.bootstrap_id(data) if spec.bootstrap_id else None
        if not item_id:
            raise SetupError(
                f"{provider_id} has no transactions to derive a build token from"
            )
        return item_id

    def _check_session(
        self, provider_id: str, spec: BuildTokenSpec, response: GatewayResponse
    ) -> None:
        """Raise if the response is, or was redirected to, a login page."""
        host = urlsplit(response.final_url or "").hostname
        redirected = host is not None and host in spec.login_hosts
        if redirected or any(marker in response.body for marker in spec.login_markers):
            raise SetupError(
                f"{provider_id} session has expired (redirected to login). "
                "Refresh the saved session capture."
            )

    def _get(self, provider_id: str, url: str, what: str) -> GatewayResponse:
        try:
            response = self._gateway.request(url, "GET", self._headers, None)
        except GatewayError as e:
            raise SetupError(f"{provider_id} {what} request failed: {e}") from e
        if not response.ok:
            raise SetupError(
                f"{provider_id} {what} request failed: HTTP {response.status}"
            )
        return response
