"""Purchase history providers and their shared normalization helpers."""

from ..config import SyncConfig
from ..connectors.gateway import RequestGateway
from ..schemas import ProviderId
from .base import Partition, Provider
from .build_token import BUILD_TOKEN_SPECS, BuildTokenResolver, BuildTokenSpec
from .coupang import CoupangProvider
from .naver import NaverProvider

PROVIDERS: dict[ProviderId, type[Provider]] = {
    ProviderId.NAVER: NaverProvider,
    ProviderId.COUPANG: CoupangProvider,
}


def create_provider(
    provider_id: ProviderId | str,
    gateway: RequestGateway,
    headers: dict[str, str],
    config: SyncConfig | None = None,
) -> Provider:
    """Instantiate a provider for one run.

    Raises:
        ValueError: If the provider id is unknown
    """
    provider_cls = PROVIDERS[ProviderId(provider_id)]
    return provider_cls(gateway, headers, config)


__all__ = [
    "BUILD_TOKEN_SPECS",
    "BuildTokenResolver",
    "BuildTokenSpec",
    "CoupangProvider",
    "NaverProvider",
    "PROVIDERS",
    "Partition",
    "Provider",
    "create_provider",
]
