import logging
from typing import List, Optional, Tuple

from config import Settings, get_settings
from errors import MissingShopDomain, NoUsableCredential
from schemas import Credentials, Endpoint, Installation

logger = logging.getLogger(__name__)

# token kind -> Installation attribute
TOKEN_FIELDS = {
    "company": "company_api_key",
    "primary": "authentication_token",
    "webhook": "webhook_verification_token",
}


def mask_token(token: Optional[str]) -> str:
    if not token:
        return "None"
    return f"{token[:8]}..."


def normalize_shop(shop: str, domain: str = "fluid.app") -> str:
    """Reduce "https://acme.fluid.app/admin" or "acme.fluid.app" to "acme"."""
    s = shop.strip().replace("http://", "").replace("https://", "")
    s = s.split("/")[0].split("?")[0].lower()
    suffix = f".{domain}"
    return s[:-len(suffix)] if s.endswith(suffix) else s


def select_token(installation: Installation, priority: List[str]) -> Tuple[str, str]:
    """Return (kind, token) for the first token kind in priority order that is set."""
    for kind in priority:
        token = getattr(installation, TOKEN_FIELDS[kind])
        if token and token.strip():
            return kind, token.strip()
    raise NoUsableCredential(installation.fluid_id)


def candidate_endpoints(shop: str, settings: Settings) -> List[Endpoint]:
    """Ordered most- to least-preferred. Not configurable per call."""
    shop_host = f"https://{shop}.{settings.fluid_domain}/api"
    return [
        Endpoint(base_url=f"{shop_host}/{settings.api_version}"),
        Endpoint(base_url=f"{shop_host}/{settings.legacy_api_version}"),
        Endpoint(
            base_url=f"https://{settings.fluid_global_host}/api/{settings.legacy_api_version}",
            params={"company": shop},
        ),
    ]


def resolve(installation: Installation, settings: Optional[Settings] = None) -> Credentials:
    settings = settings or get_settings()

    shop = normalize_shop(installation.fluid_shop or "", settings.fluid_domain)
    if not shop:
        raise MissingShopDomain(installation.fluid_id)

    kind, token = select_token(installation, settings.token_priority)
    logger.debug("Installation %s: using %s token %s for shop %s",
                 installation.fluid_id, kind, mask_token(token), shop)

    return Credentials(token=token, token_kind=kind, endpoints=candidate_endpoints(shop, settings))
