"""Provider registry.

Every TSME-group portal shares the same login flow and JSON API and only
differs by its endpoint set. A provider is a name mapped to a factory that
builds a TSMEScraper configured with that endpoint set.
"""

from typing import Callable, Dict, Optional

from tsme_metering.scraper import ConfigError, ProviderEndpoints, TSMEScraper

SUEZ_ENDPOINTS = ProviderEndpoints(
    base_url="https://www.toutsurmoneau.fr",
    login_endpoint="/mon-compte-en-ligne/je-me-connecte",
    dashboard_endpoint="/mon-compte-en-ligne/tableau-de-bord",
    meters_list_endpoint="/public-api/cel-consumption/meters-list",
    metering_endpoint="/public-api/cel-consumption/telemetry",
)

DEFAULT_PROVIDER = "suez"


def suez_client(email: Optional[str], password: Optional[str]) -> TSMEScraper:
    return TSMEScraper(SUEZ_ENDPOINTS, email, password)


PROVIDERS: Dict[str, Callable[[Optional[str], Optional[str]], TSMEScraper]] = {
    "suez": suez_client,
}


def get_client(provider: str, email: Optional[str], password: Optional[str]) -> TSMEScraper:
    """Build a client for the named provider.

    Raises:
        ConfigError: If the provider is unknown or credentials are missing
    """
    factory = PROVIDERS.get(provider)
    if factory is None:
        raise ConfigError(f"Provider name must be one of {', '.join(PROVIDERS)}")
    return factory(email, password)
