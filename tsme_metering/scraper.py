"""TSME authentication and metering download module.

This module handles:
- Authentication with the TSME customer portal (Symfony login form)
- CSRF token extraction from the inline ``tsme_data`` bootstrap script
- Session management and cookie handling
- Listing the account's water meters and downloading daily telemetry
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from tsme_metering.metering import (
    MeteringParseError,
    MeteringRecord,
    format_wire_date,
    normalize_date_range,
    parse_measures,
)

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderEndpoints:
    """Portal origin and the paths used by the scraper."""
    base_url: str
    login_endpoint: str
    dashboard_endpoint: str
    meters_list_endpoint: str
    metering_endpoint: str


class TSMEError(Exception):
    """Base exception for TSME client errors."""
    pass


class ConfigError(TSMEError):
    """Exception raised when the client is missing required configuration."""
    pass


class AuthError(TSMEError):
    """Exception raised when authentication fails."""
    pass


class ApiError(TSMEError):
    """Exception raised when a portal API response is rejected."""
    pass


class TSMEScraper:
    """Scraper for the TSME water metering portal.

    The portal has no public API. Logging in means fetching the login page,
    pulling the CSRF token out of the ``window.tsme_data`` bootstrap script and
    posting it back with the credentials. The session cookies obtained this way
    authorize the JSON endpoints used for meter listing and telemetry.

    Attributes:
        endpoints: Provider endpoint set (base URL and paths)
        email: Portal login e-mail
        password: Portal login password
    """

    # Marker of the inline script carrying the bootstrap payload
    TSME_DATA_MARKER = "window.tsme_data = JSON.parse"
    TSME_DATA_PATTERN = re.compile(r'JSON\.parse\("(.+?)"\)')

    # Login form field names
    USERNAME_FIELD = "tsme_user_login[_username]"
    PASSWORD_FIELD = "tsme_user_login[_password]"
    TARGET_PATH_FIELD = "tsme_user_login[_target_path]"
    CSRF_FIELD = "_csrf_token"

    # Only this equipment class exposes telemetry
    COMPATIBLE_EQUIPMENT = "TR"

    def __init__(self, endpoints: ProviderEndpoints, email: Optional[str], password: Optional[str]):
        """Initialize the scraper with endpoints and credentials.

        Args:
            endpoints: Provider endpoint set
            email: Portal login e-mail
            password: Portal login password

        Raises:
            ConfigError: If email or password is missing
        """
        if not email or not password:
            raise ConfigError("Both email and password should be defined")

        self.endpoints = endpoints
        self.email = email
        self.password = password
        self.session = requests.Session()
        self._authenticated = False

        # Set common headers
        self.session.headers.update({
            "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "Accept-Language": "fr-FR,fr;q=0.9,en;q=0.8",
        })

    @property
    def is_logged_in(self) -> bool:
        return self._authenticated

    def _url(self, path: str) -> str:
        return urljoin(self.endpoints.base_url, path)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Issue a single request against the portal.

        HTTP error statuses are returned, not raised; callers decide what a
        failure means for their stage.
        """
        url = self._url(path)
        logger.debug(f"{method} {url}")
        return self.session.request(method, url, **kwargs)

    @staticmethod
    def _find_script(html: str, predicate: Callable[[str], bool]) -> Optional[str]:
        """Return the text of the first inline script matching predicate."""
        soup = BeautifulSoup(html, "html.parser")
        for script in soup.find_all("script"):
            text = script.string or script.get_text()
            if text and predicate(text):
                return text
        return None

    @staticmethod
    def _find_link(html: str, rel: str, predicate: Callable[[str], bool]) -> Optional[Tag]:
        """Return the first <link rel=...> element whose href matches predicate."""
        soup = BeautifulSoup(html, "html.parser")
        for link in soup.find_all("link", rel=rel):
            href = link.get("href")
            if href and predicate(href):
                return link
        return None

    @staticmethod
    def _check_api_response(response: requests.Response) -> bool:
        """Validate the portal JSON envelope.

        A response is accepted when the HTTP status is 200 and the envelope
        message is "OK". The envelope code is not inspected.
        """
        if response.status_code != 200:
            return False

        try:
            envelope = response.json()
        except ValueError:
            return False

        if not isinstance(envelope, dict):
            return False

        return envelope.get("message") == "OK"

    def _extract_csrf(self, html: str) -> str:
        """Extract the CSRF token from the login page.

        The bootstrap payload is embedded as ``JSON.parse("...")``: a JSON
        document serialized into a JavaScript string literal, so it has to be
        decoded twice.

        Args:
            html: Login page HTML

        Returns:
            CSRF token

        Raises:
            AuthError: If the script, payload or token cannot be found
        """
        script = self._find_script(html, lambda text: self.TSME_DATA_MARKER in text)
        if script is None:
            raise AuthError("csrf token source not found")

        match = self.TSME_DATA_PATTERN.search(script)
        if not match:
            raise AuthError("payload extraction failed: no JSON.parse argument")

        try:
            # Unescape \uXXXX sequences and escaped slashes, then parse
            decoded = json.loads(f'"{match.group(1)}"')
            tsme_data = json.loads(decoded)
        except (ValueError, TypeError) as e:
            raise AuthError(f"payload extraction failed: {e}") from e

        if not isinstance(tsme_data, dict):
            raise AuthError("payload extraction failed: bootstrap data is not an object")

        csrf_token = tsme_data.get("csrfToken")
        if not csrf_token or not isinstance(csrf_token, str):
            raise AuthError("csrf token missing")

        return csrf_token

    def login(self) -> bool:
        """Authenticate with the TSME portal.

        Performs the login process:
        1. GET login page and extract the CSRF token
        2. POST credentials with the token
        3. Check that the response is the dashboard page

        Returns:
            True if authentication succeeded

        Raises:
            AuthError: If authentication fails
        """
        logger.info(f"Authenticating as {self.email}")

        failure = "login preparation failed"
        try:
            # Step 1: GET login page
            response = self._request("GET", self.endpoints.login_endpoint)
            if response.status_code != 200:
                raise AuthError(f"login preparation failed: HTTP {response.status_code}")

            # Step 2: Extract CSRF token
            csrf_token = self._extract_csrf(response.text)
            logger.debug(f"CSRF token: {csrf_token[:8]}...")

            # Step 3: POST login form
            failure = "login request failed"
            form_data = {
                self.USERNAME_FIELD: self.email,
                self.PASSWORD_FIELD: self.password,
                self.TARGET_PATH_FIELD: self.endpoints.dashboard_endpoint,
                self.CSRF_FIELD: csrf_token,
            }
            response = self._request(
                "POST",
                self.endpoints.login_endpoint,
                data=form_data,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Referer": self._url(self.endpoints.login_endpoint),
                    "Origin": self.endpoints.base_url,
                },
                allow_redirects=True,
            )
            if response.status_code != 200:
                raise AuthError(f"login request failed: HTTP {response.status_code}")

            # Step 4: The dashboard is only rendered for an authenticated user
            dashboard = self.endpoints.dashboard_endpoint
            if self._find_link(response.text, "canonical", lambda href: dashboard in href) is None:
                raise AuthError("invalid credentials")

        except AuthError:
            raise
        except requests.RequestException as e:
            logger.error(f"Login failed: {e}")
            raise AuthError(f"{failure}: {e}") from e

        self._authenticated = True
        logger.info("Authentication successful")
        return True

    def _ensure_session(self) -> None:
        """Log in unless this client already holds an authenticated session."""
        if not self._authenticated:
            self.login()

    def _get_api(self, path: str, error_message: str, **kwargs) -> dict:
        """GET a JSON endpoint and return its validated envelope."""
        try:
            response = self._request("GET", path, **kwargs)
        except requests.RequestException as e:
            raise ApiError(f"{error_message}: {e}") from e

        if not self._check_api_response(response):
            raise ApiError(f"{error_message}: HTTP {response.status_code}")

        return response.json()

    def list_meter_ids(self) -> List[str]:
        """List the identifiers of the account's compatible (TR) meters.

        Returns:
            Meter identifiers in the order the portal returns them

        Raises:
            AuthError: If the implicit login fails
            ApiError: If the meter list cannot be retrieved
        """
        self._ensure_session()

        logger.info(f"Getting all meter IDs of {self.email}")
        envelope = self._get_api(self.endpoints.meters_list_endpoint, "meter listing failed")

        content = envelope.get("content") or {}
        meter_ids: List[str] = []
        nb_meters = content.get("nbMeters")
        if nb_meters is not None and nb_meters < 1:
            logger.info("No meter on this account")
            return meter_ids

        for customer in content.get("clientCompteursPro") or []:
            # No TR meter for this customer
            if customer.get("nombreCompteurTr") == 0:
                continue
            for meter in customer.get("compteursPro") or []:
                if meter.get("codeEquipement") == self.COMPATIBLE_EQUIPMENT:
                    meter_ids.append(meter.get("idPDS"))

        logger.info(f"Meter IDs extracted ({len(meter_ids)})")
        return meter_ids

    def get_metering(
        self,
        meter_id: str,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> List[MeteringRecord]:
        """Download daily metering data for one meter.

        Args:
            meter_id: Meter identifier (PDS) from list_meter_ids()
            from_date: Start of the range (default: start of the current month)
            to_date: End of the range (default and maximum: end of yesterday)

        Returns:
            Metering records in server order

        Raises:
            AuthError: If the implicit login fails
            ApiError: If the telemetry cannot be retrieved
        """
        self._ensure_session()

        from_date, to_date = normalize_date_range(from_date, to_date)
        logger.info(
            f"Getting metering of {meter_id} from {format_wire_date(from_date)} "
            f"to {format_wire_date(to_date)}"
        )

        envelope = self._get_api(
            self.endpoints.metering_endpoint,
            "metering extraction failed",
            params={
                "id_PDS": meter_id,
                "mode": "daily",
                "start_date": format_wire_date(from_date),
                "end_date": format_wire_date(to_date),
            },
        )

        content = envelope.get("content") or {}
        try:
            records = parse_measures(content.get("measures") or [])
        except MeteringParseError as e:
            raise ApiError(f"metering extraction failed: {e}") from e

        logger.info(f"Metering extracted ({len(records)} records)")
        return records
