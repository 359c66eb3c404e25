"""Address geocoding through the OpenStreetMap Nominatim API."""
import logging
import time
from typing import Any, Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)


class Geocoder:
    """Forward and reverse geocoder for event addresses."""

    BASE_URL = "https://nominatim.openstreetmap.org"
    USER_AGENT = "potluck-event-sync/0.1"

    def __init__(self, timeout: int = 30):
        """
        Initialize the geocoder.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.timeout = timeout

    def geocode(self, address: str) -> Optional[Tuple[float, float]]:
        """
        Look up coordinates for an address.

        Args:
            address: Free-form street address

        Returns:
            Tuple of (latitude, longitude), or None if nothing matched
        """
        if not address or not address.strip():
            return None

        logger.info(f"Geocoding address: {address}")
        results = self._get_json('/search', {
            'q': address.strip(),
            'format': 'json',
            'limit': 1
        })

        if not results:
            logger.info(f"No coordinates found for address: {address}")
            return None

        try:
            first = results[0]
            return float(first['lat']), float(first['lon'])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Unexpected geocoding response for '{address}': {e}")
            return None

    def reverse_geocode(self, latitude: float, longitude: float) -> Optional[str]:
        """
        Look up a readable place name for coordinates.

        Returns:
            Display name of the place, or None if nothing matched
        """
        result = self._get_json('/reverse', {
            'lat': latitude,
            'lon': longitude,
            'format': 'json'
        })

        if not isinstance(result, dict) or 'error' in result:
            return None
        return result.get('display_name')

    def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        """
        Perform a GET request with retry logic.

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        max_retries = 3
        base_delay = 1  # seconds

        for attempt in range(max_retries):
            try:
                response = requests.get(
                    f"{self.BASE_URL}{path}",
                    params=params,
                    headers={'User-Agent': self.USER_AGENT},
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response.json()

            except requests.RequestException as e:
                if attempt < max_retries - 1:
                    # Calculate exponential backoff delay
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Geocoding request failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {max_retries} geocoding attempts failed. Last error: {e}"
                    )
                    raise
