# services/marketdata_service.py
import logging

import requests

from services.errors import RateUnavailableError

logger = logging.getLogger(__name__)


class MarketDataService:
    """
    BTC/USD spot quote for the balance display.
    Matching never consults this.

    사용 예:
        md = MarketDataService()
        price = md.fetch_spot_price()   # USD per BTC
    """

    def __init__(self, url="https://api.coinbase.com/v2/prices/spot?currency=USD", timeout=2):
        self.url = url
        self.timeout = timeout

    # ----------------------------------------------------
    # Coinbase spot price 가져오기
    # ----------------------------------------------------
    def fetch_spot_price(self) -> float:
        """
        응답 예:
            {"data": {"base": "BTC", "currency": "USD", "amount": "64000.12"}}
        """
        try:
            r = requests.get(self.url, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
            return float(data["data"]["amount"])

        except (requests.RequestException, KeyError, TypeError, ValueError) as e:
            logger.error("Unable to get Bitcoin price in USD. Error: %s", e)
            raise RateUnavailableError("Unable to get Bitcoin price in USD.") from e
