"""Backend REST API access."""

from backoffice.api.account_settings import AccountSettingsApi
from backoffice.api.bookings import BookingsApi
from backoffice.api.client import HalClient
from backoffice.api.discounts import DiscountsApi
from backoffice.api.merchants import MerchantsApi
from backoffice.api.modification_policies import ModificationPoliciesApi
from backoffice.api.offerings import OfferingsApi
from backoffice.api.packages import PackagesApi
from backoffice.api.payments import PaymentsApi
from backoffice.api.pricings import PricingsApi
from backoffice.api.settlements import SettlementsApi
from backoffice.api.vehicles import VehiclesApi


class Backend:
    """One handle per backend area, all sharing a single HalClient."""

    def __init__(self, client: HalClient):
        self.client = client
        self.packages = PackagesApi(client)
        self.offerings = OfferingsApi(client)
        self.pricings = PricingsApi(client)
        self.discounts = DiscountsApi(client)
        self.bookings = BookingsApi(client)
        self.payments = PaymentsApi(client)
        self.settlements = SettlementsApi(client)
        self.merchants = MerchantsApi(client)
        self.account_settings = AccountSettingsApi(client)
        self.vehicles = VehiclesApi(client)
        self.modification_policies = ModificationPoliciesApi(client)


__all__ = ["Backend", "HalClient"]
