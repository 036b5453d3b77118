"""Service registry attached to the Flask app as ``app.services``.

Handlers only ever reach adapters through this object, so tests can swap any
one of them (a stub currency service, a spy export service) by passing a
registry to ``create_app``.
"""
from __future__ import annotations

from dataclasses import dataclass, field

import requests

from .analytics_service import AnalyticsService, CatalogAnalyticsService
from .ab_test_service import ABTestService, InMemoryABTestService
from .catalog import CatalogStore
from .config import Config
from .country_service import CountryService, InMemoryCountryService
from .currency_service import CurrencyService, InMemoryCurrencyService
from .email_service import EmailService, EmailTransport, QueuedEmailService
from .email_templates import TemplateRenderer
from .export_service import CatalogExportService, ExportService
from .loyalty_service import InMemoryLoyaltyService, LoyaltyService
from .notification_service import InMemoryNotificationService, NotificationService
from .search_service import InMemorySearchService, SearchService
from .tax_service import InMemoryTaxService, TaxService
from .vendor_service import InMemoryVendorService, VendorService


@dataclass
class ServiceRegistry:
    catalog: CatalogStore = field(default_factory=CatalogStore)
    ab_tests: ABTestService = field(default_factory=InMemoryABTestService)
    loyalty: LoyaltyService = field(default_factory=InMemoryLoyaltyService)
    taxes: TaxService = field(default_factory=InMemoryTaxService)
    countries: CountryService = field(default_factory=InMemoryCountryService)
    notifications: NotificationService = field(default_factory=InMemoryNotificationService)
    currencies: CurrencyService = field(default_factory=InMemoryCurrencyService)
    email: EmailService = field(default_factory=QueuedEmailService)
    search: SearchService | None = None
    vendors: VendorService | None = None
    exports: ExportService | None = None
    analytics: AnalyticsService | None = None

    def __post_init__(self) -> None:
        # catalog-backed adapters share the registry's catalog unless given explicitly
        if self.search is None:
            self.search = InMemorySearchService(self.catalog)
        if self.vendors is None:
            self.vendors = InMemoryVendorService(self.catalog)
        if self.exports is None:
            self.exports = CatalogExportService(self.catalog)
        if self.analytics is None:
            self.analytics = CatalogAnalyticsService(self.catalog, self.vendors)

    @classmethod
    def from_config(
        cls,
        cfg: Config,
        *,
        email_transport: EmailTransport | None = None,
        http_session: requests.Session | None = None,
    ) -> ServiceRegistry:
        return cls(
            currencies=InMemoryCurrencyService(
                api_url=cfg.exchange_rate_api_url, timeout=cfg.exchange_rate_timeout, session=http_session
            ),
            email=QueuedEmailService(
                email_transport, sender=cfg.email_from, renderer=TemplateRenderer(cfg.default_language)
            ),
        )


__all__ = ["ServiceRegistry"]
