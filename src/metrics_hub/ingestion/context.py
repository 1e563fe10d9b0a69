"""Read-only snapshot handed to every source for one run."""

import datetime
from dataclasses import dataclass, field


@dataclass(frozen=True)
class AppInfo:
    id: str
    slug: str
    name: str
    type: str
    platforms: tuple[str, ...] = ()
    apple_app_id: str | None = None
    apple_bundle_id: str | None = None
    google_package_name: str | None = None
    revenuecat_app_id: str | None = None
    firebase_app_id: str | None = None
    ga4_property_id: str | None = None
    ga4_stream_id: str | None = None
    website_url: str | None = None
    umami_website_id: str | None = None

    @classmethod
    def from_row(cls, row) -> "AppInfo":
        return cls(
            id=row.id,
            slug=row.slug,
            name=row.name,
            type=row.type,
            platforms=tuple(row.platforms or ()),
            apple_app_id=row.apple_app_id,
            apple_bundle_id=row.apple_bundle_id,
            google_package_name=row.google_package_name,
            revenuecat_app_id=row.revenuecat_app_id,
            firebase_app_id=row.firebase_app_id,
            ga4_property_id=row.ga4_property_id,
            ga4_stream_id=row.ga4_stream_id,
            website_url=row.website_url,
            umami_website_id=row.umami_website_id,
        )


@dataclass(frozen=True)
class ProviderInfo:
    id: str
    slug: str
    name: str
    category: str
    billing_cycle: str = "monthly"
    currency: str = "USD"

    @classmethod
    def from_row(cls, row) -> "ProviderInfo":
        return cls(
            id=row.id,
            slug=row.slug,
            name=row.name,
            category=row.category,
            billing_cycle=row.billing_cycle,
            currency=row.currency,
        )


@dataclass(frozen=True)
class IngestionContext:
    """Target date plus the active registry, shared by all sources."""

    date: datetime.date
    apps: tuple[AppInfo, ...] = ()
    providers: tuple[ProviderInfo, ...] = ()
    dry_run: bool = False
    started_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    @property
    def date_str(self) -> str:
        return self.date.isoformat()

    def apps_on(self, platform: str) -> list[AppInfo]:
        return [app for app in self.apps if platform in app.platforms]

    def app_by_slug(self, slug: str) -> AppInfo | None:
        return next((app for app in self.apps if app.slug == slug), None)

    def provider_by_slug(self, slug: str) -> ProviderInfo | None:
        return next((p for p in self.providers if p.slug == slug), None)
