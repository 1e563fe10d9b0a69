"""Application and provider registry tables.

Rows are maintained out-of-band and only read during ingestion.
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text

from metrics_hub.models.base import Base, new_id, utcnow


class App(Base):
    """One tracked product."""

    __tablename__ = "apps"

    id = Column(String(36), primary_key=True, default=new_id)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False)  # mobile, web, desktop, api
    platforms = Column(JSON, nullable=False, default=list)  # ["ios", "android", "web"]

    # External identifiers
    apple_app_id = Column(String(50))
    apple_bundle_id = Column(String(255))
    google_package_name = Column(String(255))
    revenuecat_app_id = Column(String(100))
    firebase_app_id = Column(String(100))
    ga4_property_id = Column(String(50))
    ga4_stream_id = Column(String(50))
    website_url = Column(String(500))
    umami_website_id = Column(String(100))

    description = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<App(slug={self.slug}, type={self.type})>"


class Provider(Base):
    """One external cost/service source."""

    __tablename__ = "providers"

    id = Column(String(36), primary_key=True, default=new_id)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False)  # ai, infrastructure, analytics, payment, email, other
    api_base_url = Column(String(500))
    billing_cycle = Column(String(20), nullable=False, default="monthly")  # daily, monthly, usage
    currency = Column(String(3), nullable=False, default="USD")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Provider(slug={self.slug}, category={self.category})>"
