"""Product model: one canonical row per upstream SKU."""

from sqlalchemy import Column, String, Float, Boolean, Integer, Text, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from partscraper.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class Product(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "products"

    # Natural key, unique across runs
    sku = Column(String(100), unique=True, nullable=False, index=True)

    # Descriptive
    title = Column(Text)
    description = Column(Text)
    description_retail = Column(Text)
    category = Column(String(255))
    category_name = Column(String(255), index=True)  # configured category that surfaced the item
    interchange = Column(String(255))
    type = Column(String(100))
    code = Column(String(100))
    unit_of_measure_code = Column(String(50))
    unit_of_measure = Column(String(100))
    company_code = Column(String(50))
    ftc_display = Column(Text)
    availability = Column(String(100))

    # Pricing
    price = Column(Float)
    list_price = Column(Float)
    core_price = Column(Float)

    # Links
    image_url = Column(Text)
    product_url = Column(Text)

    # Yard / location
    location = Column(String(255))
    yard_city = Column(String(100))
    yard_state = Column(String(50))

    # Source vehicle
    source_vehicle_year = Column(String(10))
    source_vehicle_make = Column(String(100))
    source_vehicle_model = Column(String(100))
    mileage = Column(Integer)

    # Structured sub-documents, NULL when absent or unparsable
    source_vehicle_data = Column(JSONType)
    fitments = Column(JSONType)
    fitment_json = Column(JSONType)
    images = Column(JSONType)
    categories = Column(JSONType)
    pricing = Column(JSONType)
    catalog = Column(JSONType)

    # Flags
    free_shipping_eligible = Column(Boolean, default=False, nullable=False)
    is_reman = Column(Boolean, default=False, nullable=False)
    require_vin = Column(Boolean, default=False, nullable=False)
    display_financing = Column(Boolean, default=False, nullable=False)
    reman_finance_ineligible = Column(Boolean, default=False, nullable=False)

    # Run that last wrote this row
    scraper_run_id = Column(Uuid(as_uuid=True), ForeignKey("scraper_runs.id"), index=True)

    scraper_run = relationship("ScraperRun", back_populates="products")

    __table_args__ = (
        Index("idx_product_make_model", "source_vehicle_make", "source_vehicle_model"),
    )
