"""Normalization of upstream catalog items into canonical product records."""

import json
import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Union

from partscraper.services.fetch_client import MalformedPayloadError

logger = logging.getLogger(__name__)

PRODUCT_URL_BASE = "https://www.lkqonline.com/products"

# Field holding the item array in the upstream response
ITEMS_FIELD = "data"

TRUTHY_STRINGS = frozenset({"true", "1", "yes", "y"})

# Embedded sub-documents are either objects or arrays; None when absent or unparsable
JsonDocument = Union[dict[str, Any], list[Any]]


@dataclass
class Category:
    name: str
    url: str


@dataclass
class ProductRecord:
    sku: str
    title: str | None = None
    description: str | None = None
    description_retail: str | None = None
    price: float | None = None
    list_price: float | None = None
    core_price: float | None = None
    image_url: str | None = None
    product_url: str | None = None
    category_name: str | None = None
    category: str | None = None
    mileage: int | None = None
    location: str | None = None
    yard_city: str | None = None
    yard_state: str | None = None
    source_vehicle_year: str | None = None
    source_vehicle_make: str | None = None
    source_vehicle_model: str | None = None
    source_vehicle_data: JsonDocument | None = None
    fitments: JsonDocument | None = None
    fitment_json: JsonDocument | None = None
    interchange: str | None = None
    type: str | None = None
    code: str | None = None
    unit_of_measure_code: str | None = None
    unit_of_measure: str | None = None
    company_code: str | None = None
    ftc_display: str | None = None
    free_shipping_eligible: bool = False
    is_reman: bool = False
    require_vin: bool = False
    display_financing: bool = False
    reman_finance_ineligible: bool = False
    availability: str | None = None
    images: JsonDocument | None = None
    categories: JsonDocument | None = None
    pricing: JsonDocument | None = None
    catalog: JsonDocument | None = None
    warnings: list[str] = field(default_factory=list, compare=False)

    def to_columns(self) -> dict[str, Any]:
        """Column values for the products table."""
        data = asdict(self)
        data.pop("warnings")
        return data


def extract_items(payload: Any) -> list[Any]:
    """Pull the item array out of an API response body."""
    if not isinstance(payload, dict):
        raise MalformedPayloadError(f"Expected a JSON object, got {type(payload).__name__}")
    items = payload.get(ITEMS_FIELD)
    if items is None:
        return []
    if not isinstance(items, list):
        raise MalformedPayloadError(f"'{ITEMS_FIELD}' is {type(items).__name__}, expected an array")
    return items


def parse_embedded_json(value: Any) -> JsonDocument | None:
    """Parse a JSON-encoded sub-document.

    Structured values pass through; strings are decoded and kept only when
    they yield an object or array. Anything else degrades to None.
    """
    if isinstance(value, (dict, list)):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = json.loads(value)
    except ValueError:
        return None
    return parsed if isinstance(parsed, (dict, list)) else None


def parse_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "").lstrip("$")
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_int(value: Any) -> int | None:
    number = parse_float(value)
    return int(number) if number is not None else None


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    if isinstance(value, (int, float)):
        return value != 0
    return False


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first_image(images: Any) -> str | None:
    if isinstance(images, list) and images and isinstance(images[0], str):
        return images[0]
    return None


def _embedded(raw: dict, key: str, sku: str, warnings: list[str]) -> JsonDocument | None:
    value = raw.get(key)
    parsed = parse_embedded_json(value)
    if parsed is None and isinstance(value, str) and value.strip():
        warnings.append(f"unparsable {key}")
        logger.warning(f"Failed to parse {key} for product {sku}")
    return parsed


def product_url(sku: str) -> str:
    return f"{PRODUCT_URL_BASE}/{sku}"


def normalize_item(raw: Any, category: Category) -> ProductRecord:
    """Map one upstream item to a ProductRecord.

    Raises ValueError when the item is not an object or has no SKU.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Item is {type(raw).__name__}, expected an object")

    sku = _text(raw.get("number")) or _text(raw.get("id"))
    if not sku:
        raise ValueError("Item has neither 'number' nor 'id'")

    warnings: list[str] = []
    images = raw.get("images")

    return ProductRecord(
        sku=sku,
        title=_text(raw.get("descriptionRetail")) or _text(raw.get("description")),
        description=_text(raw.get("description")),
        description_retail=_text(raw.get("descriptionRetail")),
        price=parse_float(raw.get("price")),
        list_price=parse_float(raw.get("listPrice")),
        core_price=parse_float(raw.get("corePrice")),
        image_url=_first_image(images),
        product_url=product_url(sku),
        category_name=category.name,
        category=_text(raw.get("category")),
        mileage=parse_int(raw.get("mileage")),
        location=_text(raw.get("location")),
        yard_city=_text(raw.get("yardCity")),
        yard_state=_text(raw.get("yardState")),
        source_vehicle_year=_text(raw.get("sourceVehicleYear")),
        source_vehicle_make=_text(raw.get("sourceVehicleMake")),
        source_vehicle_model=_text(raw.get("sourceVehicleModel")),
        source_vehicle_data=_embedded(raw, "_salvageSourceVehicle", sku, warnings),
        fitments=_embedded(raw, "fitments", sku, warnings),
        fitment_json=_embedded(raw, "fitmentJson", sku, warnings),
        interchange=_text(raw.get("interchange")),
        type=_text(raw.get("type")),
        code=_text(raw.get("code")),
        unit_of_measure_code=_text(raw.get("unitOfMeasureCode")),
        unit_of_measure=_text(raw.get("unitOfMeasure")),
        company_code=_text(raw.get("companyCode")),
        ftc_display=_text(raw.get("ftcDisplay")),
        free_shipping_eligible=parse_bool(raw.get("freeShippingEligible")),
        is_reman=parse_bool(raw.get("isReman")),
        require_vin=parse_bool(raw.get("requireVin")),
        display_financing=parse_bool(raw.get("displayFinancing")),
        reman_finance_ineligible=parse_bool(raw.get("remanFinanceIneligible")),
        availability=_text(raw.get("availability")),
        images=images if isinstance(images, list) else None,
        categories=parse_embedded_json(raw.get("categories")),
        pricing=parse_embedded_json(raw.get("pricing")),
        catalog=parse_embedded_json(raw.get("catalog")),
        warnings=warnings,
    )
