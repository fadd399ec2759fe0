"""Service catalog with durations, prices and add-ons."""

import logging
from typing import Iterable, Optional

from salon_booking.schemas.catalog_schema import AddOn, Service

logger = logging.getLogger(__name__)

SERVICE_CATALOG: dict[str, Service] = {
    s.id: s for s in [
        Service(
            id="gel-manicure",
            name="Gel Manicure",
            description="Shape, cuticle care and long-wear gel colour.",
            duration_minutes=60,
            base_price=45.0,
        ),
        Service(
            id="classic-pedicure",
            name="Classic Pedicure",
            description="Soak, exfoliation, nail care and polish.",
            duration_minutes=45,
            base_price=40.0,
        ),
        Service(
            id="acrylic-full-set",
            name="Acrylic Full Set",
            description="Full set of acrylic extensions with colour.",
            duration_minutes=90,
            base_price=70.0,
        ),
        Service(
            id="gel-removal",
            name="Gel Removal",
            duration_minutes=30,
            base_price=15.0,
        ),
    ]
}

ADDON_CATALOG: dict[str, AddOn] = {
    a.id: a for a in [
        AddOn(id="nail-art", name="Nail Art (per hand)", price=10.0, additional_time_minutes=15),
        AddOn(id="french-tips", name="French Tips", price=8.0, additional_time_minutes=10),
        AddOn(id="paraffin", name="Paraffin Treatment", price=12.0, additional_time_minutes=15),
        AddOn(id="chrome", name="Chrome Finish", price=10.0),
    ]
}

SERVICE_ALIASES: dict[str, str] = {
    "manicure": "gel-manicure", "gel nails": "gel-manicure", "gel": "gel-manicure",
    "pedicure": "classic-pedicure", "pedi": "classic-pedicure",
    "acrylics": "acrylic-full-set", "acrylic": "acrylic-full-set", "full set": "acrylic-full-set",
    "removal": "gel-removal", "soak off": "gel-removal",
}


def get_all_services() -> list[Service]:
    """Return all active services."""
    return [s for s in SERVICE_CATALOG.values() if s.is_active]


def get_service(service_id: str) -> Optional[Service]:
    return SERVICE_CATALOG.get(service_id.lower().strip())


def get_addons(addon_ids: Iterable[str]) -> list[AddOn]:
    """Resolve add-on ids, skipping unknown ones."""
    addons = []
    for addon_id in addon_ids:
        addon = ADDON_CATALOG.get(addon_id)
        if addon is None:
            logger.warning("Unknown add-on ignored: %s", addon_id)
            continue
        addons.append(addon)
    return addons


def match_service(query: str) -> Optional[str]:
    """Match a free-text query to a service ID. Returns None if no match."""
    normalized = query.lower().strip()
    if not normalized:
        return None
    for alias, service_id in SERVICE_ALIASES.items():
        if alias in normalized:
            return service_id
    for sid, service in SERVICE_CATALOG.items():
        if sid in normalized or normalized in service.name.lower():
            return sid
    return None


def total_duration(service: Optional[Service], addons: Iterable[AddOn] = ()) -> int:
    """Minutes needed for a service plus its add-ons; 0 with no service."""
    if service is None:
        return 0
    return service.duration_minutes + sum(a.additional_time_minutes for a in addons)


def total_price(service: Optional[Service], addons: Iterable[AddOn] = ()) -> float:
    """Quoted price for a service plus its add-ons; 0 with no service."""
    if service is None:
        return 0.0
    return service.base_price + sum(a.price for a in addons)
