"""
Meter keys and retail price list queries.

A meter key is a stable string built from semantic facets (product, tier,
redundancy or encryption mode, cost facet). Raw meter display names are only
ever parsed here, once, while populating the price cache; callers build keys
with the ``*_meter_key`` functions and never from display names.
"""
import re
from typing import Callable, Dict, Any, List, Optional
from dataclasses import dataclass


# ANF cost facets
ANF_CAPACITY = "capacity"
ANF_CAPACITY_DOUBLE_ENCRYPTED = "capacity-doubleencrypted"
ANF_THROUGHPUT = "throughput"
ANF_COOL_STORAGE = "coolstorage"
ANF_COOL_TRANSFER = "cooltransfer"
ANF_COOL_ACCESS_LEVEL = "coolaccess"

ANF_COOL_ACCESS_SKU = "Standard Storage with Cool Access"
ANF_FLEXIBLE_SKU = "Flexible Service Level"

AZURE_FILES_REDUNDANCIES = ("RA-GZRS", "RA-GRS", "GZRS", "GRS", "ZRS", "LRS")

MANAGED_DISK_PRODUCTS = {
    "premiumssd": "Premium SSD Managed Disks",
    "premiumssdv2": "Premium SSD v2 Managed Disks",
    "standardssd": "Standard SSD Managed Disks",
    "standardhdd": "Standard HDD Managed Disks",
    "ultradisk": "Ultra Disks",
}

FLEXIBLE_DISK_TYPES = ("premiumssdv2", "ultradisk")

_DISK_SKU_PATTERN = re.compile(r"\b([PESA]\d+)\b")


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", (value or "").lower())


def anf_meter_key(service_level: str, facet: str) -> str:
    return f"anf-{_slug(service_level)}-{facet}"


def anf_cool_meter_key(facet: str) -> str:
    return anf_meter_key(ANF_COOL_ACCESS_LEVEL, facet)


def azure_files_meter_key(tier: str, redundancy: str, facet: str) -> str:
    return f"azurefiles-{_slug(tier)}-{redundancy.lower()}-{_slug(facet)}"


def managed_disk_meter_key(sku: str, redundancy: str, facet: Optional[str] = None) -> str:
    sku_part = sku.lower() if not facet else f"{sku.lower()}-{facet}"
    return f"manageddisk-{sku_part}-{redundancy.lower()}"


def normalize_region(region: str) -> str:
    """
    Normalize an Azure region to its ARM name.

    Args:
        region: Region as displayed or as ARM name ('East US', 'eastus')

    Returns:
        ARM region name (lowercase, no spaces)
    """
    return (region or "").lower().replace(" ", "")


@dataclass(frozen=True)
class PriceQuery:
    """
    An upstream price list query together with the parser for its results.

    ``key_for`` maps one raw price item to a meter key, or None when the
    meter is not one we price (such meters are skipped, not cached).
    """
    resource_type: str
    filter_expression: str
    key_for: Callable[[Dict[str, Any]], Optional[str]]
    description: str = ""


def _odata(filters: List[str]) -> str:
    return " and ".join(filters)


# ---------------------------------------------------------------------------
# Azure NetApp Files
# ---------------------------------------------------------------------------

def parse_anf_meter(item: Dict[str, Any], service_level: str) -> Optional[str]:
    """Map an ANF service-level meter to its key."""
    meter_name = (item.get("meterName") or "").lower()
    if "cool" in meter_name:
        return parse_anf_cool_meter(item)
    if "capacity" in meter_name:
        facet = ANF_CAPACITY_DOUBLE_ENCRYPTED if "double" in meter_name else ANF_CAPACITY
        return anf_meter_key(service_level, facet)
    if "throughput" in meter_name:
        return anf_meter_key(service_level, ANF_THROUGHPUT)
    return None


def parse_anf_cool_meter(item: Dict[str, Any]) -> Optional[str]:
    meter_name = (item.get("meterName") or "").lower()
    if "capacity" in meter_name or "storage" in meter_name:
        return anf_cool_meter_key(ANF_COOL_STORAGE)
    if "transfer" in meter_name:
        return anf_cool_meter_key(ANF_COOL_TRANSFER)
    return None


def anf_query(region: str, service_level: str) -> PriceQuery:
    """All meters (capacity, double-encrypted capacity, throughput) for one ANF service level."""
    sku_name = ANF_FLEXIBLE_SKU if service_level.lower() == "flexible" else service_level
    filter_expression = _odata([
        "serviceFamily eq 'Storage'",
        "serviceName eq 'Azure NetApp Files'",
        "productName eq 'Azure NetApp Files'",
        f"armRegionName eq '{normalize_region(region)}'",
        f"skuName eq '{sku_name}'",
    ])
    return PriceQuery(
        resource_type="ANF",
        filter_expression=filter_expression,
        key_for=lambda item: parse_anf_meter(item, service_level),
        description=f"ANF {service_level}",
    )


def anf_cool_query(region: str) -> PriceQuery:
    """Cool tier storage and transfer meters, shared by every service level."""
    filter_expression = _odata([
        "serviceFamily eq 'Storage'",
        "serviceName eq 'Azure NetApp Files'",
        "productName eq 'Azure NetApp Files'",
        f"armRegionName eq '{normalize_region(region)}'",
        f"skuName eq '{ANF_COOL_ACCESS_SKU}'",
    ])
    return PriceQuery(
        resource_type="ANF",
        filter_expression=filter_expression,
        key_for=parse_anf_cool_meter,
        description="ANF cool access",
    )


# ---------------------------------------------------------------------------
# Azure Files
# ---------------------------------------------------------------------------

def _azure_files_tier(sku_name: str) -> Optional[str]:
    if "hot" in sku_name:
        return "Hot"
    if "cool" in sku_name:
        return "Cool"
    if "transaction optimized" in sku_name:
        return "TransactionOptimized"
    if "provisioned v2" in sku_name:
        return "ProvisionedV2SSD"
    if "provisioned" in sku_name or "premium" in sku_name:
        return "ProvisionedV1"
    return None


def _redundancy(text: str) -> Optional[str]:
    upper = text.upper()
    for code in AZURE_FILES_REDUNDANCIES:
        if re.search(rf"(?<![A-Z-]){code}\b", upper):
            return code
    return None


def parse_azure_files_meter(item: Dict[str, Any]) -> Optional[str]:
    """Map an Azure Files meter to its key, using sku name for tier and redundancy."""
    meter_name = (item.get("meterName") or "").lower()
    sku_name = (item.get("skuName") or "").lower()
    redundancy = _redundancy(item.get("skuName") or "") or _redundancy(item.get("meterName") or "")
    if not redundancy:
        return None

    if "data transfer out" in meter_name or "egress" in meter_name:
        return azure_files_meter_key("common", redundancy, "egress")
    if "snapshot" in meter_name:
        return azure_files_meter_key("snapshot", redundancy, "storage")

    tier = _azure_files_tier(sku_name)
    if not tier:
        return None

    if "data stored" in meter_name or "provisioned storage" in meter_name or meter_name.endswith(" provisioned"):
        facet = "storage"
    elif "write operations" in meter_name:
        facet = "writeoperations"
    elif "read operations" in meter_name:
        facet = "readoperations"
    elif "list" in meter_name or "create container" in meter_name:
        facet = "listoperations"
    elif "provisioned iops" in meter_name:
        facet = "iops"
    elif "provisioned throughput" in meter_name:
        facet = "throughput"
    else:
        return None
    return azure_files_meter_key(tier, redundancy, facet)


def azure_files_query(region: str, redundancy: str, tier: Optional[str] = None,
                      provisioned: bool = False) -> PriceQuery:
    filters = [
        "serviceName eq 'Storage'",
        "productName eq 'Files'",
        f"armRegionName eq '{normalize_region(region)}'",
        "priceType eq 'Consumption'",
    ]
    tier_names = {"hot": "Hot", "cool": "Cool", "transactionoptimized": "Transaction Optimized"}
    if tier and _slug(tier) in tier_names:
        filters.append(f"contains(skuName, '{tier_names[_slug(tier)]}')")
    elif provisioned:
        filters.append("contains(skuName, 'Premium')")
    filters.append(f"contains(skuName, '{redundancy.upper()}')")
    return PriceQuery(
        resource_type="AzureFiles",
        filter_expression=_odata(filters),
        key_for=parse_azure_files_meter,
        description=f"Azure Files {tier or 'provisioned'} {redundancy}",
    )


# ---------------------------------------------------------------------------
# Managed disks
# ---------------------------------------------------------------------------

def parse_managed_disk_meter(item: Dict[str, Any], sku: str, redundancy: str) -> Optional[str]:
    """Map a managed disk meter to its key; the disk size sku is read from the meter name."""
    raw_name = item.get("meterName") or ""
    meter_name = raw_name.lower()
    match = _DISK_SKU_PATTERN.search(raw_name)
    extracted_sku = match.group(1) if match else sku

    if "snapshot" in meter_name:
        return managed_disk_meter_key("snapshot", redundancy)
    if "burst" in meter_name and "enablement" in meter_name:
        return managed_disk_meter_key(extracted_sku, redundancy, "burst-enable")
    if "burst" in meter_name and "transaction" in meter_name:
        return managed_disk_meter_key(extracted_sku, redundancy, "burst-tx")
    if "iops" in meter_name:
        return managed_disk_meter_key(extracted_sku, redundancy, "iops")
    if "throughput" in meter_name:
        return managed_disk_meter_key(extracted_sku, redundancy, "throughput")
    if "operations" in meter_name:
        return managed_disk_meter_key(extracted_sku, redundancy, "operations")
    if "capacity" in meter_name:
        return managed_disk_meter_key(extracted_sku, redundancy, "capacity")
    if match:
        return managed_disk_meter_key(extracted_sku, redundancy)
    return None


def is_flexible_disk(disk_type: str) -> bool:
    """Premium SSD v2 and Ultra disks bill capacity, IOPS and throughput separately."""
    return _slug(disk_type) in FLEXIBLE_DISK_TYPES


def managed_disk_query(region: str, disk_type: str, sku: str, redundancy: str) -> PriceQuery:
    """
    Meters for one disk size sku, or for all of a flexible disk product.

    Flexible disk meters carry no size sku, so ``sku`` only names their keys.
    """
    product_name = MANAGED_DISK_PRODUCTS.get(_slug(disk_type), "Managed Disks")
    filters = [
        "serviceName eq 'Storage'",
        f"productName eq '{product_name}'",
        f"armRegionName eq '{normalize_region(region)}'",
    ]
    if not is_flexible_disk(disk_type):
        filters.append(f"contains(meterName, '{sku}')")
    filters.append(f"contains(meterName, '{redundancy.upper()}')")
    return PriceQuery(
        resource_type="ManagedDisk",
        filter_expression=_odata(filters),
        key_for=lambda item: parse_managed_disk_meter(item, sku, redundancy),
        description=f"{product_name} {sku} {redundancy}",
    )
