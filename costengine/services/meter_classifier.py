"""
Meter classification and billing metadata extraction.
Maps billing meter names to component types and infers volume properties from billed meters.
"""
from typing import List, Optional, Sequence, Tuple
from datetime import datetime
import logging

from costengine.domain.cost_models import MeterCostEntry, VolumeMetadataFromBilling


logger = logging.getLogger(__name__)


# (component type, inclusion patterns, exclusion patterns), first match wins
METER_RULES: List[Tuple[str, Tuple[str, ...], Tuple[str, ...]]] = [
    ("storage", ("data stored", "capacity", "provisioned", "managed disk", "lrs", "zrs", "grs"),
     ("snapshot", "backup", "operations", "iops", "throughput", "transfer", "replication")),
    ("transactions", ("transaction", "operations", "write", "read", "list"),
     ("disk operations", "data transfer")),
    ("egress", ("data transfer out", "egress", "bandwidth"), ()),
    ("ingress", ("data transfer in", "ingress"), ()),
    ("snapshots", ("snapshot",), ()),
    ("backup", ("backup",), ()),
    ("replication", ("replication", "geo-replication", "cross region"), ()),
    ("operations", ("iops", "throughput", "disk operations"), ()),
]


def classify_meter(meter: str, subcategory: Optional[str] = None) -> str:
    """
    Classify a billing meter into a cost component type.

    Args:
        meter: Meter name from billing (e.g. "Data Stored", "Data Transfer Out (GB)")
        subcategory: Meter subcategory, matched together with the meter name

    Returns:
        One of storage, transactions, egress, ingress, snapshots, backup,
        replication, operations, other
    """
    text = f"{meter or ''} {subcategory or ''}".lower()
    for component_type, includes, excludes in METER_RULES:
        if any(pattern in text for pattern in includes) and not any(pattern in text for pattern in excludes):
            return component_type
    return "other"


def _meter_text(entry: MeterCostEntry) -> str:
    return f"{entry.meter or ''} {entry.meter_subcategory or ''}".lower()


def _detect_redundancy(metadata: VolumeMetadataFromBilling, text: str) -> None:
    if "gzrs" in text:
        metadata.redundancy_type = "RA-GZRS" if "ra-gzrs" in text else "GZRS"
        metadata.has_geo_replication = True
    elif "grs" in text:
        metadata.redundancy_type = "RA-GRS" if "ra-grs" in text else "GRS"
        metadata.has_geo_replication = True
    elif "zrs" in text and metadata.redundancy_type is None:
        metadata.redundancy_type = "ZRS"
    elif "lrs" in text and metadata.redundancy_type is None:
        metadata.redundancy_type = "LRS"


def _extract_storage_account(metadata: VolumeMetadataFromBilling, entries: Sequence[MeterCostEntry],
                             days: int) -> None:
    reads = writes = lists = egress = ingress = 0.0
    for entry in entries:
        text = _meter_text(entry)
        quantity = entry.quantity or 0.0
        if "read operations" in text:
            reads += quantity
        elif "write operations" in text:
            writes += quantity
        elif "list" in text and "operations" in text:
            lists += quantity
        elif "data transfer out" in text or "egress" in text:
            egress += quantity
        elif "data transfer in" in text or "ingress" in text:
            ingress += quantity

        if metadata.storage_tier is None:
            for tier in ("premium", "hot", "cool", "archive", "standard"):
                if tier in text:
                    metadata.storage_tier = tier.capitalize()
                    break

    if reads:
        metadata.average_read_operations_per_day = reads / days
    if writes:
        metadata.average_write_operations_per_day = writes / days
    if lists:
        metadata.average_list_operations_per_day = lists / days
    if egress:
        metadata.average_egress_gb_per_day = egress / days
    if ingress:
        metadata.average_ingress_gb_per_day = ingress / days
    if reads + writes > 0:
        metadata.additional["HasSignificantIOActivity"] = "true" if (reads + writes) / days > 10000 else "false"


def _extract_anf(metadata: VolumeMetadataFromBilling, entries: Sequence[MeterCostEntry]) -> None:
    protocols: List[str] = []
    for entry in entries:
        text = _meter_text(entry)
        if metadata.service_level is None:
            for level in ("ultra", "premium", "standard", "flexible"):
                if level in text:
                    metadata.service_level = level.capitalize()
                    break
        if "nfsv3" in text and "NFSv3" not in protocols:
            protocols.append("NFSv3")
        if ("nfsv4" in text or "nfs v4" in text) and "NFSv4.1" not in protocols:
            protocols.append("NFSv4.1")
        if ("smb" in text or "cifs" in text) and "SMB" not in protocols:
            protocols.append("SMB")
        if "dual" in text and "protocol" in text and "Dual-Protocol" not in protocols:
            protocols.append("Dual-Protocol")
    metadata.detected_protocols = protocols
    if metadata.service_level:
        metadata.additional["ANFServiceLevel"] = metadata.service_level


def _extract_managed_disk(metadata: VolumeMetadataFromBilling, entries: Sequence[MeterCostEntry],
                          days: int) -> None:
    disk_ops = 0.0
    for entry in entries:
        text = _meter_text(entry)
        if metadata.disk_type is None:
            if "premium ssd" in text:
                metadata.disk_type = "Premium SSD"
            elif "standard ssd" in text:
                metadata.disk_type = "Standard SSD"
            elif "standard hdd" in text:
                metadata.disk_type = "Standard HDD"
            elif "ultra" in text:
                metadata.disk_type = "Ultra Disk"
        if "disk operations" in text or "iops" in text:
            disk_ops += entry.quantity or 0.0
    if disk_ops:
        metadata.additional["AverageDiskOpsPerDay"] = f"{disk_ops / days:.2f}"
    if metadata.disk_type:
        metadata.additional["DiskType"] = metadata.disk_type


def metadata_confidence(meter_count: int, days: int, component_types: int) -> float:
    score = 50.0 + min(meter_count * 3, 30) + min(days * 2, 20)
    if component_types >= 3:
        score += 10
    return min(score, 100.0)


def extract_billing_metadata(
    entries: Sequence[MeterCostEntry],
    resource_type: str,
    period_start: datetime,
    period_end: datetime
) -> VolumeMetadataFromBilling:
    """
    Infer volume properties from the meters it was billed under.

    Args:
        entries: Billing rows for one resource and period
        resource_type: "ANF", "AzureFiles"/"StorageAccount" or "ManagedDisk"
        period_start: Start of the billing period
        period_end: End of the billing period

    Returns:
        VolumeMetadataFromBilling with a confidence score
    """
    days = (period_end - period_start).days or 1
    metadata = VolumeMetadataFromBilling(from_date=period_start, to_date=period_end)
    unique_meters = {(entry.meter, entry.meter_subcategory) for entry in entries}
    metadata.total_meter_count = len(unique_meters)

    for entry in entries:
        _detect_redundancy(metadata, _meter_text(entry))

    kind = (resource_type or "").lower()
    if kind in ("anf", "netapp"):
        _extract_anf(metadata, entries)
    elif kind in ("manageddisk", "disk"):
        _extract_managed_disk(metadata, entries, days)
    else:
        _extract_storage_account(metadata, entries, days)

    component_types = {classify_meter(entry.meter, entry.meter_subcategory) for entry in entries}
    metadata.confidence_score = metadata_confidence(len(unique_meters), days, len(component_types))
    logger.debug(
        f"Extracted billing metadata from {len(unique_meters)} meters over {days} days "
        f"(confidence {metadata.confidence_score:.0f})"
    )
    return metadata
