"""
Tests for meter classification and billing metadata extraction.
"""

import pytest
from datetime import date, datetime, timezone

from costengine.domain.cost_models import MeterCostEntry
from costengine.services.meter_classifier import classify_meter, extract_billing_metadata


START = datetime(2024, 5, 1, tzinfo=timezone.utc)
END = datetime(2024, 5, 11, tzinfo=timezone.utc)


def entry(meter, subcategory="", cost=1.0, quantity=None):
    return MeterCostEntry(
        resource_id="/subscriptions/sub/resourceGroups/rg/providers/Microsoft.Storage/storageAccounts/acct",
        meter=meter,
        meter_subcategory=subcategory,
        cost=cost,
        cost_usd=cost,
        currency="USD",
        usage_date=date(2024, 5, 1),
        quantity=quantity,
    )


@pytest.mark.parametrize("meter,subcategory,expected", [
    ("Data Stored", "Files", "storage"),
    ("Hot LRS Data Stored", "", "storage"),
    ("Write Operations", "Files", "transactions"),
    ("Data Transfer Out (GB)", "", "egress"),
    ("Data Transfer In (GB)", "", "ingress"),
    ("Premium SSD Managed Disks Snapshot", "", "snapshots"),
    ("Backup Protected Instance", "", "backup"),
    ("Geo-Replication Data Transfer", "", "replication"),
    ("Disk Operations", "Standard HDD Managed Disks", "operations"),
    ("Provisioned Throughput", "Premium SSD v2", "operations"),
    ("Support Plan Fee", "", "other"),
])
def test_classify_meter(meter, subcategory, expected):
    assert classify_meter(meter, subcategory) == expected


def test_storage_account_metadata():
    entries = [
        entry("Hot RA-GRS Data Stored", "Files"),
        entry("Read Operations", "Files", quantity=50000),
        entry("Write Operations", "Files", quantity=150000),
        entry("Data Transfer Out (GB)", "", quantity=20),
    ]

    metadata = extract_billing_metadata(entries, "AzureFiles", START, END)

    assert metadata.redundancy_type == "RA-GRS"
    assert metadata.has_geo_replication is True
    assert metadata.storage_tier == "Hot"
    assert metadata.average_read_operations_per_day == pytest.approx(5000)
    assert metadata.average_write_operations_per_day == pytest.approx(15000)
    assert metadata.average_egress_gb_per_day == pytest.approx(2)
    assert metadata.additional["HasSignificantIOActivity"] == "true"
    # 4 meters, 10 days, 3 component types
    assert metadata.confidence_score == pytest.approx(50 + 12 + 20 + 10)


def test_anf_metadata_detects_service_level_and_protocols():
    entries = [
        entry("Ultra Capacity", "Azure NetApp Files NFSv4.1"),
        entry("Ultra Capacity", "SMB Volumes"),
    ]

    metadata = extract_billing_metadata(entries, "ANF", START, START)

    assert metadata.service_level == "Ultra"
    assert metadata.detected_protocols == ["NFSv4.1", "SMB"]
    assert metadata.additional["ANFServiceLevel"] == "Ultra"
    # zero-length period counts as one day
    assert metadata.confidence_score == pytest.approx(50 + 6 + 2)


def test_managed_disk_metadata():
    entries = [
        entry("P30 LRS Disk", "Premium SSD Managed Disks"),
        entry("Disk Operations", "Premium SSD Managed Disks", quantity=1000),
    ]

    metadata = extract_billing_metadata(entries, "ManagedDisk", START, END)

    assert metadata.disk_type == "Premium SSD"
    assert metadata.redundancy_type == "LRS"
    assert metadata.additional["AverageDiskOpsPerDay"] == "100.00"
    assert metadata.additional["DiskType"] == "Premium SSD"


def test_zrs_does_not_override_geo_redundancy():
    entries = [entry("GZRS Data Stored"), entry("ZRS Data Stored")]

    metadata = extract_billing_metadata(entries, "AzureFiles", START, END)

    assert metadata.redundancy_type == "GZRS"
    assert metadata.has_geo_replication is True
