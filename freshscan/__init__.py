"""Barcode + expiry date scanner for tracking product freshness."""

from .barcode import BarcodeDetector, PyzbarBarcodeDetector
from .camera import CameraError, ScannerCamera
from .config import (
    CameraConfig,
    DatabaseConfig,
    ExtractorConfig,
    FreshnessConfig,
    FreshScanConfig,
    ResolverConfig,
    ScannerConfig,
    load_config,
)
from .cooldown import CooldownCache
from .db import RecordStore
from .expiry import ExpiryExtractor, create_extractor, normalize_date
from .freshness import Freshness, FreshnessStatus, freshness, sort_by_expiry
from .models import PendingScan, ProductCandidate, ScanRecord
from .resolver import (
    OpenFoodFactsResolver,
    ProductLookup,
    ProductResolver,
    ResolverError,
    ResolverNetworkError,
)
from .workflow import (
    EventKind,
    InvalidTransition,
    ScanEvent,
    ScanWorkflow,
    WorkflowSettings,
    create_workflow,
)

__all__ = [
    "ScannerCamera",
    "CameraError",
    "BarcodeDetector",
    "PyzbarBarcodeDetector",
    "CooldownCache",
    "ProductResolver",
    "OpenFoodFactsResolver",
    "ProductLookup",
    "ResolverError",
    "ResolverNetworkError",
    "ExpiryExtractor",
    "create_extractor",
    "normalize_date",
    "ScanWorkflow",
    "WorkflowSettings",
    "ScanEvent",
    "EventKind",
    "InvalidTransition",
    "create_workflow",
    "RecordStore",
    "ScanRecord",
    "PendingScan",
    "ProductCandidate",
    "Freshness",
    "FreshnessStatus",
    "freshness",
    "sort_by_expiry",
    "FreshScanConfig",
    "CameraConfig",
    "ScannerConfig",
    "ResolverConfig",
    "ExtractorConfig",
    "DatabaseConfig",
    "FreshnessConfig",
    "load_config",
]
