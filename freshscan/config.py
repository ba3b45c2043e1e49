"""TOML configuration loader for the scanner."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]

_DEFAULT_DB_PATH = "~/.config/freshscan/records.db"
_DEFAULT_OFF_URL = "https://world.openfoodfacts.org/api/v2/product"


@dataclass
class CameraConfig:
    index: int = 0
    save_dir: str = ""


@dataclass
class ScannerConfig:
    cooldown_ms: int = 5000
    max_expiry_attempts: int = 5
    attempt_interval_ms: int = 2000
    frame_interval_ms: int = 33
    cooldown_max_entries: int = 0  # 0 = unbounded
    opportunistic_extraction: bool = True


@dataclass
class BarcodeConfig:
    formats: list[str] = field(
        default_factory=lambda: ["EAN13", "EAN8", "UPCA", "UPCE"]
    )


@dataclass
class ResolverConfig:
    base_url: str = _DEFAULT_OFF_URL
    timeout: float = 8.0
    max_retries: int = 3
    user_agent: str = "freshscan/0.1"


@dataclass
class GeminiExtractorConfig:
    api_key: str = ""
    model: str = "gemini-2.0-flash"


@dataclass
class ClaudeExtractorConfig:
    api_key: str = ""
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class OCRExtractorConfig:
    tesseract_cmd: str = ""
    lang: str = "eng"


@dataclass
class ExtractorConfig:
    backend: str = "gemini"
    gemini: GeminiExtractorConfig = field(default_factory=GeminiExtractorConfig)
    claude: ClaudeExtractorConfig = field(default_factory=ClaudeExtractorConfig)
    ocr: OCRExtractorConfig = field(default_factory=OCRExtractorConfig)


@dataclass
class DatabaseConfig:
    path: str = _DEFAULT_DB_PATH


@dataclass
class FreshnessConfig:
    warn_days: int = 3
    check_schedule: str = "0 8 * * *"


@dataclass
class FreshScanConfig:
    camera: CameraConfig = field(default_factory=CameraConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    barcode: BarcodeConfig = field(default_factory=BarcodeConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    freshness: FreshnessConfig = field(default_factory=FreshnessConfig)


def load_config(path: str | Path | None = None) -> FreshScanConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    API keys can be overridden via environment variables.

    Raises:
        ValueError: If a scanner tunable is out of range.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cam = raw.get("camera", {})
    scn = raw.get("scanner", {})
    bar = raw.get("barcode", {})
    res = raw.get("resolver", {})
    ext = raw.get("extractor", {})
    dbc = raw.get("database", {})
    frs = raw.get("freshness", {})

    gemini_cfg = ext.get("gemini", {})
    claude_cfg = ext.get("claude", {})
    ocr_cfg = ext.get("ocr", {})

    # Resolve API keys: config file → environment variable
    gemini_api_key = gemini_cfg.get("api_key", "") or os.environ.get(
        "GEMINI_API_KEY", ""
    )
    claude_api_key = claude_cfg.get("api_key", "") or os.environ.get(
        "ANTHROPIC_API_KEY", ""
    )

    scanner = ScannerConfig(
        cooldown_ms=scn.get("cooldown_ms", 5000),
        max_expiry_attempts=scn.get("max_expiry_attempts", 5),
        attempt_interval_ms=scn.get("attempt_interval_ms", 2000),
        frame_interval_ms=scn.get("frame_interval_ms", 33),
        cooldown_max_entries=scn.get("cooldown_max_entries", 0),
        opportunistic_extraction=scn.get("opportunistic_extraction", True),
    )
    _validate_scanner(scanner)

    return FreshScanConfig(
        camera=CameraConfig(
            index=cam.get("index", 0),
            save_dir=cam.get("save_dir", ""),
        ),
        scanner=scanner,
        barcode=BarcodeConfig(
            formats=bar.get("formats", ["EAN13", "EAN8", "UPCA", "UPCE"]),
        ),
        resolver=ResolverConfig(
            base_url=res.get("base_url", _DEFAULT_OFF_URL),
            timeout=res.get("timeout", 8.0),
            max_retries=res.get("max_retries", 3),
            user_agent=res.get("user_agent", "freshscan/0.1"),
        ),
        extractor=ExtractorConfig(
            backend=ext.get("backend", "gemini"),
            gemini=GeminiExtractorConfig(
                api_key=gemini_api_key,
                model=gemini_cfg.get("model", "gemini-2.0-flash"),
            ),
            claude=ClaudeExtractorConfig(
                api_key=claude_api_key,
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
            ocr=OCRExtractorConfig(
                tesseract_cmd=ocr_cfg.get("tesseract_cmd", ""),
                lang=ocr_cfg.get("lang", "eng"),
            ),
        ),
        database=DatabaseConfig(
            path=dbc.get("path", _DEFAULT_DB_PATH),
        ),
        freshness=FreshnessConfig(
            warn_days=frs.get("warn_days", 3),
            check_schedule=frs.get("check_schedule", "0 8 * * *"),
        ),
    )


def _validate_scanner(scanner: ScannerConfig) -> None:
    if scanner.max_expiry_attempts < 1:
        raise ValueError(
            f"max_expiry_attempts は 1 以上にしてください: {scanner.max_expiry_attempts}"
        )
    for name in ("cooldown_ms", "attempt_interval_ms", "frame_interval_ms",
                 "cooldown_max_entries"):
        value = getattr(scanner, name)
        if value < 0:
            raise ValueError(f"{name} は 0 以上にしてください: {value}")
