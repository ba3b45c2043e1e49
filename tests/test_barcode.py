"""Tests for the pyzbar barcode detector (mocked zbar)."""

import sys
from enum import Enum
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from freshscan.barcode import BarcodeDetector, PyzbarBarcodeDetector


class _ZBarSymbol(Enum):
    EAN8 = 8
    UPCE = 9
    UPCA = 12
    EAN13 = 13
    QRCODE = 64


@pytest.fixture
def mock_pyzbar():
    """Inject a mock pyzbar.pyzbar module into sys.modules."""
    inner = MagicMock()
    inner.ZBarSymbol = _ZBarSymbol
    outer = MagicMock()
    outer.pyzbar = inner
    with patch.dict(sys.modules, {"pyzbar": outer, "pyzbar.pyzbar": inner}):
        yield inner


def _result(data: bytes, kind: str = "EAN13"):
    return SimpleNamespace(data=data, type=kind)


def test_is_barcode_detector():
    assert isinstance(PyzbarBarcodeDetector(), BarcodeDetector)


def test_unknown_format_rejected():
    with pytest.raises(ValueError, match="不明なバーコード形式"):
        PyzbarBarcodeDetector(formats=["QRCODE"])


def test_decode_returns_values_in_order(mock_pyzbar):
    mock_pyzbar.decode.return_value = [
        _result(b"7501234567890"),
        _result(b"12345670", "EAN8"),
    ]
    detector = PyzbarBarcodeDetector()
    assert detector.decode("frame") == ["7501234567890", "12345670"]


def test_decode_restricts_symbols(mock_pyzbar):
    mock_pyzbar.decode.return_value = []
    PyzbarBarcodeDetector(formats=["EAN13"]).decode("frame")
    _, kwargs = mock_pyzbar.decode.call_args
    assert kwargs["symbols"] == [_ZBarSymbol.EAN13]


def test_decode_skips_empty_and_duplicates(mock_pyzbar):
    mock_pyzbar.decode.return_value = [
        _result(b""),
        _result(b"7501234567890"),
        _result(b"7501234567890"),
    ]
    assert PyzbarBarcodeDetector().decode("frame") == ["7501234567890"]


@pytest.mark.asyncio
async def test_detect_async(mock_pyzbar):
    mock_pyzbar.decode.return_value = [_result(b"7501234567890")]
    result = await PyzbarBarcodeDetector().detect("frame")
    assert result == ["7501234567890"]


@pytest.mark.asyncio
async def test_detect_no_barcode(mock_pyzbar):
    mock_pyzbar.decode.return_value = []
    assert await PyzbarBarcodeDetector().detect("frame") == []
