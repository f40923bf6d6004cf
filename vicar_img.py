"""
VICAR image label resolution and pixel access.

Provides:
- Label enumerations (PixelFormat, DataType, DataOrganization)
- Two label lookup strategies: EmbeddedLabel scans the raw bytes of a combined
  label+pixel file, DetachedLabel wraps a fully parsed PVL label
- VicarReader: image geometry, pixel byte offsets and sample decoding
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

import numpy as np

from binfilereader import BinFileReader, ByteOrder
from pvl_errors import (
    LabelError,
    PropertyNotFoundError,
    PvlError,
    UnexpectedEnumError,
    UnsupportedFormatError,
)
from pvl_label import KeyValuePair, PropertyGrouping, Pvl, Symbol, SymbolKind
from pvl_value import Value, ValueType

logger = logging.getLogger(__name__)

# Fields every embedded VICAR label must carry.
VICAR_LABEL_FIELDS = ("LBLSIZE", "RECSIZE", "DIM", "N1", "N2", "N3", "NLB", "NBB", "TYPE", "FORMAT", "ORG")

# ============================================================================
# Enumerations
# ============================================================================


class _LabelToken(Enum):
    """Enum parsed case-insensitively from a label value."""

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {}

    @classmethod
    def from_string(cls, text: str):
        token = text.strip().strip("'\"").strip().upper()
        token = cls._aliases().get(token, token)
        try:
            return cls(token)
        except ValueError:
            raise UnexpectedEnumError(f"Unrecognized {cls.__name__} token: {text!r}") from None


class PixelFormat(_LabelToken):
    BYTE = "BYTE"
    HALF = "HALF"
    WORD = "WORD"  # deprecated alias of HALF
    FULL = "FULL"
    LONG = "LONG"  # deprecated alias of FULL
    REAL = "REAL"
    DOUB = "DOUB"
    COMP = "COMP"
    COMPLEX = "COMPLEX"

    @classmethod
    def _aliases(cls) -> dict[str, str]:
        return {"WORD": "HALF", "LONG": "FULL"}

    def bytes_per_sample(self, legacy: bool = True) -> int:
        table = _LEGACY_SAMPLE_BYTES if legacy else _IEEE_SAMPLE_BYTES
        return table[self]


# Widths as historically reported (REAL and DOUB at 2 bytes).
_LEGACY_SAMPLE_BYTES = {
    PixelFormat.BYTE: 1,
    PixelFormat.HALF: 2,
    PixelFormat.WORD: 2,
    PixelFormat.REAL: 2,
    PixelFormat.DOUB: 2,
    PixelFormat.FULL: 4,
    PixelFormat.LONG: 4,
    PixelFormat.COMP: 4,
    PixelFormat.COMPLEX: 4,
}

_IEEE_SAMPLE_BYTES = {
    **_LEGACY_SAMPLE_BYTES,
    PixelFormat.REAL: 4,
    PixelFormat.DOUB: 8,
    PixelFormat.COMP: 8,
    PixelFormat.COMPLEX: 8,
}


class DataType(_LabelToken):
    IMAGE = "IMAGE"
    PARMS = "PARMS"
    PARM = "PARM"
    PARAM = "PARAM"
    GRAPH1 = "GRAPH1"
    GRAPH2 = "GRAPH2"
    GRAPH3 = "GRAPH3"
    TABULAR = "TABULAR"


class DataOrganization(_LabelToken):
    BSQ = "BSQ"
    BIL = "BIL"
    BIP = "BIP"

    def reorder(self, n1: int, n2: int, n3: int) -> tuple[int, int, int]:
        """Map on-disk axis lengths N1..N3 to (lines, samples, bands)."""
        if self is DataOrganization.BSQ:
            return n2, n1, n3
        if self is DataOrganization.BIL:
            return n3, n1, n2
        return n3, n2, n1


# ============================================================================
# Label Lookup Strategies
# ============================================================================

_VALUE_END_RE = re.compile(rb"[\s\x00]")
_LBLSIZE_RE = re.compile(rb"(?<![A-Za-z0-9_])LBLSIZE=([0-9]+)")


@lru_cache(maxsize=None)
def _token_re(name: str) -> re.Pattern:
    # Token must not be the tail of a longer key (e.g. TYPE inside BLTYPE).
    return re.compile(rb"(?<![A-Za-z0-9_])" + re.escape(name.encode("ascii")) + rb"=")


class EmbeddedLabel:
    """VICAR label read straight out of the bytes of a combined product.

    Each field is located by searching for ``NAME=``; the value runs to the
    next whitespace or NUL. Positions are byte positions in the file, so a
    label preceded by another header (e.g. an attached PDS label) still
    resolves. Searches stop at the end of the label (LBLSIZE bytes from the
    ``LBLSIZE=`` token), so pixel bytes are never read as label text.
    """

    def __init__(self, data: bytes) -> None:
        self._data = data
        m = _LBLSIZE_RE.search(data)
        self.label_end = min(len(data), m.start() + int(m.group(1))) if m else len(data)

    def _search(self, name: str) -> Optional[re.Match]:
        return _token_re(name).search(self._data, 0, self.label_end)

    def scan_for_property(self, name: str) -> int:
        m = self._search(name)
        if m is None:
            raise PropertyNotFoundError(f"{name} not found in VICAR label")
        return m.start()

    def find_property(self, name: str) -> Optional[KeyValuePair]:
        m = self._search(name)
        if m is None:
            return None
        end_m = _VALUE_END_RE.search(self._data, m.end(), self.label_end)
        end = end_m.start() if end_m else self.label_end
        raw = self._data[m.start():end].decode("utf-8", errors="replace")
        key, _, value = raw.partition("=")
        return KeyValuePair(key=Symbol(SymbolKind.KEY, key), value=Value(value))

    def get_property(self, name: str) -> KeyValuePair:
        kvp = self.find_property(name)
        if kvp is None:
            raise PropertyNotFoundError(f"{name} not found in VICAR label")
        return kvp


class DetachedLabel:
    """A separate PVL label file; lookups fall back to the IMAGE object."""

    def __init__(self, pvl: Pvl, path: Path) -> None:
        self.pvl = pvl
        self.path = path

    def scan_for_property(self, name: str) -> int:
        raise PropertyNotFoundError(f"{name}: detached label {self.path.name} has no byte positions")

    def find_property(self, name: str) -> Optional[KeyValuePair]:
        kvp = self.pvl.get_property(name)
        if kvp is None:
            image = self.pvl.get_object("IMAGE")
            if image is not None:
                kvp = image.get_property(name)
        return kvp

    def get_property(self, name: str) -> KeyValuePair:
        kvp = self.find_property(name)
        if kvp is None:
            raise PropertyNotFoundError(f"{name} not found in {self.path}")
        return kvp


LabelLookup = Union[EmbeddedLabel, DetachedLabel]

# ============================================================================
# Label Helpers
# ============================================================================

_INTFMT_ORDERS: dict[str, ByteOrder] = {"HIGH": ">", "LOW": "<"}
_REALFMT_ORDERS: dict[str, ByteOrder] = {"IEEE": ">", "RIEEE": "<"}


def _byte_order(label: LabelLookup, name: str, orders: dict[str, ByteOrder]) -> ByteOrder:
    kvp = label.find_property(name)
    if kvp is None:
        return ">"
    token = kvp.value.raw.strip("'\"").upper()
    if token not in orders:
        logger.warning(f"Unsupported {name}={kvp.value.raw}, reading samples as big-endian")
        return ">"
    return orders[token]


def _lenient_usize(block: PropertyGrouping, name: str) -> int:
    kvp = block.get_property(name)
    if kvp is None:
        logger.debug(f"{block.name} has no {name}, using 0")
        return 0
    try:
        return kvp.value.parse_usize()
    except PvlError:
        logger.debug(f"{block.name} {name}={kvp.value.raw} is not a count, using 0")
        return 0


def _pointer_filename(value: Value) -> str:
    """Filename from ``^IMAGE = ("NAME.IMG", ...)`` or ``^IMAGE = "NAME.IMG"``."""
    if value.value_type is ValueType.ARRAY:
        elements = value.parse_array()
        if not elements:
            raise PropertyNotFoundError("^IMAGE pointer is an empty array")
        return elements[0].parse_string()
    return value.parse_string()


def _resolve_image_file(label_path: Path, filename: str) -> Path:
    """Locate the pixel file next to the label, tolerating case differences."""
    path = label_path.parent / filename
    candidates = [
        path,
        path.with_suffix(path.suffix.upper()),
        path.with_suffix(path.suffix.lower()),
        path.with_name(path.name.upper()),
        path.with_name(path.name.lower()),
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return path


# ============================================================================
# Reader
# ============================================================================


@dataclass(frozen=True)
class VicarReader:
    """Resolved geometry and encoding of one VICAR image.

    Build with ``open`` / ``from_bytes`` (embedded label) or
    ``from_detached_label``. Pixel queries re-read the bytes every time.

    Samples are big-endian. With ``legacy_layout=False`` the INTFMT and
    REALFMT fields of an embedded label select the byte order instead.
    """

    label: LabelLookup
    reader: BinFileReader
    label_size: int
    record_size: int
    dim: int
    binary_bytes_before_record: int
    binary_bytes_header: int
    lines: int
    samples: int
    bands: int
    organization: DataOrganization
    pixel_format: PixelFormat
    data_type: DataType
    data_start: int
    int_order: ByteOrder = ">"
    real_order: ByteOrder = ">"
    legacy_layout: bool = True

    @classmethod
    def open(cls, path: str | Path, *, legacy_layout: bool = True) -> "VicarReader":
        """Open a VICAR file whose label is embedded ahead of the pixels."""
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise LabelError(f"Failed to read {path}: {e}") from e
        return cls.from_bytes(data, legacy_layout=legacy_layout)

    @classmethod
    def from_bytes(cls, data: bytes, *, legacy_layout: bool = True) -> "VicarReader":
        label = EmbeddedLabel(data)

        def usize(name: str) -> int:
            return label.get_property(name).value.parse_usize()

        label_pos = label.scan_for_property("LBLSIZE")
        label_size = usize("LBLSIZE")
        record_size = usize("RECSIZE")
        dim = usize("DIM")
        n1, n2, n3 = usize("N1"), usize("N2"), usize("N3")
        nlb = usize("NLB")
        nbb = usize("NBB")
        data_type = DataType.from_string(label.get_property("TYPE").value.raw)
        pixel_format = PixelFormat.from_string(label.get_property("FORMAT").value.raw)
        organization = DataOrganization.from_string(label.get_property("ORG").value.raw)

        lines, samples, bands = organization.reorder(n1, n2, n3)
        binary_bytes_header = nlb * record_size
        data_start = label_pos + label_size + binary_bytes_header + nbb

        logger.debug(
            f"Resolved VICAR label at byte {label_pos}: {lines} lines x {samples} samples x "
            f"{bands} bands, {pixel_format.value} {organization.value}, pixels at byte {data_start}"
        )

        return cls(
            label=label,
            reader=BinFileReader(data),
            label_size=label_size,
            record_size=record_size,
            dim=dim,
            binary_bytes_before_record=nbb,
            binary_bytes_header=binary_bytes_header,
            lines=lines,
            samples=samples,
            bands=bands,
            organization=organization,
            pixel_format=pixel_format,
            data_type=data_type,
            data_start=data_start,
            int_order=">" if legacy_layout else _byte_order(label, "INTFMT", _INTFMT_ORDERS),
            real_order=">" if legacy_layout else _byte_order(label, "REALFMT", _REALFMT_ORDERS),
            legacy_layout=legacy_layout,
        )

    @classmethod
    def from_detached_label(cls, label_path: str | Path, *, legacy_layout: bool = True) -> "VicarReader":
        """Open the pixel file referenced by a detached PVL label.

        Only LINES/LINE_SAMPLES/BANDS are taken from the label (0 when missing);
        the data is read as band-sequential bytes starting at offset 0.
        """
        label_path = Path(label_path)
        pvl = Pvl.load(label_path)

        image = pvl.get_object("IMAGE")
        if image is None:
            raise PropertyNotFoundError(f"{label_path} has no IMAGE object")
        lines = _lenient_usize(image, "LINES")
        samples = _lenient_usize(image, "LINE_SAMPLES")
        bands = _lenient_usize(image, "BANDS")

        pointer = pvl.get_property("^IMAGE")
        if pointer is None:
            raise PropertyNotFoundError(f"{label_path} has no ^IMAGE pointer")
        image_path = _resolve_image_file(label_path, _pointer_filename(pointer.value))
        logger.debug(f"Detached label {label_path.name} -> {image_path}: {lines}x{samples}x{bands}")

        return cls(
            label=DetachedLabel(pvl, label_path),
            reader=BinFileReader(image_path),
            label_size=0,
            record_size=0,
            dim=3,
            binary_bytes_before_record=0,
            binary_bytes_header=0,
            lines=lines,
            samples=samples,
            bands=bands,
            organization=DataOrganization.BSQ,
            pixel_format=PixelFormat.BYTE,
            data_type=DataType.IMAGE,
            data_start=0,
            legacy_layout=legacy_layout,
        )

    # ------------------------------------------------------------------------
    # Label access
    # ------------------------------------------------------------------------

    def has_internal_label(self) -> bool:
        return isinstance(self.label, EmbeddedLabel)

    def get_property(self, name: str) -> KeyValuePair:
        return self.label.get_property(name)

    def scan_for_property(self, name: str) -> int:
        return self.label.scan_for_property(name)

    def close(self) -> None:
        self.reader.close()

    def __enter__(self) -> "VicarReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------------
    # Pixel access
    # ------------------------------------------------------------------------

    @property
    def bytes_per_sample(self) -> int:
        return self.pixel_format.bytes_per_sample(self.legacy_layout)

    def pixel_offset(self, line: int, sample: int, band: int) -> int:
        """Absolute byte offset of one sample.

        The layout is band-sequential whatever ``organization`` says.
        """
        for axis, index, size in (("line", line, self.lines), ("sample", sample, self.samples), ("band", band, self.bands)):
            if not 0 <= index < size:
                raise IndexError(f"{axis} {index} out of range [0, {size})")

        bps = self.bytes_per_sample
        return (
            self.data_start
            + self.lines * self.samples * bps * band
            + line * self.binary_bytes_before_record
            + line * self.samples * bps
            + sample * bps
        )

    def get_pixel_value(self, line: int, sample: int, band: int) -> float:
        offset = self.pixel_offset(line, sample, band)
        fmt = self.pixel_format

        if fmt is PixelFormat.BYTE:
            return float(self.reader.read_u8(offset))
        if fmt in (PixelFormat.HALF, PixelFormat.WORD):
            return float(self.reader.read_i16(offset, self.int_order))
        if fmt in (PixelFormat.FULL, PixelFormat.LONG):
            return float(self.reader.read_i32(offset, self.int_order))
        if fmt is PixelFormat.REAL:
            return self.reader.read_f32(offset, self.real_order)
        if fmt is PixelFormat.DOUB:
            if self.legacy_layout:
                return float(self.reader.read_i64(offset, self.real_order))
            return self.reader.read_f64(offset, self.real_order)
        raise UnsupportedFormatError(f"{fmt.value} pixel decoding is not supported")

    def read_band(self, band: int) -> np.ndarray:
        """All samples of one band as a (lines, samples) float64 array."""
        out = np.empty((self.lines, self.samples), dtype=np.float64)
        for line in range(self.lines):
            for sample in range(self.samples):
                out[line, sample] = self.get_pixel_value(line, sample, band)
        return out

    def read_image(self) -> np.ndarray:
        """All samples as a (bands, lines, samples) float64 array."""
        if self.bands == 0:
            return np.empty((0, self.lines, self.samples), dtype=np.float64)
        return np.stack([self.read_band(b) for b in range(self.bands)])
