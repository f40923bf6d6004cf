from pathlib import Path

import pytest

BSQ_BYTE_FIELDS = "RECSIZE=100 DIM=3 N1=4 N2=4 N3=1 NLB=0 NBB=0 TYPE=IMAGE FORMAT=BYTE ORG=BSQ"

DETACHED_LABEL = (
    "PDS_VERSION_ID = PDS3\r\n"
    "/* FILE DATA ELEMENTS */\r\n"
    "RECORD_TYPE = FIXED_LENGTH\r\n"
    '^IMAGE = ("TEST.IMG")\r\n'
    "OBJECT = IMAGE\r\n"
    "  LINES = 2\r\n"
    "  LINE_SAMPLES = 3\r\n"
    "  BANDS = 2\r\n"
    "  SAMPLE_BITS = 8\r\n"
    "END_OBJECT = IMAGE\r\n"
    "END\r\n"
)


@pytest.fixture
def build_vicar():
    """Factory for an embedded-label VICAR product as bytes."""

    def build(fields: str = BSQ_BYTE_FIELDS, pixels: bytes = bytes(range(10, 26)),
              lblsize: int = 100, prefix: bytes = b"", pad: bytes = b" ") -> bytes:
        label = f"LBLSIZE={lblsize} {fields}".encode("ascii")
        assert len(label) <= lblsize
        return prefix + label.ljust(lblsize, pad) + pixels

    return build


@pytest.fixture
def vicar_file(tmp_path: Path, build_vicar) -> Path:
    path = tmp_path / "TEST_VICAR.IMG"
    path.write_bytes(build_vicar())
    return path


@pytest.fixture
def detached_label(tmp_path: Path) -> Path:
    (tmp_path / "TEST.IMG").write_bytes(bytes(range(12)))
    path = tmp_path / "TEST.LBL"
    path.write_text(DETACHED_LABEL, encoding="ascii", newline="")
    return path
