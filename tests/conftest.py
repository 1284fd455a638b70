import importlib.util
from pathlib import Path

import matplotlib
import pytest

matplotlib.use("Agg")

CODE_DIR = Path(__file__).resolve().parents[1] / "code"


def paf_line(
    query: str,
    qlen: int,
    qstart: int,
    qend: int,
    target: str,
    block_len: int = 60000,
    mapq: int = 60,
    extra: tuple = ("tp:A:P",),
) -> str:
    fields = [
        query,
        qlen,
        qstart,
        qend,
        "+",
        target,
        100_000_000,
        0,
        abs(qend - qstart),
        abs(qend - qstart),
        block_len,
        mapq,
        *extra,
    ]
    return "\t".join(str(f) for f in fields) + "\n"


def load_script(filename: str, module_name: str):
    spec = importlib.util.spec_from_file_location(module_name, CODE_DIR / filename)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def make_paf(tmp_path):
    def _make(lines, name="hits.paf"):
        path = tmp_path / name
        path.write_text("".join(lines))
        return path

    return _make
