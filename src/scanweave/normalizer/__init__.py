"""Output normalizers: one parser per tool wire format."""

from scanweave.normalizer.fingerprint import compute_fingerprint
from scanweave.normalizer.jsonl import iter_json_lines
from scanweave.normalizer.sarif import load_sarif_file, parse_sarif, parse_sarif_file

__all__ = [
    "compute_fingerprint",
    "iter_json_lines",
    "load_sarif_file",
    "parse_sarif",
    "parse_sarif_file",
]
