"""
loader.py — read customer paste text from a file or a public link.

The parser works on text already in memory; this module is the only place
that touches files or the network for it.

Public API:
    text = read_text_file("customers.tsv")
    text = fetch_remote_text("https://docs.google.com/spreadsheets/d/<id>/edit#gid=0")
"""

from __future__ import annotations

import io
import re
from pathlib import Path
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import chardet
import pandas as pd
import requests

TEXT_FORMATS = {".csv", ".tsv", ".txt"}
WORKBOOK_FORMATS = {".xlsx", ".xlsm"}
ALL_FORMATS = TEXT_FORMATS | WORKBOOK_FORMATS

MAX_REMOTE_FILE_MB = 20
MAX_REMOTE_FILE_BYTES = MAX_REMOTE_FILE_MB * 1024 * 1024
REMOTE_TIMEOUT_SECONDS = 60


def detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    return result.get("encoding") or "utf-8"


def decode_text(raw: bytes, preferred_encoding: str | None = None) -> str:
    """
    Decode raw bytes line-by-line.

    Each line tries UTF-8, then the detected encoding, then latin-1; CP1252
    with replacement is the last resort. Null bytes and a leading BOM are
    removed.
    """
    preferred_encoding = preferred_encoding or detect_encoding(raw)
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


def workbook_to_text(source: "Path | io.BytesIO", sheet_name: str | int = 0) -> str:
    """Render a worksheet as tab-separated text, the way a Sheets copy looks."""
    df = pd.read_excel(source, sheet_name=sheet_name, header=None, dtype=str, engine="openpyxl")
    df = df.fillna("")
    return df.to_csv(sep="\t", index=False, header=False, lineterminator="\n")


def read_text_file(path: "str | Path", sheet_name: str | int = 0) -> str:
    """
    Raises:
        FileNotFoundError  if the file does not exist.
        ValueError         if the format is unsupported or unreadable.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")

    if suffix in WORKBOOK_FORMATS:
        try:
            return workbook_to_text(path, sheet_name)
        except Exception as exc:
            raise ValueError(f"Could not read workbook: {exc}") from exc

    return decode_text(path.read_bytes())


def normalize_public_url(raw_url: str) -> str:
    """Rewrite share links to a direct CSV/TSV download where we know how."""
    parsed = urlparse(raw_url.strip())
    if not parsed.scheme:
        raise ValueError("URL must start with http:// or https://")

    host = parsed.netloc.lower()
    path = parsed.path
    query = parse_qs(parsed.query, keep_blank_values=True)

    if host == "docs.google.com":
        sheet_match = re.search(r"/spreadsheets/d/([^/]+)", path)
        if sheet_match:
            gid = query.get("gid", [None])[0]
            if gid is None:
                fragment = parse_qs(parsed.fragment)
                gid = fragment.get("gid", ["0"])[0]
            return (
                f"https://docs.google.com/spreadsheets/d/{sheet_match.group(1)}/export"
                f"?format=tsv&gid={gid}"
            )

    if host == "github.com" and "/blob/" in path:
        owner_repo, blob_path = path.lstrip("/").split("/blob/", 1)
        owner, repo = owner_repo.split("/", 1)
        branch, file_path = blob_path.split("/", 1)
        return f"https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{file_path}"

    if "dropbox.com" in host:
        query["dl"] = ["1"]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    return raw_url.strip()


def fetch_remote_text(raw_url: str, session: requests.Session | None = None) -> str:
    url = normalize_public_url(raw_url)
    getter = session or requests
    response = getter.get(url, timeout=REMOTE_TIMEOUT_SECONDS, allow_redirects=True, stream=True)
    try:
        response.raise_for_status()
        chunks: list[bytes] = []
        downloaded = 0
        for chunk in response.iter_content(chunk_size=64 * 1024):
            if not chunk:
                continue
            downloaded += len(chunk)
            if downloaded > MAX_REMOTE_FILE_BYTES:
                raise ValueError(f"Remote file is larger than {MAX_REMOTE_FILE_MB} MB.")
            chunks.append(chunk)
        content = b"".join(chunks)
    finally:
        response.close()

    if content.startswith(b"PK"):
        return workbook_to_text(io.BytesIO(content))
    return decode_text(content)
