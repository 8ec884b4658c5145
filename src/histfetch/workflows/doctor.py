"""Diagnostics for the data directory and HISTFETCH_* settings."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from whoosh import index as whoosh_index

from .bundle_store import BundleStore
from .fetcher_config import DataPaths
from .fetcher_utils import check_writable, collect_environment_warnings

LEVEL_WARN = "warn"
LEVEL_INFO = "info"


@dataclass
class DoctorCheck:
    name: str
    passed: bool
    detail: str
    remedy: Optional[str] = None
    level: str = LEVEL_WARN

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["status"] = "ok" if payload.pop("passed") else "missing"
        if self.remedy is None:
            payload.pop("remedy")
        return payload


def _storage_checks(paths: DataPaths) -> List[DoctorCheck]:
    bundle_count = 0
    if paths.raw_pages_dir.is_dir():
        bundle_count = len(BundleStore(paths.raw_pages_dir).list_bundles())
    has_index = paths.index_dir.is_dir() and whoosh_index.exists_in(str(paths.index_dir))
    return [
        DoctorCheck(
            "data_dir",
            check_writable(paths.data_dir),
            str(paths.data_dir),
            "Pass --data-dir (or set HISTFETCH_DATA_DIR) to a writable directory.",
        ),
        DoctorCheck(
            "history",
            paths.history.exists(),
            str(paths.history),
            "Run `histfetch extract-firefox-history <profile>` first.",
        ),
        DoctorCheck(
            "raw_pages",
            bundle_count > 0,
            f"{bundle_count} bundles in {paths.raw_pages_dir}",
            "Run `histfetch download-pages`.",
            LEVEL_INFO,
        ),
        DoctorCheck(
            "index",
            has_index,
            str(paths.index_dir),
            "Run `histfetch index-contents`.",
            LEVEL_INFO,
        ),
    ]


def build_doctor_report(paths: DataPaths) -> Dict[str, Any]:
    """Collect checks into the JSON-friendly report printed by ``histfetch doctor``.

    ``ok`` is false when any ``warn`` level check fails or when an environment
    override is unusable; ``info`` checks never fail the report.
    """

    checks = _storage_checks(paths)
    env_warnings = collect_environment_warnings()
    failed = [check for check in checks if not check.passed and check.level == LEVEL_WARN]
    return {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": not failed and not env_warnings,
        "checks": [check.to_dict() for check in checks],
        "environment_warnings": env_warnings,
    }


def format_doctor_report(report: Dict[str, Any]) -> str:
    out = ["histfetch doctor", f"Generated: {report.get('generated_at')}", ""]
    for check in report.get("checks", []):
        status = check.get("status", "unknown")
        out.append(f"- [{check.get('level', LEVEL_INFO)}] {check.get('name')}: {status}")
        if check.get("detail"):
            out.append(f"  detail: {check['detail']}")
        if status != "ok" and check.get("remedy"):
            out.append(f"  remedy: {check['remedy']}")
    env_warnings = report.get("environment_warnings") or []
    if env_warnings:
        out += ["", "Environment warnings:"]
        for warning in env_warnings:
            out.append(f"- {warning.get('code', 'warning')}: {warning.get('message', '')}")
            if warning.get("remedy"):
                out.append(f"  remedy: {warning['remedy']}")
    return "\n".join(out).rstrip() + "\n"
