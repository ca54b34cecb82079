from __future__ import annotations

import json
import logging
import zipfile
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from opos.domain.errors import StorageUnavailable
from opos.domain.models import utc_now_iso
from opos.repositories.contracts import PENDING_SALES, SYNCED_SALES

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthReport:
    store_integrity: str
    online: bool
    pending_sales: int
    synced_sales: int
    last_sync_at: Optional[str]
    db_size_bytes: int
    logs_count: int
    generated_at: str


class OperationsService:
    def __init__(self, store, reconciler, connectivity, db_path: Path | str | None, logs_dir: Path | str):
        self.store = store
        self.reconciler = reconciler
        self.connectivity = connectivity
        self.db_path = Path(db_path) if db_path else None
        self.logs_dir = Path(logs_dir)

    def health(self) -> dict:
        return {"status": "OK", "timestamp": utc_now_iso()}

    def run_health_check(self) -> HealthReport:
        try:
            integrity = self.store.integrity_check()
            pending = self.store.count(PENDING_SALES)
            synced = self.store.count(SYNCED_SALES)
        except StorageUnavailable as e:
            log.warning("health_check_store_unavailable error=%s", e)
            integrity, pending, synced = "unavailable", 0, 0

        logs_count = len(list(self.logs_dir.glob("*.log"))) if self.logs_dir.exists() else 0
        size = self.db_path.stat().st_size if self.db_path is not None and self.db_path.exists() else 0
        return HealthReport(
            store_integrity=integrity,
            online=self.connectivity.is_online(),
            pending_sales=pending,
            synced_sales=synced,
            last_sync_at=self.reconciler.last_sync_at(),
            db_size_bytes=size,
            logs_count=logs_count,
            generated_at=datetime.now().isoformat(timespec="seconds"),
        )

    def export_diagnostics(self, target_dir: Path | str | None = None) -> Path:
        if target_dir:
            out_dir = Path(target_dir)
        elif self.db_path is not None:
            out_dir = self.db_path.parent
        else:
            out_dir = self.logs_dir
        out_dir.mkdir(parents=True, exist_ok=True)

        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        zip_path = out_dir / f"diagnostics_{ts}.zip"
        report = self.run_health_check()

        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            if self.db_path is not None and self.db_path.exists():
                zf.write(self.db_path, arcname=self.db_path.name)

            if self.logs_dir.exists():
                for f in sorted(self.logs_dir.glob("*.log")):
                    zf.write(f, arcname=f"logs/{f.name}")

            zf.writestr("health_report.json", json.dumps(asdict(report), ensure_ascii=False, indent=2))

        log.info("diagnostics_exported path=%s", zip_path)
        return zip_path
