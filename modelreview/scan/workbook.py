# modelreview/scan/workbook.py
from __future__ import annotations

import datetime as _dt
import logging
from typing import Iterator, List, Optional, Set

from modelreview.core.config import ScanOptions
from modelreview.detectors.complexity import ComplexityScorer
from modelreview.detectors.severity import SeverityModel
from modelreview.host.base import WorkbookHost
from modelreview.scan.results import WorkbookResult, WorksheetResult
from modelreview.core.control import CancelToken, ProgressCallback, ScanCancelled, notify
from modelreview.scan.worksheet import ScanEvent, WorksheetScanner

logger = logging.getLogger(__name__)


class WorksheetScanError(RuntimeError):
    """A sheet could not be read; no partial workbook result exists."""

    def __init__(self, sheet: str, cause: BaseException):
        super().__init__(f"Failed to scan worksheet '{sheet}': {cause}")
        self.sheet = sheet
        self.cause = cause


def _utc_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat().replace("+00:00", "Z")


class WorkbookScanner:
    """
    Scans the sheets of a workbook one after another and merges the results.

    Sheets keep workbook order. With target_sheets set, only those sheets are
    scanned; requested names that do not exist end up in missing_sheets.
    """

    def __init__(
        self,
        workbook: WorkbookHost,
        options: Optional[ScanOptions] = None,
        scorer: Optional[ComplexityScorer] = None,
        severity: Optional[SeverityModel] = None,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        self.workbook = workbook
        self.options = options or ScanOptions()
        self.scorer = scorer or ComplexityScorer()
        self.severity = severity or SeverityModel()
        self.progress = progress
        self.cancel = cancel
        self.result: Optional[WorkbookResult] = None
        self._sheets: List[WorksheetResult] = []

    def selected_sheets(self) -> List[str]:
        names = list(self.workbook.sheet_names())
        wanted = self.options.target_sheets
        if not wanted:
            return names
        keep = set(wanted)
        return [n for n in names if n in keep]

    def missing_sheets(self) -> List[str]:
        present = set(self.workbook.sheet_names())
        seen: Set[str] = set()
        out = []
        for name in self.options.target_sheets:
            if name not in present and name not in seen:
                seen.add(name)
                out.append(name)
        return out

    def steps(self) -> Iterator[ScanEvent]:
        self._sheets = []
        names = self.selected_sheets()
        missing = self.missing_sheets()
        if missing:
            logger.warning("requested sheets not found: %s", ", ".join(missing))

        for idx, name in enumerate(names, start=1):
            notify(self.progress, f"Worksheet {idx}/{len(names)}: {name}")
            try:
                scanner = WorksheetScanner(
                    self.workbook.sheet(name),
                    self.options,
                    scorer=self.scorer,
                    severity=self.severity,
                    progress=self.progress,
                    cancel=self.cancel,
                )
                yield from scanner.steps()
            except ScanCancelled:
                raise
            except Exception as exc:
                logger.error("scan of sheet %s failed: %s", name, exc)
                raise WorksheetScanError(name, exc) from exc
            assert scanner.result is not None
            self._sheets.append(scanner.result)

        self.result = self._merge(missing)

    def run(self) -> WorkbookResult:
        for _ in self.steps():
            pass
        assert self.result is not None
        return self.result

    def _merge(self, missing: List[str]) -> WorkbookResult:
        unique: Set[str] = set()
        total_formulas = 0
        for ws in self._sheets:
            total_formulas += ws.total_formulas
            unique.update(f.formula for f in ws.formulas)

        minutes = round(len(unique) * float(self.options.minutes_per_formula), 2)
        return WorkbookResult(
            worksheets=tuple(self._sheets),
            total_formulas=total_formulas,
            unique_formulas=len(unique),
            review_minutes=minutes,
            timestamp=_utc_iso(),
            missing_sheets=tuple(missing),
        )


def scan_workbook(
    workbook: WorkbookHost,
    options: Optional[ScanOptions] = None,
    progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelToken] = None,
) -> WorkbookResult:
    return WorkbookScanner(workbook, options, progress=progress, cancel=cancel).run()
