# modelreview/cli/main.py
from __future__ import annotations

import argparse
import datetime as _dt
import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl.utils.exceptions import InvalidFileException

from modelreview.core.config import MapOptions, ScanOptions, load_rules_config
from modelreview.detectors.complexity import ComplexityScorer, ComplexityWeights
from modelreview.detectors.severity import SeverityModel, SeverityThresholds
from modelreview.host.openpyxl_host import OpenpyxlWorkbook
from modelreview.mapping.generator import WorksheetMapGenerator
from modelreview.scan.workbook import WorkbookScanner

logger = logging.getLogger(__name__)

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_.-]+")


def _resolve_output_dir(workbook_path: str, out_dir: str) -> Path:
    """<out_dir or workbook folder>/output/<workbook_stem>/<YYYYMMDD_HHMMSS>/"""
    wb = Path(workbook_path)
    base = Path(out_dir) if out_dir else wb.parent
    ts = _dt.datetime.now().strftime("%Y%m%d_%H%M%S")
    return (base / "output" / wb.stem / ts).resolve()


def _safe_name(name: str) -> str:
    return _UNSAFE_RE.sub("_", name).strip("_") or "sheet"


def _log_progress(message: str) -> None:
    logger.info(message)


def scan_file(
    workbook_path: str,
    out_dir: str = "",
    rules_path: Optional[str] = None,
    with_map: bool = False,
    target_sheets: Optional[Sequence[str]] = None,
    group_similar_formulas: Optional[bool] = None,
    include_empty_cells: Optional[bool] = None,
    minutes_per_formula: Optional[float] = None,
    massive_cell_threshold: Optional[int] = None,
    map_max_cells: Optional[int] = None,
) -> Tuple[Dict[str, Any], str, List[str]]:
    """
    Read-only scan of one workbook file.
    Returns: (scan_dict, json_path, map_paths)
    """
    p = Path(workbook_path)
    if not p.exists():
        raise FileNotFoundError(f"Workbook not found: {workbook_path}")

    cfg = load_rules_config(rules_path)
    options = ScanOptions.from_config(
        cfg,
        target_sheets=list(target_sheets) if target_sheets else None,
        group_similar_formulas=group_similar_formulas,
        include_empty_cells=include_empty_cells,
        minutes_per_formula=minutes_per_formula,
        massive_cell_threshold=massive_cell_threshold,
    )
    map_options = MapOptions.from_config(cfg, max_cells=map_max_cells)
    scorer = ComplexityScorer(ComplexityWeights.from_config(cfg))
    severity = SeverityModel(SeverityThresholds.from_config(cfg))

    outp = _resolve_output_dir(workbook_path=str(p), out_dir=out_dir)
    outp.mkdir(parents=True, exist_ok=True)

    map_paths: List[str] = []
    with OpenpyxlWorkbook(p) as wb:
        scanner = WorkbookScanner(wb, options, scorer=scorer, severity=severity, progress=_log_progress)
        result = scanner.run()

        scan: Dict[str, Any] = {"workbook": p.name}
        scan.update(result.to_dict())

        if with_map:
            generator = WorksheetMapGenerator(map_options)
            maps = []
            for name in scanner.selected_sheets():
                m = generator.generate(wb.sheet(name), progress=_log_progress)
                maps.append(m.to_dict())
                if not m.skipped:
                    txt_path = outp / f"{p.stem}.{_safe_name(name)}.map.txt"
                    txt_path.write_text(m.render_text() + "\n", encoding="utf-8")
                    map_paths.append(str(txt_path))
            scan["maps"] = maps

    json_path = outp / f"{p.stem}.modelreview.json"
    json_path.write_text(json.dumps(scan, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
    return scan, str(json_path), map_paths


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    parser = argparse.ArgumentParser(prog="modelreview", description="modelreview - spreadsheet model review")
    parser.add_argument("workbook", nargs="?", help="Path to .xlsx/.xlsm workbook")
    parser.add_argument("-o", "--out", dest="out_dir", default="", help="Output base directory (default: workbook folder)")
    parser.add_argument("--rules", dest="rules_path", default=None, help="Alternative rules.yaml")
    parser.add_argument("--sheet", dest="sheets", action="append", default=[], help="Only scan this sheet (repeatable)")
    parser.add_argument("--map", dest="with_map", action="store_true", help="Also write a worksheet map per sheet")
    parser.add_argument("--exact", action="store_true", help="Group formulas by exact text instead of normalized references")
    parser.add_argument("--skip-empty", action="store_true", help="Do not count formula cells whose value is empty")
    parser.add_argument("--minutes-per-formula", type=float, default=None, help="Review minutes per unique formula")
    parser.add_argument("--massive-threshold", type=int, default=None, help="Cell count that switches a sheet to summary counts")
    parser.add_argument("--map-max-cells", type=int, default=None, help="Largest sheet (in cells) to map")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")

    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if not args.workbook:
        print("ERROR: No workbook provided.")
        return 2

    try:
        scan, json_path, map_paths = scan_file(
            workbook_path=args.workbook,
            out_dir=args.out_dir,
            rules_path=args.rules_path,
            with_map=bool(args.with_map),
            target_sheets=args.sheets or None,
            group_similar_formulas=False if args.exact else None,
            include_empty_cells=False if args.skip_empty else None,
            minutes_per_formula=args.minutes_per_formula,
            massive_cell_threshold=args.massive_threshold,
            map_max_cells=args.map_max_cells,
        )
        print(f"JSON: {json_path}")
        for path in map_paths:
            print(f"MAP: {path}")
        print(
            f"{scan['total_worksheets']} sheet(s), {scan['total_formulas']} formulas, "
            f"{scan['unique_formulas']} unique, ~{scan['estimated_review_minutes']} review minutes"
        )
        if scan.get("missing_sheets"):
            print("WARNING: sheets not found: " + ", ".join(scan["missing_sheets"]))
        return 0
    except InvalidFileException:
        print("ERROR: Invalid or unsupported workbook file.")
        return 3
    except Exception as e:
        print("ERROR:", e)
        logger.debug("scan failed", exc_info=True)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
