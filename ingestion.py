"""
Parsing of inspection files handed over by the packing line.

Only the CALIDAD_STATUS column matters to the classifier; every other column
is carried through untouched.
"""
import csv
import io
import logging
from typing import Dict, List

logger = logging.getLogger(__name__)

STATUS_COLUMN = "CALIDAD_STATUS"


def parse_inspection_csv(text: str) -> List[Dict[str, str]]:
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    rows = [r for r in reader if any(v.strip() for v in r)]
    if not rows:
        return []

    headers = [h.strip() for h in rows[0]]
    status_idx = next((i for i, h in enumerate(headers) if h.upper() == STATUS_COLUMN), None)
    if status_idx is None:
        logger.warning("No %s column in inspection file, every unit counted as OK", STATUS_COLUMN)

    units = []
    for line_no, values in enumerate(rows[1:], start=2):
        if len(values) < len(headers):
            logger.warning("Skipping inspection line %d: %d fields, expected %d",
                           line_no, len(values), len(headers))
            continue
        unit = {h: v.strip() for h, v in zip(headers, values)}
        unit["status"] = values[status_idx].strip() if status_idx is not None else "OK"
        units.append(unit)

    logger.info("Parsed %d inspection units", len(units))
    return units
