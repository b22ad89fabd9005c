"""Tests for inspection file parsing."""

from classifier import classify
from ingestion import parse_inspection_csv


SAMPLE = """LOTE_ID,FECHA_COSECHA,VARIEDAD,FINCA,calidad_status
L-01,2025-01-10,Hass,El Paraiso,OK
L-01,2025-01-10,Hass,El Paraiso,ALERTA

L-01,2025-01-10,Hass,El Paraiso,descarte
L-01,2025-01-10,Hass
"""


def test_parses_status_column_case_insensitively():
    units = parse_inspection_csv(SAMPLE)
    assert [u["status"] for u in units] == ["OK", "ALERTA", "descarte"]
    assert units[0]["FINCA"] == "El Paraiso"


def test_short_rows_are_skipped():
    assert len(parse_inspection_csv(SAMPLE)) == 3


def test_missing_status_column_means_ok():
    units = parse_inspection_csv("LOTE_ID,PESO\nL-01,210\nL-01,190\n")
    assert [u["status"] for u in units] == ["OK", "OK"]


def test_header_only_and_empty_files():
    assert parse_inspection_csv("LOTE_ID,CALIDAD_STATUS\n") == []
    assert parse_inspection_csv("") == []


def test_byte_order_mark_is_ignored():
    units = parse_inspection_csv("\ufeffCALIDAD_STATUS\nNO_ADMITIDA\n")
    assert units[0]["status"] == "NO_ADMITIDA"


def test_parsed_units_feed_the_classifier():
    b = classify(parse_inspection_csv(SAMPLE))
    assert (b.total, b.conformant, b.minor_findings, b.not_admitted) == (3, 1, 1, 1)
