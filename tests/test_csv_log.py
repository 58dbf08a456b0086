# tests/test_csv_log.py
# How to run:
#   pytest -q
#
# What this covers:
#   - Header written once per file, even across sink instances
#   - Row formatting (decimals, 0/1 trigger, blank self report)
#   - Self report attached to a buffered row
#   - Failed writes keep rows buffered

from core.storage.csv_log import CsvLogSink, CsvRow, CSV_HEADER

T0 = 1_700_000_000_000

def _row(at=T0, **kw) -> CsvRow:
    defaults = dict(features={"keysPerMin": 12.5, "pauseRatio": 0.25}, score=3.14159, triggered=True)
    defaults.update(kw)
    return CsvRow(at_ms=at, **defaults)

def test_row_render():
    assert _row().render() == "2023-11-14T22:13:20.000Z,12.50,0.00,0.250,0.00,0.00,0.00,0.00,0.00,3.14,1,\n"
    assert _row(triggered=False, self_report=4).render().endswith(",0,4\n")

def test_header_written_once(tmp_path):
    path = tmp_path / "logs" / "editpulse.csv"
    CsvLogSink(str(path), clock=lambda: T0).add_row(_row())
    CsvLogSink(str(path), clock=lambda: T0).add_row(_row(at=T0 + 60_000))

    lines = path.read_text(encoding="utf-8").splitlines(keepends=True)
    assert lines[0] == CSV_HEADER
    assert len(lines) == 3
    assert sum(1 for l in lines if l == CSV_HEADER) == 1

def test_annotate_buffered_row(tmp_path):
    path = tmp_path / "editpulse.csv"
    sink = CsvLogSink(str(path), flush_sec=3600, max_rows=5, clock=lambda: T0)
    assert sink.annotate_last(2) is False

    sink.add_row(_row())
    assert sink.pending() == 1
    assert not path.exists()
    assert sink.annotate_last(4) is True

    sink.flush()
    assert sink.pending() == 0
    assert path.read_text(encoding="utf-8").splitlines()[-1].endswith(",1,4")

def test_write_failure_keeps_rows(tmp_path):
    # a directory cannot be opened for append
    sink = CsvLogSink(str(tmp_path), clock=lambda: T0)
    sink.add_row(_row())
    assert sink.pending() == 1
    sink.add_row(_row(at=T0 + 60_000))
    assert sink.pending() == 2
