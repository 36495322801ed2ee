from loguru import logger

from leadfinder.utils.logging_utils import Timer, log_search


def test_log_search_binds_fields() -> None:
    captured = []
    sink_id = logger.add(lambda message: captured.append(message.record), level="INFO")
    try:
        log_search(source="oscn-tulsa", query="SC", results_raw=4, results_kept=2, duration_ms=12.345, kind="court_case")
    finally:
        logger.remove(sink_id)

    record = captured[-1]
    assert record["extra"]["source"] == "oscn-tulsa"
    assert record["extra"]["results_kept"] == 2
    assert record["extra"]["duration_ms"] == 12.3
    assert record["extra"]["kind"] == "court_case"
    assert "kept 2" in record["message"]


def test_timer_sets_elapsed_on_exit() -> None:
    with Timer() as timer:
        pass
    assert timer.elapsed_ms >= 0
