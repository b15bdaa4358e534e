import psutil

from quiz_relay.utils.monitoring import MAX_LOAD_SAMPLES, MAX_RECORDED_ERRORS, ScrapeMetrics


def test_summary_counts():
    metrics = ScrapeMetrics()
    metrics.record_submitted()
    metrics.record_submitted()
    metrics.record_task(True)
    metrics.record_task(False)
    metrics.record_page_loaded(1.5)
    metrics.record_page_loaded(2.5)
    metrics.record_navigation_failure('https://courses.openedu.ru/u', 'timeout')
    metrics.record_cache(True)
    metrics.record_cache(False)
    metrics.record_cache(False)
    metrics.record_questions(['text', 'single_choice', 'text'])

    summary = metrics.summary()
    assert summary['tasks_submitted'] == 2
    assert (summary['tasks_succeeded'], summary['tasks_failed']) == (1, 1)
    assert summary['avg_page_load_time'] == 2.0
    assert summary['navigation_failures'] == 1
    assert summary['errors'] == 1
    assert summary['cache_hit_rate'] == 0.33
    assert summary['questions_extracted'] == 3
    assert summary['questions_by_kind'] == {'text': 2, 'single_choice': 1}
    assert metrics.errors[0]['message'] == 'https://courses.openedu.ru/u: timeout'


def test_empty_summary_has_no_division_errors():
    summary = ScrapeMetrics().summary()
    assert summary['avg_page_load_time'] == 0
    assert summary['cache_hit_rate'] == 0


def test_memory_read_failure_is_tolerated(monkeypatch):
    def broken_process():
        raise psutil.AccessDenied()

    monkeypatch.setattr(psutil, 'Process', broken_process)
    metrics = ScrapeMetrics()
    metrics.record_task(True)
    assert metrics.peak_memory_mb == 0.0


def test_error_details_are_capped():
    metrics = ScrapeMetrics()
    for n in range(MAX_RECORDED_ERRORS + 50):
        metrics.record_error('navigation', f"failure {n}")

    assert len(metrics.errors) == MAX_RECORDED_ERRORS
    assert metrics.errors[0]['message'] == 'failure 50'
    assert metrics.errors[-1]['message'] == f"failure {MAX_RECORDED_ERRORS + 49}"
    assert metrics.summary()['errors'] == MAX_RECORDED_ERRORS + 50


def test_load_time_samples_are_capped():
    metrics = ScrapeMetrics()
    for _ in range(MAX_LOAD_SAMPLES):
        metrics.record_page_loaded(10.0)
    for _ in range(MAX_LOAD_SAMPLES):
        metrics.record_page_loaded(1.0)

    assert len(metrics.page_load_times) == MAX_LOAD_SAMPLES
    assert metrics.summary()['avg_page_load_time'] == 1.0
    assert metrics.summary()['pages_loaded'] == 2 * MAX_LOAD_SAMPLES
