import sys

import pandas as pd
import pytest

from conftest import FakePage

import leadscraper.main as main_module
from leadscraper.core.error_handler import ErrorHandler
from leadscraper.core.errors import CaptchaDetectedError, RetryPolicy
from leadscraper.models.business import (
    BusinessContact,
    ScrapeBatch,
    ScrapeFailure,
    ScrapeSuccess,
    create_empty_business,
)


def _batch(location, *names):
    results = [
        ScrapeSuccess(
            business=create_empty_business(
                name=name,
                google_maps_url=f"https://maps/place/{name}",
                contact=BusinessContact(website=f"https://{name}.co.il"),
            ).finalize(),
            card_index=i,
        )
        for i, name in enumerate(names)
    ]
    results.append(
        ScrapeFailure(category="timeout", retryable=True, recommended_action="retry",
                      card_index=len(names))
    )
    return ScrapeBatch(business_type="cafes", location=location, results=results)


@pytest.fixture
def fake_sessions(monkeypatch):
    def _run_session(business_type, location, limit, settings, error_handler,
                     proxies=None, selectors_path=None):
        if location == "Eilat":
            raise CaptchaDetectedError("Captcha served for search 'cafes in Eilat'")
        if location == "Haifa":
            return _batch(location, "alpha", "beta")
        return _batch(location, "beta", "gamma")

    monkeypatch.setattr(main_module, "run_session", _run_session)


def test_run_merges_sessions_and_exports(tmp_path, settings, fake_sessions):
    summary = main_module.run("cafes", ["Haifa", "Tel Aviv"], 5, 2, tmp_path, settings=settings)

    assert summary["failures"] == {}
    assert len(summary["batches"]) == 2
    # "beta" shows up in both sessions
    assert summary["unique_exported"] == 3

    leads = pd.read_csv(summary["files"]["csv"])
    assert sorted(leads["name"]) == ["alpha", "beta", "gamma"]
    assert leads["hasWebsite"].all()

    stream = pd.read_csv(summary["files"]["stream_csv"])
    assert len(stream) == 4


def test_run_records_failed_sessions(tmp_path, settings, fake_sessions):
    summary = main_module.run("cafes", ["Haifa", "Eilat"], 5, 1, tmp_path, settings=settings)

    assert list(summary["failures"]) == ["Eilat"]
    assert "Captcha" in summary["failures"]["Eilat"]
    assert summary["unique_exported"] == 2


def test_run_with_nothing_scraped_skips_final_export(tmp_path, settings, fake_sessions):
    summary = main_module.run("cafes", ["Eilat"], 5, 1, tmp_path, settings=settings)
    assert summary["unique_exported"] == 0
    assert set(summary["files"]) == {"stream_csv"}


def test_cli_exit_code_reflects_failures(tmp_path, monkeypatch, fake_sessions):
    monkeypatch.setattr(main_module.ErrorHandler, "setup_logging", staticmethod(lambda level=None: None))
    monkeypatch.setattr(
        sys,
        "argv",
        ["leadscraper", "-t", "cafes", "-l", "Haifa", "-l", "Eilat", "--output-dir", str(tmp_path)],
    )
    with pytest.raises(SystemExit) as info:
        main_module.main()
    assert info.value.code == 1


def test_cli_success_returns_normally(tmp_path, monkeypatch, fake_sessions):
    monkeypatch.setattr(main_module.ErrorHandler, "setup_logging", staticmethod(lambda level=None: None))
    monkeypatch.setattr(
        sys,
        "argv",
        ["leadscraper", "-t", "cafes", "-l", "Haifa", "--limit", "3", "--workers", "1",
         "--no-headless", "--output-dir", str(tmp_path)],
    )
    main_module.main()
    assert list(tmp_path.glob("cafes_*_leads.csv"))


def test_cli_requires_type_and_location(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["leadscraper", "-t", "cafes"])
    with pytest.raises(SystemExit) as info:
        main_module.main()
    assert info.value.code == 2


class _FakeBrowserSession:
    instances = []

    def __init__(self, settings, proxies=None):
        self.page = FakePage()
        self.rotations = 0
        _FakeBrowserSession.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return None

    def rotate_identity(self):
        self.rotations += 1


def test_run_session_rotates_and_pauses_after_rate_limit(monkeypatch, settings):
    attempts = []

    class _Orchestrator:
        def __init__(self, page, settings, selectors, policy=None, delay_multiplier=1.0):
            attempts.append(delay_multiplier)

        def search(self, business_type, location, limit):
            if len(attempts) == 1:
                raise RuntimeError("429 Too Many Requests")
            return []

    _FakeBrowserSession.instances.clear()
    monkeypatch.setattr(main_module, "BrowserSession", _FakeBrowserSession)
    monkeypatch.setattr(main_module, "SearchOrchestrator", _Orchestrator)
    monkeypatch.setattr("leadscraper.config.SELECTORS_FILE", None)
    monkeypatch.setattr("leadscraper.config.ENABLE_SCREENSHOTS", False)
    handler = ErrorHandler(RetryPolicy(3), sleep=lambda seconds: None)

    batch = main_module.run_session("cafes", "Haifa", 5, settings, handler)

    session = _FakeBrowserSession.instances[0]
    assert batch.results == []
    assert batch.end_time is not None
    assert attempts == [1.0, 2.0]
    assert session.rotations == 1
    assert session.page.waits == [settings.rate_limit.rate_limit_pause]
