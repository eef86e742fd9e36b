from __future__ import annotations

import asyncio

from sqlalchemy.orm import Session

from fakes import LISTINGS_URL, FakeDriver, FakeLLM, FakeSite
from kestrel.config import Settings
from kestrel.core.controller import AutomationController
from kestrel.db.repositories import Repository
from kestrel.db.session import SessionLocal, engine
from kestrel.errors import InvalidTransitionError, NavigationError
from kestrel.llm.prompts import FALLBACK_COVER_LETTER
from kestrel.types import AutomationState, ProfileEmbedding

OWNER = "owner-1"
ACME = "https://jobs.example.com/companies/acme"
GLOBEX = "https://jobs.example.com/companies/globex"
JOB_PYTHON = "https://jobs.example.com/jobs/python"
JOB_DESIGN = "https://jobs.example.com/jobs/design"
JOB_VAGUE = "https://jobs.example.com/jobs/vague"
JOB_API = "https://jobs.example.com/jobs/api"


def _settings() -> Settings:
    return Settings(listings_url=LISTINGS_URL, browser_nav_timeout_sec=5, provider_timeout_sec=5)


def _profile() -> ProfileEmbedding:
    return ProfileEmbedding(
        owner_id=OWNER,
        model="test-embed",
        persona_text="We are looking for a Python backend engineer",
        vector=(1.0, 0.0, 0.0),
    )


def _site() -> FakeSite:
    site = FakeSite()
    site.add_company(
        ACME,
        "Acme",
        [
            (JOB_PYTHON, "Senior Python Engineer", "You will build Python services."),
            (JOB_DESIGN, "Graphic Designer", "Own our visual identity."),
            (JOB_VAGUE, "Software Engineer", "Help our marketing team ship campaigns."),
        ],
    )
    site.add_company(GLOBEX, "Globex", [(JOB_API, "Backend Engineer", "Backend APIs in Python.")])
    return site


class Harness:
    def __init__(self, site: FakeSite, session, *, llm: FakeLLM | None = None, sink=None, driver=None):
        self.events: list[dict] = []
        self.driver = driver or FakeDriver(site)
        self.llm = llm or FakeLLM()
        self.controller = AutomationController(
            session,
            owner_id=OWNER,
            driver=self.driver,
            profile=_profile(),
            llm=self.llm,
            settings=_settings(),
            sink=sink or self.events.append,
        )

    async def run(self):
        await self.controller.start()
        return await self.controller.wait()


def test_relevant_job_is_drafted_and_recorded(db_session) -> None:
    harness = Harness(_site(), db_session)

    status = asyncio.run(harness.run())

    assert status.state is AutomationState.STOPPED
    record = Repository(db_session).get_application(OWNER, JOB_PYTHON)
    assert record.status == "submitted"
    assert record.match_score == 100
    assert record.cover_letter.startswith("Drafted for:")
    assert (JOB_PYTHON, _settings().cover_letter_selector, record.cover_letter) in harness.driver.typed

    match = next(event for event in harness.events if event["type"] == "match")
    success = next(event for event in harness.events if event["type"] == "success")
    assert match["job_title"] == "Senior Python Engineer"
    assert success["match_score"] == 100
    assert harness.events.index(match) < harness.events.index(success)


def test_irrelevant_title_is_skipped_without_opening_the_job(db_session) -> None:
    harness = Harness(_site(), db_session)

    asyncio.run(harness.run())

    record = Repository(db_session).get_application(OWNER, JOB_DESIGN)
    assert record.status == "skipped"
    assert record.skip_reason == "title_below_threshold"
    assert record.match_score == 0
    assert JOB_DESIGN not in harness.driver.visits
    skip = next(event for event in harness.events if event.get("job_title") == "Graphic Designer")
    assert skip["type"] == "skip"
    assert skip["match_score"] == 0


def test_description_stage_can_reject_after_title_passes(db_session) -> None:
    llm = FakeLLM({"python": [1.0, 0.0, 0.0], "software": [0.8, 0.6, 0.0], "marketing": [0.0, 1.0, 0.0]})
    harness = Harness(_site(), db_session, llm=llm)

    asyncio.run(harness.run())

    record = Repository(db_session).get_application(OWNER, JOB_VAGUE)
    assert JOB_VAGUE in harness.driver.visits
    assert record.status == "skipped"
    assert record.skip_reason == "description_below_threshold"
    assert record.match_score == 0
    assert not any(text for url, _, text in harness.driver.typed if url == JOB_VAGUE)


def test_unavailable_embeddings_fail_open_into_drafting(db_session) -> None:
    harness = Harness(_site(), db_session, llm=FakeLLM(failing=True))

    status = asyncio.run(harness.run())

    assert status.matched == 4
    record = Repository(db_session).get_application(OWNER, JOB_DESIGN)
    assert record.status == "submitted"
    assert record.match_score == -1
    assert Repository(db_session).count_embeddings() == 0


def test_already_applied_job_is_skipped_without_filter_calls(db_session) -> None:
    site = _site()
    site.mark_applied(ACME, JOB_PYTHON)
    harness = Harness(site, db_session)

    asyncio.run(harness.run())

    record = Repository(db_session).get_application(OWNER, JOB_PYTHON)
    assert record.status == "skipped"
    assert record.skip_reason == "already_applied"
    assert record.match_score is None
    assert all("senior python engineer" not in text for _, text in harness.llm.embed_calls)
    assert JOB_PYTHON not in harness.driver.visits


def test_applied_marker_on_job_page_skips_before_description_check(db_session) -> None:
    site = _site()
    site.applied_pages.add(JOB_API)
    harness = Harness(site, db_session)

    asyncio.run(harness.run())

    record = Repository(db_session).get_application(OWNER, JOB_API)
    assert record.skip_reason == "already_applied"
    assert all("backend apis in python." not in text for _, text in harness.llm.embed_calls)


def test_second_run_processes_nothing_new(db_session) -> None:
    site = _site()
    asyncio.run(Harness(site, db_session).run())

    second = Harness(site, db_session)
    status = asyncio.run(second.run())

    assert status.processed == 0
    assert len(Repository(db_session).list_applications(OWNER)) == 4


def test_pause_holds_at_checkpoint_and_resume_continues(db_session) -> None:
    events: list[dict] = []
    holder: dict = {}

    def sink(event: dict) -> None:
        events.append(event)
        if event["type"] == "success" and not holder.get("paused"):
            holder["paused"] = True
            holder["controller"].pause()

    harness = Harness(_site(), db_session, sink=sink)
    controller = harness.controller
    holder["controller"] = controller

    async def run() -> tuple[int, AutomationState, int]:
        await controller.start()
        for _ in range(50):
            await asyncio.sleep(0.01)
        processed_while_paused = controller.status().processed
        state_while_paused = controller.state
        controller.resume()
        final = await controller.wait()
        return processed_while_paused, state_while_paused, final.processed

    paused_at, paused_state, final_processed = asyncio.run(run())

    assert paused_state is AutomationState.PAUSED
    assert paused_at == 1
    assert final_processed == 4
    messages = [event["message"] for event in events]
    assert messages.index("Automation paused.") < messages.index("Automation resumed.")


def test_stop_mid_job_leaves_it_unrecorded_and_emits_nothing_after(db_session) -> None:
    site = _site()
    site.slow_urls[JOB_PYTHON] = 3.0
    harness = Harness(site, db_session)
    controller = harness.controller

    async def run():
        await controller.start()
        await asyncio.sleep(0.1)
        status = await controller.stop()
        await asyncio.sleep(0.05)
        return status

    status = asyncio.run(run())

    assert status.state is AutomationState.STOPPED
    assert harness.events[-1]["message"] == "Automation stopped."
    assert harness.driver.closed is True
    assert Repository(db_session).get_application(OWNER, JOB_PYTHON) is None

    count = len(harness.events)
    harness.controller._emit("info", "late")
    assert len(harness.events) == count


def test_job_error_is_reported_and_run_continues(db_session) -> None:
    site = _site()
    site.failing_urls.add(JOB_PYTHON)
    harness = Harness(site, db_session)

    status = asyncio.run(harness.run())

    assert status.state is AutomationState.STOPPED
    assert status.errors == 1
    assert Repository(db_session).get_application(OWNER, JOB_PYTHON) is None
    assert Repository(db_session).get_application(OWNER, JOB_API).status == "submitted"
    error = next(event for event in harness.events if event["type"] == "error")
    assert error["job_title"] == "Senior Python Engineer"


def test_missing_description_is_a_job_error(db_session) -> None:
    site = _site()
    site.job_pages[JOB_PYTHON] = "<html><body>   </body></html>"
    harness = Harness(site, db_session)

    status = asyncio.run(harness.run())

    assert status.errors == 1
    assert Repository(db_session).get_application(OWNER, JOB_PYTHON) is None


def test_closed_browser_fails_the_run(db_session) -> None:
    site = _site()
    site.closing_urls.add(JOB_PYTHON)
    harness = Harness(site, db_session)

    status = asyncio.run(harness.run())

    assert status.state is AutomationState.FAILED
    assert "Browser closed" in status.error
    assert harness.events[-1]["type"] == "error"
    assert Repository(db_session).get_application(OWNER, JOB_API) is None


def test_generation_timeout_falls_back_to_generic_letter(db_session) -> None:
    class SlowWriter(FakeLLM):
        async def draft_cover_letter(self, *, job_description: str, persona: str) -> str:
            await asyncio.sleep(5)
            return "too late"

    settings = Settings(listings_url=LISTINGS_URL, browser_nav_timeout_sec=5, provider_timeout_sec=0.05)
    events: list[dict] = []
    controller = AutomationController(
        db_session,
        owner_id=OWNER,
        driver=FakeDriver(_site()),
        profile=_profile(),
        llm=SlowWriter(),
        settings=settings,
        sink=events.append,
    )

    async def run():
        await controller.start()
        return await controller.wait()

    asyncio.run(run())

    assert Repository(db_session).get_application(OWNER, JOB_PYTHON).cover_letter == FALLBACK_COVER_LETTER


def test_start_without_profile_is_rejected(db_session) -> None:
    controller = AutomationController(
        db_session,
        owner_id=OWNER,
        driver=FakeDriver(_site()),
        profile=None,
        llm=FakeLLM(),
        settings=_settings(),
        sink=lambda event: None,
    )

    async def run():
        try:
            await controller.start()
        except InvalidTransitionError:
            return True
        return False

    assert asyncio.run(run()) is True
    assert controller.state is AutomationState.IDLE


def test_concurrent_runs_for_one_owner_record_each_job_once() -> None:
    site = _site()
    with SessionLocal() as first, SessionLocal() as second:
        harnesses = [Harness(site, first), Harness(site, second)]

        async def run():
            return await asyncio.gather(*(harness.run() for harness in harnesses))

        statuses = asyncio.run(run())

        assert all(status.state is AutomationState.STOPPED for status in statuses)
        applications = Repository(first).list_applications(OWNER)
        urls = [row.job_url for row in applications]
        assert sorted(urls) == sorted({JOB_PYTHON, JOB_DESIGN, JOB_VAGUE, JOB_API})
        assert len(Repository(first).list_companies(OWNER)) == 2


def test_pause_during_company_visit_holds_the_next_job(db_session) -> None:
    holder: dict = {}

    def sink(event: dict) -> None:
        harness.events.append(event)
        if event["message"] == "Globex: 1 job postings.":
            holder["controller"].pause()

    harness = Harness(_site(), db_session, sink=sink)
    controller = harness.controller
    holder["controller"] = controller

    async def run():
        await controller.start()
        for _ in range(50):
            await asyncio.sleep(0.01)
        paused = (
            controller.state,
            controller.status().processed,
            Repository(db_session).get_application(OWNER, JOB_API),
        )
        controller.resume()
        final = await controller.wait()
        return paused, final

    (state, processed, api_record), final = asyncio.run(run())

    assert state is AutomationState.PAUSED
    assert processed == 3
    assert api_record is None
    assert final.processed == 4
    assert Repository(db_session).get_application(OWNER, JOB_API).status == "submitted"


def test_failed_form_fill_is_an_error_not_a_match(db_session) -> None:
    class BrokenForm(FakeDriver):
        async def type_text(self, selector: str, text: str) -> None:
            raise NavigationError(f"{selector} not found")

    site = _site()
    harness = Harness(site, db_session, driver=BrokenForm(site))

    status = asyncio.run(harness.run())

    assert status.matched == 0
    assert status.errors == 2
    assert not [event for event in harness.events if event["type"] == "match"]
    assert Repository(db_session).get_application(OWNER, JOB_PYTHON) is None
    assert Repository(db_session).get_application(OWNER, JOB_API) is None


def test_status_turns_terminal_only_after_the_last_event(db_session) -> None:
    states: list[AutomationState] = []
    holder: dict = {}

    def sink(event: dict) -> None:
        states.append(holder["controller"].state)

    harness = Harness(_site(), db_session, sink=sink)
    holder["controller"] = harness.controller

    status = asyncio.run(harness.run())

    assert status.state is AutomationState.STOPPED
    assert not any(state.is_terminal for state in states)


def test_failed_run_reports_its_error_before_turning_failed(db_session) -> None:
    site = _site()
    site.closing_urls.add(JOB_PYTHON)
    states: list[AutomationState] = []
    holder: dict = {}

    def sink(event: dict) -> None:
        states.append(holder["controller"].state)

    harness = Harness(site, db_session, sink=sink)
    holder["controller"] = harness.controller

    status = asyncio.run(harness.run())

    assert status.state is AutomationState.FAILED
    assert not any(state.is_terminal for state in states)


class TrackingSession(Session):
    close_calls = 0

    def close(self) -> None:
        self.close_calls += 1
        super().close()


def test_run_closes_its_session_when_it_ends() -> None:
    session = TrackingSession(bind=engine, autoflush=False)
    harness = Harness(_site(), session)

    asyncio.run(harness.run())

    assert session.close_calls >= 1
    assert harness.driver.closed is True


def test_stop_closes_the_session() -> None:
    site = _site()
    site.slow_urls[JOB_PYTHON] = 3.0
    session = TrackingSession(bind=engine, autoflush=False)
    harness = Harness(site, session)

    async def run():
        await harness.controller.start()
        await asyncio.sleep(0.1)
        return await harness.controller.stop()

    asyncio.run(run())

    assert session.close_calls >= 1
