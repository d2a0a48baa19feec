import pytest

from server.core.exceptions import (
    InvalidControlError,
    JobNotFoundError,
    PanelIndexError,
    PanelLockedError,
)
from server.models.control import (
    AddPanelCommand,
    CancelCommand,
    LockPanelCommand,
    PauseCommand,
    RegeneratePanelCommand,
    RegenerateSegmentCommand,
    ResumeCommand,
    RunLinterCommand,
)
from server.models.job import JobState, PanelLintState, PanelStatus
from server.models.panel import PanelSegment
from server.services.generation import MockGenerationClient
from server.services.persistence import FileJobPersistence

from helpers import ScriptedClient, build_service, run_to_end, user_input


@pytest.mark.anyio
async def test_start_creates_pending_slots_and_returns_immediately():
    service = build_service(ScriptedClient())

    job_id = service.start(user_input(panel_count=4))
    job = service.get_status(job_id)

    assert job.state == JobState.QUEUED
    assert [p.index for p in job.panels] == [0, 1, 2, 3]
    assert all(p.status == PanelStatus.PENDING for p in job.panels)
    await run_to_end(service, job_id)


@pytest.mark.anyio
async def test_status_is_a_deep_copy():
    service = build_service(ScriptedClient())
    job_id = service.start(user_input(panel_count=1))
    await run_to_end(service, job_id)

    copy = service.get_status(job_id)
    copy.panels[0].status = PanelStatus.FAILED
    copy.panels[0].panel.title = "verändert"

    fresh = service.get_status(job_id)
    assert fresh.panels[0].status == PanelStatus.OK
    assert fresh.panels[0].panel.title != "verändert"


def test_unknown_job_is_rejected():
    service = build_service(ScriptedClient())
    with pytest.raises(JobNotFoundError):
        service.get_status("missing")
    with pytest.raises(JobNotFoundError):
        service.pause("missing")


@pytest.mark.anyio
async def test_pause_and_resume_outside_their_states_are_no_ops():
    service = build_service(ScriptedClient())
    job_id = service.start(user_input(panel_count=1))
    await run_to_end(service, job_id)

    assert service.pause(job_id).state == JobState.DONE
    assert service.resume(job_id).state == JobState.DONE


@pytest.mark.anyio
async def test_cancel_on_finished_job_keeps_its_state():
    service = build_service(ScriptedClient())
    job_id = service.start(user_input(panel_count=1))
    await run_to_end(service, job_id)

    job = service.cancel(job_id)
    assert job.state == JobState.DONE
    assert job.last_error is None


@pytest.mark.anyio
async def test_cancel_paused_job():
    service = build_service(ScriptedClient())
    job_id = service.start(user_input(panel_count=2))
    service.store.get(job_id).state = JobState.RUNNING
    service.pause(job_id)

    job = service.cancel(job_id)
    await service.orchestrator.wait(job_id)

    assert job.state == JobState.ERROR
    assert job.last_error.code == "CANCELLED"


@pytest.mark.anyio
async def test_regenerate_locked_slot_is_rejected_without_change():
    client = ScriptedClient()
    service = build_service(client)
    job_id = service.start(user_input(panel_count=2))
    await run_to_end(service, job_id)
    service.lock_panel(job_id, 0)
    before = service.get_status(job_id).panels[0]

    with pytest.raises(PanelLockedError):
        service.regenerate_panel(job_id, 0)

    after = service.get_status(job_id)
    assert after.panels[0] == before
    assert after.state == JobState.DONE
    assert len(client.calls) == 2


@pytest.mark.anyio
async def test_regenerate_reopens_finished_job():
    client = ScriptedClient()
    service = build_service(client)
    job_id = service.start(user_input(panel_count=2, topics=["t0", "t1"]))
    await run_to_end(service, job_id)

    reset = service.regenerate_panel(job_id, 1)
    assert reset.state == JobState.RUNNING
    assert reset.panels[1].status == PanelStatus.PENDING
    assert reset.panels[1].panel is None

    job = await run_to_end(service, job_id)
    assert job.state == JobState.DONE
    assert job.panels[1].status == PanelStatus.OK
    assert client.calls == ["t0", "t1", "t1"]
    # the other slot's title is excluded when regenerating
    assert client.excluded[-1] == ["t0 in Musterstadt"]


@pytest.mark.anyio
async def test_regenerate_during_run_is_picked_up_by_same_loop():
    service = None
    job_id = None

    def reset_first(topic):
        if topic == "t2" and client.calls.count("t0") == 1:
            service.regenerate_panel(job_id, 0)

    client = ScriptedClient(on_generate=reset_first)
    service = build_service(client)
    job_id = service.start(user_input(panel_count=3, topics=["t0", "t1", "t2"]))
    job = await run_to_end(service, job_id)

    assert job.state == JobState.DONE
    assert client.calls == ["t0", "t1", "t2", "t0"]
    assert all(p.status == PanelStatus.OK for p in job.panels)


@pytest.mark.anyio
async def test_regenerate_of_in_flight_slot_generates_it_again():
    service = None
    job_id = None

    def reset_current(topic):
        if topic == "t1" and client.calls.count("t1") == 1:
            service.regenerate_panel(job_id, 1)

    client = ScriptedClient(on_generate=reset_current)
    service = build_service(client)
    job_id = service.start(user_input(panel_count=3, topics=["t0", "t1", "t2"]))
    job = await run_to_end(service, job_id)

    assert job.state == JobState.DONE
    assert client.calls == ["t0", "t1", "t1", "t2"]
    assert all(p.status == PanelStatus.OK for p in job.panels)
    assert job.panels[1].generation == 1


@pytest.mark.anyio
async def test_regenerate_on_cancelled_job_is_refused():
    service = build_service(ScriptedClient())
    job_id = service.start(user_input(panel_count=1))
    service.cancel(job_id)
    await service.orchestrator.wait(job_id)

    with pytest.raises(InvalidControlError):
        service.regenerate_panel(job_id, 0)


def test_slot_index_out_of_range():
    service = build_service(ScriptedClient())
    job = service.create_job(user_input(panel_count=1))
    with pytest.raises(PanelIndexError):
        service.regenerate_panel(job.id, 5)


@pytest.mark.anyio
async def test_segment_regeneration_replaces_only_that_segment():
    client = MockGenerationClient()
    service = build_service(client)
    job_id = service.start(user_input(panel_count=1))
    done = await run_to_end(service, job_id)
    original = done.panels[0].panel

    marked = service.regenerate_panel_segment(job_id, 0, PanelSegment.SUMMARY)
    assert marked.panels[0].status == PanelStatus.PENDING
    assert marked.panels[0].pending_segment == "summary"

    job = await run_to_end(service, job_id)
    slot = job.panels[0]
    assert job.state == JobState.DONE
    assert slot.status == PanelStatus.OK
    assert slot.pending_segment is None and slot.base_panel is None
    assert slot.panel.title == original.title
    assert slot.panel.summary == f"{original.summary} (überarbeitet)"
    assert slot.lint_result.content_hash != done.panels[0].lint_result.content_hash


@pytest.mark.anyio
async def test_segment_lock_refuses_segment_regeneration():
    service = build_service(ScriptedClient())
    job_id = service.start(user_input(panel_count=1))
    await run_to_end(service, job_id)
    service.lock_panel(job_id, 0, segment=PanelSegment.TITLE)

    with pytest.raises(PanelLockedError):
        service.regenerate_panel_segment(job_id, 0, PanelSegment.TITLE)

    # other segments are still allowed
    service.regenerate_panel_segment(job_id, 0, PanelSegment.SUMMARY)
    job = await run_to_end(service, job_id)
    assert job.panels[0].panel.summary == "Neue Zusammenfassung"


@pytest.mark.anyio
async def test_segment_regeneration_needs_existing_content():
    service = build_service(ScriptedClient(fail_topics={"t0"}), max_retries=0)
    job_id = service.start(user_input(panel_count=1, topics=["t0"]))
    await run_to_end(service, job_id)

    with pytest.raises(InvalidControlError):
        service.regenerate_panel_segment(job_id, 0, PanelSegment.SUMMARY)


@pytest.mark.anyio
async def test_failed_segment_regeneration_keeps_finished_panel():
    client = ScriptedClient(fail_segments={"summary"})
    service = build_service(client, max_retries=1)
    job_id = service.start(user_input(panel_count=1, topics=["t0"]))
    done = await run_to_end(service, job_id)
    original = done.panels[0]

    marked = service.regenerate_panel_segment(job_id, 0, PanelSegment.SUMMARY)
    assert marked.panels[0].status == PanelStatus.PENDING
    assert marked.panels[0].panel == original.panel

    job = await run_to_end(service, job_id)
    slot = job.panels[0]
    assert client.segment_calls == ["summary", "summary"]
    assert job.state == JobState.DONE
    assert slot.status == PanelStatus.OK
    assert slot.panel == original.panel
    assert slot.error == "backend rejected segment summary"
    assert slot.lint_result == original.lint_result
    assert slot.quality_score == original.quality_score
    assert slot.pending_segment is None and slot.base_panel is None
    assert job.set_hash == done.set_hash
    assert service.get_lint_report(job_id).panels[0].state == PanelLintState.PASSED


@pytest.mark.anyio
async def test_full_regenerate_during_segment_call_wins():
    service = None
    job_id = None

    def reset_panel(segment):
        if len(client.segment_calls) == 1:
            service.regenerate_panel(job_id, 0)

    client = ScriptedClient(on_segment=reset_panel)
    service = build_service(client)
    job_id = service.start(user_input(panel_count=1, topics=["t0"]))
    await run_to_end(service, job_id)

    service.regenerate_panel_segment(job_id, 0, PanelSegment.SUMMARY)
    job = await run_to_end(service, job_id)

    assert client.segment_calls == ["summary"]
    assert client.calls == ["t0", "t0"]
    assert job.state == JobState.DONE
    assert job.panels[0].status == PanelStatus.OK
    assert job.panels[0].panel.summary == "Kurzüberblick"


@pytest.mark.anyio
async def test_add_panel_appends_slot_with_topic():
    client = ScriptedClient()
    service = build_service(client)
    job_id = service.start(user_input(panel_count=2, topics=["t0", "t1"]))
    await run_to_end(service, job_id)

    service.add_panel(job_id, "Baumschnitt")
    job = await run_to_end(service, job_id)

    assert len(job.panels) == 3
    assert job.panels[2].index == 2
    assert job.panels[2].topic == "Baumschnitt"
    assert job.panels[2].status == PanelStatus.OK
    assert job.user_input.topics == ["t0", "t1", "Baumschnitt"]
    assert job.user_input.panel_count == 3
    assert client.calls == ["t0", "t1", "Baumschnitt"]


@pytest.mark.anyio
async def test_rerun_linter_refreshes_stale_results():
    service = build_service(ScriptedClient())
    job_id = service.start(user_input(panel_count=2, topics=["t0", "t1"]))
    job = await run_to_end(service, job_id)

    edited = job.panels[0].panel.model_copy(update={"title": "Unsere Leistungen"})
    service.update_panel(job_id, 0, edited)

    report = service.get_lint_report(job_id)
    assert report.panels[0].state == PanelLintState.STALE
    assert report.panels[1].state == PanelLintState.PASSED
    assert not report.export_ready

    relinted = service.rerun_linter(job_id)
    assert relinted.panels[0].panel.title == "Unsere Leistungen"
    assert [i.code for i in relinted.panels[0].lint_result.issues] == ["TITLE_NO_GEO"]
    assert relinted.panels[0].quality_score == 89

    report = service.get_lint_report(job_id)
    assert report.panels[0].state == PanelLintState.PASSED
    assert report.export_ready


@pytest.mark.anyio
async def test_placeholder_leak_blocks_export():
    service = build_service(ScriptedClient())
    job_id = service.start(user_input(panel_count=1))
    job = await run_to_end(service, job_id)

    leaked = job.panels[0].panel.model_copy(update={"summary": "Hallo {city}"})
    service.update_panel(job_id, 0, leaked)
    service.rerun_linter(job_id)

    report = service.get_lint_report(job_id)
    assert report.panels[0].state == PanelLintState.FAILED
    assert not report.export_ready


@pytest.mark.anyio
async def test_control_dispatches_commands():
    client = ScriptedClient()
    service = build_service(client)
    job_id = service.start(user_input(panel_count=2, topics=["t0", "t1"]))
    await run_to_end(service, job_id)

    assert service.control(job_id, PauseCommand()).state == JobState.DONE
    assert service.control(job_id, ResumeCommand()).state == JobState.DONE
    assert service.control(job_id, RunLinterCommand()).panels[0].lint_result.passed
    assert service.control(job_id, LockPanelCommand(index=1)).panels[1].locked
    with pytest.raises(PanelLockedError):
        service.control(job_id, RegeneratePanelCommand(index=1))

    service.control(job_id, RegenerateSegmentCommand(index=0, segment="summary"))
    await run_to_end(service, job_id)
    service.control(job_id, AddPanelCommand(topic="t2"))
    job = await run_to_end(service, job_id)
    assert len(job.panels) == 3

    assert service.control(job_id, CancelCommand()).state == JobState.DONE


@pytest.mark.anyio
async def test_topic_suggestions_after_profiling():
    service = build_service(ScriptedClient())
    job = service.create_job(user_input(panel_count=1))
    assert service.get_topic_suggestions(job.id) == []

    await run_to_end(service, service.start(user_input(panel_count=1)))
    job_id = service.list_jobs()[-1].id
    assert service.get_topic_suggestions(job_id) == [
        "Kundenrezensionen und Fallstudien",
        "Unser Team in Musterstadt",
    ]


@pytest.mark.anyio
async def test_restore_persisted_job_and_resume(tmp_path):
    first = build_service(ScriptedClient(), persistence=FileJobPersistence(str(tmp_path)))
    job = first.create_job(user_input(panel_count=2))
    first.store.flush()

    client = ScriptedClient()
    second = build_service(client, persistence=FileJobPersistence(str(tmp_path)))
    restored = second.restore_job(job.id)
    assert restored.state == JobState.PAUSED

    second.resume(job.id)
    done = await run_to_end(second, job.id)
    assert done.state == JobState.DONE
    assert len(client.calls) == 2

    with pytest.raises(JobNotFoundError):
        second.restore_job("never-saved")


@pytest.mark.anyio
async def test_discard_and_clear_finished():
    service = build_service(ScriptedClient())
    finished = service.start(user_input(panel_count=1))
    await run_to_end(service, finished)
    queued = service.create_job(user_input(panel_count=1))

    assert service.get_active_jobs_count() == 1
    assert service.clear_finished_jobs() == 1
    with pytest.raises(JobNotFoundError):
        service.get_status(finished)

    service.discard_job(queued.id)
    with pytest.raises(JobNotFoundError):
        service.get_status(queued.id)
