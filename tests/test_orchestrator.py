from __future__ import annotations

import asyncio
import json
from pathlib import Path

import httpx
import pytest

from caption_pipeline.errors import JobStateError, RecordStoreError, ValidationError
from caption_pipeline.jobs.models import JobStatus, StepLog, StepStatus
from caption_pipeline.jobs.orchestrator import format_steps
from caption_pipeline.notify.base import render_template
from caption_pipeline.notify.sender import Notifier
from caption_pipeline.services.alignment import AlignmentService
from tests._helpers.fakes import (
    ALIGNED,
    VIDEO_INPUT,
    VOICE_INPUT,
    FakeAlignment,
    FakeNotifier,
    FakeRecords,
    FakeTranscription,
    make_orchestrator,
    make_settings,
)


def _steps(orch, job_id: str) -> list[tuple[str, StepStatus]]:
    return [(e.step, e.status) for e in orch.logs(job_id)]


def test_video_job_completes_and_writes_back(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    records = FakeRecords(VIDEO_INPUT)
    notifier = FakeNotifier()

    async def main():
        orch = make_orchestrator(tmp_path, settings, records=records, notifier=notifier)
        job = orch.create_and_run("video", record_ref="S-001")
        assert job.status == JobStatus.PENDING
        return orch, await orch.wait(job.id)

    orch, job = asyncio.run(main())
    assert job.status == JobStatus.COMPLETED
    assert job.progress == 100
    assert job.error is None
    assert job.output["version"] == "2.0"
    assert job.output["mode"] == "video"
    assert job.output["metadata"]["ragicCode"] == "S-001"
    assert [ln["text"] for ln in job.output["lyrics"]] == ["hello", "world"]

    assert records.fetched == [("S-001", "video")]
    ref, payload, kind = records.written[0]
    assert (ref, kind) == ("S-001", "video")
    assert payload["status"] == "completed"
    assert payload["output_document"] == job.output
    assert payload["processing_time"].endswith("s")

    assert _steps(orch, job.id) == [
        ("fetch_record", StepStatus.STARTED),
        ("fetch_record", StepStatus.COMPLETED),
        ("transcribe", StepStatus.STARTED),
        ("transcribe", StepStatus.COMPLETED),
        ("align", StepStatus.STARTED),
        ("align", StepStatus.COMPLETED),
        ("build_document", StepStatus.STARTED),
        ("build_document", StepStatus.COMPLETED),
        ("write_record", StepStatus.STARTED),
        ("write_record", StepStatus.COMPLETED),
    ]
    progress = [e.progress for e in orch.logs(job.id)]
    assert progress == sorted(progress)
    assert notifier.sent[0][0] == "success"
    assert notifier.sent[0][1]["id"] == job.id


def test_direct_input_and_override_precedence(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    records = FakeRecords(VIDEO_INPUT)

    async def main():
        orch = make_orchestrator(tmp_path, settings, records=records)
        job = orch.create_and_run(
            "video",
            record_ref="S-002",
            data={"title": "From Data", "artist": "Data Artist"},
            overrides={"artist": "Override Artist"},
        )
        return await orch.wait(job.id)

    job = asyncio.run(main())
    meta = job.output["metadata"]
    assert meta["title"] == "From Data"
    assert meta["artist"] == "Override Artist"


def test_without_record_ref_nothing_is_fetched_or_written(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    records = FakeRecords(VIDEO_INPUT)

    async def main():
        orch = make_orchestrator(tmp_path, settings, records=records)
        job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
        return orch, await orch.wait(job.id)

    orch, job = asyncio.run(main())
    assert job.status == JobStatus.COMPLETED
    assert records.fetched == []
    assert records.written == []
    assert "write_record" not in {s for s, _ in _steps(orch, job.id)}
    assert orch.logs(job.id)[1].message == "no record reference; using direct input"


def test_missing_audio_url_fails_before_transcription(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    transcription = FakeTranscription()
    notifier = FakeNotifier()

    async def main():
        orch = make_orchestrator(tmp_path, settings, transcription=transcription, notifier=notifier)
        job = orch.create_and_run("video", data={"lyrics": "hello"})
        return orch, await orch.wait(job.id)

    orch, job = asyncio.run(main())
    assert job.status == JobStatus.FAILED
    assert "audioUrl" in (job.error or "")
    assert transcription.calls == []
    assert [s for s, _ in _steps(orch, job.id)] == ["fetch_record", "fetch_record"]
    assert orch.logs(job.id)[-1].status == StepStatus.FAILED
    assert notifier.sent[0][0] == "failure"


def test_unknown_kind_rejected(tmp_path: Path) -> None:
    async def main():
        orch = make_orchestrator(tmp_path, make_settings(tmp_path))
        with pytest.raises(ValidationError):
            orch.create_and_run("podcast")
        return orch.list_recent()

    assert asyncio.run(main()) == []


def test_pause_before_first_step(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    records = FakeRecords(VIDEO_INPUT)
    notifier = FakeNotifier()

    async def main():
        orch = make_orchestrator(tmp_path, settings, records=records, notifier=notifier)
        job = orch.create_and_run("video", record_ref="S-003")
        assert orch.pause(job.id) is True
        done = await orch.wait(job.id)
        return orch, done

    orch, job = asyncio.run(main())
    assert job.status == JobStatus.PAUSED
    assert records.fetched == []
    assert orch.logs(job.id) == []
    assert orch.is_active(job.id) is False
    assert [e for e, _ in notifier.sent] == ["pause"]


def test_cancel_mid_pipeline_stops_at_next_boundary(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    notifier = FakeNotifier()

    async def main():
        gate = asyncio.Event()
        transcription = FakeTranscription(gate=gate)
        alignment = FakeAlignment()
        orch = make_orchestrator(
            tmp_path, settings, transcription=transcription, alignment=alignment, notifier=notifier
        )
        job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
        await transcription.entered.wait()
        assert orch.cancel(job.id) is True
        gate.set()
        return orch, alignment, await orch.wait(job.id)

    orch, alignment, job = asyncio.run(main())
    assert job.status == JobStatus.CANCELLED
    assert job.current_step == "transcribe"
    assert job.ended_at is not None
    assert alignment.calls == []
    steps = _steps(orch, job.id)
    assert ("transcribe", StepStatus.COMPLETED) in steps
    assert "align" not in {s for s, _ in steps}
    assert notifier.sent == []


def test_pause_then_resume_restarts_from_first_step(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    records = FakeRecords(VIDEO_INPUT)

    async def main():
        gate = asyncio.Event()
        transcription = FakeTranscription(gate=gate)
        orch = make_orchestrator(tmp_path, settings, transcription=transcription, records=records)
        job = orch.create_and_run("video", record_ref="S-004")
        await transcription.entered.wait()
        orch.pause(job.id)
        gate.set()
        paused = await orch.wait(job.id)
        assert paused.status == JobStatus.PAUSED
        assert paused.current_step == "transcribe"

        orch.resume(job.id)
        assert orch.is_active(job.id)
        with pytest.raises(JobStateError):
            orch.resume(job.id)
        return orch, await orch.wait(job.id)

    orch, job = asyncio.run(main())
    assert job.status == JobStatus.COMPLETED
    assert job.progress == 100
    started = [e for e in orch.logs(job.id) if e.step == "fetch_record" and e.status == StepStatus.STARTED]
    assert len(started) == 2
    assert started[1].seq > started[0].seq
    assert started[1].progress == 0
    assert len(records.fetched) == 2

    with pytest.raises(JobStateError):
        orch.resume(job.id)


def test_control_on_finished_job_is_rejected(tmp_path: Path) -> None:
    async def main():
        orch = make_orchestrator(tmp_path, make_settings(tmp_path))
        job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
        await orch.wait(job.id)
        return orch, job.id

    orch, job_id = asyncio.run(main())
    assert orch.pause(job_id) is False
    assert orch.cancel(job_id) is False
    assert orch.get(job_id).status == JobStatus.COMPLETED


def test_second_provider_used_after_retry(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, api_whisper147_key="", api_whisperN1N_key="n1n-test-key-0001")
    transcription = FakeTranscription(fail={"whisperN1N": 1})

    async def main():
        orch = make_orchestrator(tmp_path, settings, transcription=transcription)
        job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
        return orch, await orch.wait(job.id)

    orch, job = asyncio.run(main())
    assert job.status == JobStatus.COMPLETED
    assert [c[0] for c in transcription.calls] == ["whisperN1N", "whisperN1N"]
    done = [e for e in orch.logs(job.id) if e.step == "transcribe" and e.status == StepStatus.COMPLETED]
    assert done[0].retry_count == 1
    assert "whisperN1N" in done[0].message


def test_preferred_provider_from_input(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, api_assemblyai_key="aai-test-key-0001")
    transcription = FakeTranscription()

    async def main():
        orch = make_orchestrator(tmp_path, settings, transcription=transcription)
        job = orch.create_and_run(
            "video", data=dict(VIDEO_INPUT, transcriptionProvider="assemblyai", region="JP")
        )
        return await orch.wait(job.id)

    job = asyncio.run(main())
    assert job.status == JobStatus.COMPLETED
    assert transcription.calls == [("assemblyai", VIDEO_INPUT["audioUrl"], "ja")]


def test_truncated_alignment_exhausts_attempts(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, retry_max_attempts="3")
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={"choices": [{"message": {"content": ALIGNED}, "finish_reason": "length"}]},
        )

    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            orch = make_orchestrator(tmp_path, settings, alignment=AlignmentService(client, settings))
            job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
            return orch, await orch.wait(job.id)

    orch, job = asyncio.run(main())
    assert job.status == JobStatus.FAILED
    assert "truncated" in (job.error or "")
    assert "3 attempts" in (job.error or "")
    assert len(requests) == 3
    body = json.loads(requests[0].content)
    assert body["model"] == "gemini-2.5-pro"
    assert "hello" in body["messages"][0]["content"]
    failed = [e for e in orch.logs(job.id) if e.status == StepStatus.FAILED]
    assert [(e.step, e.retry_count) for e in failed] == [("align", 2)]


def test_no_usable_alignment_provider(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, api_gemini147_key="")

    async def main():
        orch = make_orchestrator(tmp_path, settings)
        job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
        return await orch.wait(job.id)

    job = asyncio.run(main())
    assert job.status == JobStatus.FAILED
    assert "0 attempts" in (job.error or "")


def test_correction_failure_does_not_fail_job(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, default_auto_correction="true")
    alignment = FakeAlignment(correct_error=RuntimeError("correction model down"))

    async def main():
        orch = make_orchestrator(tmp_path, settings, alignment=alignment)
        job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
        return orch, await orch.wait(job.id)

    orch, job = asyncio.run(main())
    assert job.status == JobStatus.COMPLETED
    correct = [e for e in orch.logs(job.id) if e.step == "correct"]
    assert [e.status for e in correct] == [StepStatus.STARTED, StepStatus.FAILED]
    assert "correction model down" in correct[-1].message
    assert all("corrected" not in ln for ln in job.output["lyrics"])


def test_correction_replaces_lines(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, default_auto_correction="true")

    async def main():
        orch = make_orchestrator(tmp_path, settings)
        job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
        return await orch.wait(job.id)

    job = asyncio.run(main())
    assert job.status == JobStatus.COMPLETED
    assert all(ln.get("corrected") for ln in job.output["lyrics"])


def test_write_back_failure_fails_job(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    records = FakeRecords(VIDEO_INPUT, write_error=RecordStoreError("direct write failed: HTTP 500"))
    notifier = FakeNotifier()

    async def main():
        orch = make_orchestrator(tmp_path, settings, records=records, notifier=notifier)
        job = orch.create_and_run("video", record_ref="S-005")
        return orch, await orch.wait(job.id)

    orch, job = asyncio.run(main())
    assert job.status == JobStatus.FAILED
    assert "HTTP 500" in (job.error or "")
    assert orch.logs(job.id)[-1].step == "write_record"
    assert orch.logs(job.id)[-1].status == StepStatus.FAILED
    assert notifier.sent[0][0] == "failure"


def test_auto_upload_disabled_skips_write_back(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, default_auto_upload="false")
    records = FakeRecords(VIDEO_INPUT)

    async def main():
        orch = make_orchestrator(tmp_path, settings, records=records)
        job = orch.create_and_run("video", record_ref="S-006")
        return await orch.wait(job.id)

    job = asyncio.run(main())
    assert job.status == JobStatus.COMPLETED
    assert records.written == []


def test_record_fetch_failure_fails_job(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)

    async def main():
        orch = make_orchestrator(tmp_path, settings, records=FakeRecords())
        job = orch.create_and_run("video", record_ref="missing")
        return await orch.wait(job.id)

    job = asyncio.run(main())
    assert job.status == JobStatus.FAILED
    assert "missing" in (job.error or "")


def test_voice_job_splits_script_before_alignment(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)

    async def main():
        orch = make_orchestrator(tmp_path, settings)
        job = orch.create_and_run("voice", data=dict(VOICE_INPUT))
        return orch, await orch.wait(job.id)

    orch, job = asyncio.run(main())
    assert job.status == JobStatus.COMPLETED
    assert job.output["mode"] == "voice"
    assert job.output["metadata"]["artist"] == "Ann"
    steps = [s for s, st in _steps(orch, job.id) if st == StepStatus.COMPLETED]
    assert steps == ["fetch_record", "split_text", "transcribe", "align", "build_document"]
    split = [e for e in orch.logs(job.id) if e.step == "split_text" and e.status == StepStatus.COMPLETED][0]
    assert split.message == "3 lines"
    assert split.progress == 15


def test_voice_job_requires_transcript(tmp_path: Path) -> None:
    async def main():
        orch = make_orchestrator(tmp_path, make_settings(tmp_path))
        job = orch.create_and_run("voice", data={"audioUrl": "https://cdn.example.com/a.mp3"})
        return await orch.wait(job.id)

    job = asyncio.run(main())
    assert job.status == JobStatus.FAILED
    assert "transcript" in (job.error or "")


def test_shutdown_marks_running_jobs_failed(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)

    async def main():
        gate = asyncio.Event()
        transcription = FakeTranscription(gate=gate)
        orch = make_orchestrator(tmp_path, settings, transcription=transcription)
        job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
        await transcription.entered.wait()
        await orch.shutdown()
        return orch, job.id

    orch, job_id = asyncio.run(main())
    job = orch.get(job_id)
    assert job.status == JobStatus.FAILED
    assert job.error == "interrupted: service shutdown"
    assert orch.is_active(job_id) is False


def test_unreachable_notification_hook_leaves_job_completed(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, webhook_n8n_notification="https://hooks.example.com/notify")
    hits: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hits.append(request.url.host)
        raise httpx.ConnectError("refused", request=request)

    async def main():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            orch = make_orchestrator(tmp_path, settings, notifier=Notifier(client, settings))
            job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
            task = orch._tasks[job.id]
            await orch.wait(job.id)
            return task, orch.get(job.id)

    task, job = asyncio.run(main())
    assert task.exception() is None
    assert job.status == JobStatus.COMPLETED
    assert hits == ["hooks.example.com"]


def test_notification_summary_lists_steps(tmp_path: Path) -> None:
    notifier = FakeNotifier()

    async def main():
        orch = make_orchestrator(tmp_path, make_settings(tmp_path), notifier=notifier)
        job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
        return await orch.wait(job.id)

    asyncio.run(main())
    summary = notifier.sent[0][1]
    lines = summary["steps"].splitlines()
    assert lines[0] == "🔄 fetch_record"
    assert lines[1].startswith("✅ fetch_record (") and lines[1].endswith("s)")
    assert "✅ build_document" in summary["steps"]
    assert summary["time"]

    text = render_template("Done\n{steps}", summary)
    assert "✅ transcribe" in text


def test_format_steps_icons_and_empty() -> None:
    logs = [
        StepLog(job_id="j", seq=1, step="align", status=StepStatus.STARTED),
        StepLog(job_id="j", seq=2, step="align", status=StepStatus.FAILED, duration_ms=1340),
    ]
    assert format_steps(logs) == "🔄 align\n❌ align (1.3s)"
    assert format_steps([]) == "(none)"


def test_voice_document_prefers_final_audio(tmp_path: Path) -> None:
    data = dict(VOICE_INPUT, finalAudioUrl="https://cdn.example.com/note-final.mp3")

    async def main():
        orch = make_orchestrator(tmp_path, make_settings(tmp_path))
        job = orch.create_and_run("voice", data=data)
        return await orch.wait(job.id)

    job = asyncio.run(main())
    assert job.status == JobStatus.COMPLETED
    assert job.output["audio"]["url"] == "https://cdn.example.com/note-final.mp3"


def test_shutdown_before_first_step_fails_pending_job(tmp_path: Path) -> None:
    async def main():
        orch = make_orchestrator(tmp_path, make_settings(tmp_path))
        job = orch.create_and_run("video", data=dict(VIDEO_INPUT))
        await orch.shutdown()
        return orch, job.id

    orch, job_id = asyncio.run(main())
    job = orch.get(job_id)
    assert job.status == JobStatus.FAILED
    assert job.error == "interrupted: service shutdown"
    assert orch.is_active(job_id) is False
