import asyncio
import json


def _task(db_session, task_id):
    from backend.jobhound.models.background_task import BackgroundTask

    db_session.expire_all()
    return db_session.get(BackgroundTask, task_id)


def test_task_runs_once(db_session, monkeypatch):
    from backend.jobhound.services import task_queue

    seen = []

    async def _handler(payload):
        seen.append(payload)

    monkeypatch.setitem(task_queue._HANDLERS, "test_echo", _handler)
    task = task_queue.enqueue_task(db_session, kind="test_echo", payload={"n": 1})

    assert asyncio.run(task_queue.run_task(task.id)) == "done"
    assert asyncio.run(task_queue.run_task(task.id)) is None
    assert seen == [{"n": 1}]

    row = _task(db_session, task.id)
    assert row.status == "done"
    assert row.attempts == 1
    assert row.finished_at is not None


def test_failing_handler_is_recorded_not_retried(db_session, monkeypatch):
    from backend.jobhound.services import task_queue

    async def _handler(payload):
        raise RuntimeError("boom")

    monkeypatch.setitem(task_queue._HANDLERS, "test_boom", _handler)
    task = task_queue.enqueue_task(db_session, kind="test_boom", payload={})

    assert asyncio.run(task_queue.run_task(task.id)) == "failed"
    row = _task(db_session, task.id)
    assert row.status == "failed"
    assert row.last_error == "RuntimeError: boom"
    assert task_queue.recover_pending_tasks() == []


def test_unknown_kind_fails(db_session):
    from backend.jobhound.services import task_queue

    task = task_queue.enqueue_task(db_session, kind="nobody_handles_this", payload={})
    assert asyncio.run(task_queue.run_task(task.id)) == "failed"
    assert "No handler registered" in _task(db_session, task.id).last_error


def test_recovery_requeues_interrupted_tasks(db_session, monkeypatch):
    from backend.jobhound.models.background_task import BackgroundTask
    from backend.jobhound.services import task_queue

    ran = []

    async def _handler(payload):
        ran.append(payload["n"])

    monkeypatch.setitem(task_queue._HANDLERS, "test_recover", _handler)
    queued = task_queue.enqueue_task(db_session, kind="test_recover", payload={"n": 1})
    running = task_queue.enqueue_task(db_session, kind="test_recover", payload={"n": 2})
    done = task_queue.enqueue_task(db_session, kind="test_recover", payload={"n": 3})
    db_session.get(BackgroundTask, running.id).status = "running"
    db_session.get(BackgroundTask, done.id).status = "done"
    db_session.commit()

    assert task_queue.recover_pending_tasks() == [queued.id, running.id]
    assert _task(db_session, running.id).status == "queued"

    results = asyncio.run(task_queue.run_pending_tasks())
    assert results == {queued.id: "done", running.id: "done"}
    assert ran == [1, 2]


def test_recovered_scan_task_completes_scan(client, db_session, seed_scan_inputs, enable_ai, monkeypatch, scan_result):
    """A scan whose process died mid-analysis is finished by startup recovery."""
    import backend.jobhound.services.scan_runner as scan_runner
    from backend.jobhound.models.job import Job
    from backend.jobhound.models.job_scan import JobScan
    from backend.jobhound.models.resume import Resume
    from backend.jobhound.services import task_queue
    from backend.jobhound.services.ai_client import GeminiMeta
    from backend.jobhound.services.credits import admit_scan

    async def _analyze(inp):
        return json.dumps(scan_result), GeminiMeta(model="m", latency_ms=1, status_code=200, retries=0)

    monkeypatch.setattr(scan_runner, "analyze_resume_against_job", _analyze)
    seeded = seed_scan_inputs()
    job = db_session.get(Job, seeded.job_id)
    resume = db_session.get(Resume, seeded.resume_id)
    scan, _ = admit_scan(db_session, user_id=seeded.user_id, job=job, resume=resume)
    task = task_queue.enqueue_task(db_session, kind=scan_runner.SCAN_TASK_KIND, payload={"scan_id": scan.id})

    asyncio.run(task_queue.run_pending_tasks())

    db_session.expire_all()
    assert db_session.get(JobScan, scan.id).status == "completed"
    assert _task(db_session, task.id).status == "done"


def test_scan_task_for_missing_resume_marks_error(client, db_session, seed_scan_inputs, enable_ai):
    from backend.jobhound.models.job import Job
    from backend.jobhound.models.job_scan import JobScan
    from backend.jobhound.models.resume import Resume
    from backend.jobhound.services import task_queue
    from backend.jobhound.services.credits import admit_scan
    from backend.jobhound.services.scan_runner import SCAN_TASK_KIND

    seeded = seed_scan_inputs()
    job = db_session.get(Job, seeded.job_id)
    resume = db_session.get(Resume, seeded.resume_id)
    scan, _ = admit_scan(db_session, user_id=seeded.user_id, job=job, resume=resume)
    scan_id = scan.id
    db_session.delete(resume)
    db_session.commit()

    task = task_queue.enqueue_task(db_session, kind=SCAN_TASK_KIND, payload={"scan_id": scan_id})
    assert asyncio.run(task_queue.run_task(task.id)) == "done"

    db_session.expire_all()
    scan = db_session.get(JobScan, scan_id)
    assert scan.status == "error"
    assert scan.error_message == "Resume no longer exists"
