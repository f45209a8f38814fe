from concurrent.futures import ThreadPoolExecutor

from conftest import STUDY_A, DummyResp, make_dicom_bytes, multipart_body, status_json
from structlog.testing import capture_logs

from milvue_batch.api import client as client_mod
from milvue_batch.errors import TransportError
from milvue_batch.models import StudyState
from milvue_batch.pipelines.events import EventBus
from milvue_batch.pipelines.inventory import build_inventory, discover_files
from milvue_batch.pipelines.worker import StudyWorker


def _study(root):
    return build_inventory(discover_files([root]))[STUDY_A]


def _stub_ok(monkeypatch):
    def post_study(base_url, api_key, bundle, **_):
        b"".join(bundle.body)
        return DummyResp(200)

    monkeypatch.setattr(client_mod, "post_study", post_study)
    monkeypatch.setattr(
        client_mod,
        "get_study_status",
        lambda base, key, uid, **k: DummyResp(200, json_data=status_json(uid, "done")),
    )
    monkeypatch.setattr(client_mod, "get_study_results", lambda *a, **k: DummyResp(200))


def test_lifecycle_states(monkeypatch, dicom_tree, run_config) -> None:
    _stub_ok(monkeypatch)
    with ThreadPoolExecutor(2) as pool, EventBus() as bus:
        worker = StudyWorker(_study(dicom_tree), run_config, bus, pool)
        assert worker.state is StudyState.READY
        assert worker.upload()
        assert worker.state is StudyState.WAITING_TO_POLL
        outcome = worker.finish()
    assert outcome.state is StudyState.DONE
    assert bus.summary().downloaded == 1


def test_cancelled_worker_never_uploads(monkeypatch, dicom_tree, run_config) -> None:
    calls = []
    monkeypatch.setattr(client_mod, "post_study", lambda *a, **k: calls.append(a))
    with ThreadPoolExecutor(1) as pool, EventBus() as bus:
        worker = StudyWorker(_study(dicom_tree), run_config, bus, pool)
        worker.cancel()
        outcome = worker.run()
    assert calls == []
    assert outcome.failed
    assert "cancelled" in outcome.error
    assert bus.summary().uploaded == 0


def test_errors_are_logged_with_study_key(monkeypatch, dicom_tree, run_config) -> None:
    def refuse(*a, **k):
        raise TransportError("connection refused")

    monkeypatch.setattr(client_mod, "post_study", refuse)
    with capture_logs() as logs, ThreadPoolExecutor(1) as pool, EventBus() as bus:
        outcome = StudyWorker(_study(dicom_tree), run_config, bus, pool).run()

    assert outcome.state is StudyState.FAILED
    failures = [e for e in logs if e["event"] == "study failed"]
    assert failures == [
        {
            "event": "study failed",
            "study": STUDY_A,
            "stage": "upload",
            "error": "connection refused",
            "error_type": "TransportError",
            "log_level": "error",
        }
    ]


def test_cancel_during_download_fails_study(monkeypatch, dicom_tree, run_config) -> None:
    _stub_ok(monkeypatch)
    payload = make_dicom_bytes(STUDY_A, "1.2.3.4.100.77")
    workers = []

    def results_then_cancel(*a, **k):
        workers[0].cancel()
        return DummyResp(
            200,
            content=multipart_body("r", [("x.dcm", payload)]),
            headers={"Content-Type": "multipart/related; boundary=r"},
        )

    monkeypatch.setattr(client_mod, "get_study_results", results_then_cancel)
    with ThreadPoolExecutor(2) as pool, EventBus() as bus:
        workers.append(StudyWorker(_study(dicom_tree), run_config, bus, pool))
        outcome = workers[0].run()

    assert outcome.state is StudyState.FAILED
    assert "cancelled" in outcome.error
    assert outcome.written == ()
    assert not (run_config.output_dir / STUDY_A).exists()
    summary = bus.summary()
    assert (summary.predicted, summary.downloaded) == (1, 0)


def test_cancel_after_empty_download_still_fails(monkeypatch, dicom_tree, run_config) -> None:
    _stub_ok(monkeypatch)
    workers = []

    def cancel_then_empty(*a, **k):
        workers[0].cancel()
        return DummyResp(200)

    monkeypatch.setattr(client_mod, "get_study_results", cancel_then_empty)
    with ThreadPoolExecutor(2) as pool, EventBus() as bus:
        workers.append(StudyWorker(_study(dicom_tree), run_config, bus, pool))
        outcome = workers[0].run()

    assert outcome.state is StudyState.FAILED
    assert bus.summary().downloaded == 0
