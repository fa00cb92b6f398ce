import json
import logging

from deckhand.logging.log import init_logging
from deckhand.observers.dispatcher import EventBus
from deckhand.observers.events import LockWaiting, PlanComputed, new_ctx
from deckhand.observers.jsonfile import JsonFileObserver
from deckhand.observers.logger import LoggerObserver
from deckhand.utils.context import DeployContext

from fakes import Capture


class Exploding:
    def notify(self, ev):
        raise RuntimeError("observer bug")


def test_bus_keeps_going_when_an_observer_fails():
    cap = Capture()
    bus = EventBus([Exploding(), cap])
    bus.emit(LockWaiting(lock="release/web", **new_ctx("dev", None)))
    assert cap.kinds() == ["LockWaiting"]


def test_context_stamps_run_id_and_env():
    cap = Capture()
    ctx = DeployContext.create(env="staging", kube_context="kind-ci", observers=[cap], run_id="run-1")
    ctx.emit(LockWaiting, lock="release/web")
    [ev] = cap.events
    assert ev.run_id == "run-1"
    assert ev.env == "staging"
    assert ev.context == "kind-ci"
    assert ev.ts.endswith("Z")


def test_json_file_observer_writes_lines(tmp_path):
    path = tmp_path / "events" / "run.jsonl"
    ob = JsonFileObserver(path)
    ctx = new_ctx("dev", "kind-test", run_id="r")
    ob.notify(PlanComputed(release="web", revision=2, phases=["create-pending-release"], operations=1, **ctx))
    ob.notify(LockWaiting(lock="release/web", **ctx))

    lines = [json.loads(l) for l in path.read_text().splitlines()]
    assert [l["type"] for l in lines] == ["PlanComputed", "LockWaiting"]
    assert lines[0]["phases"] == ["create-pending-release"]
    assert lines[0]["run_id"] == "r"


def test_logger_observer(caplog):
    caplog.set_level(logging.INFO, logger="deckhand.events-test")
    ob = LoggerObserver(logging.getLogger("deckhand.events-test"))
    ob.notify(LockWaiting(lock="release/web", **new_ctx("dev", None)))
    assert "[EVENT] LockWaiting" in caplog.text
    assert "lock=release/web" in caplog.text


def test_init_logging_writes_run_file(tmp_path):
    logger, run_id, log_path = init_logging(base_dir=tmp_path, name="deckhand-logtest", run_id="abc")
    try:
        logger.debug("[plan] hello")
        for h in logger.handlers:
            h.flush()
        assert run_id == "abc"
        assert log_path.parent == tmp_path
        text = log_path.read_text()
        assert "deckhand run abc" in text
        assert "[plan] hello" in text
    finally:
        for h in list(logger.handlers):
            h.close()
        logger.handlers.clear()
