import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from deckhand.errors import ReleaseNameValidationError, ReleaseNotFoundError, StorageError
from deckhand.release.history import History
from deckhand.release.release import DeployType, ReleaseStatus, validate_release_name
from deckhand.release.storage import MemoryStorage

from fakes import release

S = ReleaseStatus


def _history(statuses, limit=10, storage=None):
    storage = storage or MemoryStorage()
    h = History("web", "apps", storage, history_limit=limit)
    for i, st in enumerate(statuses, start=1):
        h.create_release(release(revision=i, status=st))
    return h


def test_empty_history():
    h = _history([])
    assert h.empty()
    assert h.next_revision() == 1
    assert h.last_release() is None
    assert h.last_deployed_release() is None
    assert h.deploy_type_for_next_release() == DeployType.INITIAL


def test_last_deployed_scans_back_past_failures():
    h = _history([S.SUPERSEDED, S.DEPLOYED, S.FAILED, S.FAILED])
    assert h.last_deployed_release().revision == 2
    assert h.deploy_type_for_next_release() == DeployType.UPGRADE
    assert not h.last_release_is_deployed()
    assert h.next_revision() == 5


def test_uninstall_stops_the_scan():
    h = _history([S.DEPLOYED, S.UNINSTALLED, S.FAILED])
    assert h.last_deployed_release() is None
    assert h.deploy_type_for_next_release() == DeployType.INSTALL


def test_last_deployed_except_last():
    h = _history([S.SUPERSEDED, S.DEPLOYED])
    assert h.last_deployed_release().revision == 2
    assert h.last_deployed_release_except_last().revision == 1


def test_find_all_deployed():
    h = _history([S.DEPLOYED, S.UNINSTALLED, S.SUPERSEDED, S.FAILED, S.DEPLOYED])
    assert [r.revision for r in h.find_all_deployed()] == [3, 5]


def test_load_reads_storage():
    storage = MemoryStorage()
    _history([S.SUPERSEDED, S.DEPLOYED], storage=storage)
    storage.create(release(name="other", revision=1))

    loaded = History.load("web", "apps", storage)
    assert [r.revision for r in loaded.releases] == [1, 2]
    assert loaded.last_release_is_deployed()


def test_revision_must_increase():
    h = _history([S.DEPLOYED])
    with pytest.raises(StorageError):
        h.create_release(release(revision=1, status=S.PENDING_UPGRADE))


def test_update_unknown_revision():
    h = _history([S.DEPLOYED])
    with pytest.raises(ReleaseNotFoundError) as ei:
        h.update_release(release(revision=7))
    assert 'release "web" (namespace "apps", revision "7") not found in history' in str(ei.value)


def test_history_limit_prunes_oldest_non_deployed():
    storage = MemoryStorage()
    h = _history([S.DEPLOYED, S.FAILED, S.FAILED], limit=2, storage=storage)
    assert [r.revision for r in h.releases] == [1, 3]
    assert sorted(r.revision for r in storage.query({"name": "web"})) == [1, 3]


def test_history_limit_zero_keeps_everything():
    h = _history([S.FAILED] * 12, limit=0)
    assert len(h.releases) == 12


def test_build_next_release():
    h = _history([S.DEPLOYED])
    nxt = h.build_next_release(values={"replicas": 2}, notes="hi", chart_name="web", chart_version="1.0.0")
    assert nxt.revision == 2
    assert nxt.deploy_type == DeployType.UPGRADE
    assert nxt.status == S.PENDING_UPGRADE
    assert nxt.values == {"replicas": 2}
    assert nxt.chart_name == "web"


def test_rollback_release_is_pending_rollback():
    h = _history([S.DEPLOYED])
    assert h.build_next_release(deploy_type=DeployType.ROLLBACK).status == S.PENDING_ROLLBACK


@pytest.mark.parametrize("name", ["", "Web", "web_app", "-web", "a" * 54])
def test_invalid_release_names(name):
    with pytest.raises(ReleaseNameValidationError):
        validate_release_name(name)


def test_valid_release_names():
    validate_release_name("web")
    validate_release_name("web-2.canary")
    validate_release_name("a" * 53)


def test_delete_release():
    storage = MemoryStorage()
    h = _history([S.SUPERSEDED, S.DEPLOYED], storage=storage)
    h.delete_release(1)
    assert [r.revision for r in h.releases] == [2]
    assert [r.revision for r in storage.query({"name": "web"})] == [2]
    with pytest.raises(ReleaseNotFoundError):
        h.delete_release(1)


class CountingStorage(MemoryStorage):
    """Records how many writes are in flight at once."""

    def __init__(self):
        super().__init__()
        self.inflight = 0
        self.peak = 0
        self._count = threading.Lock()

    def _write(self, fn, rel):
        with self._count:
            self.inflight += 1
            self.peak = max(self.peak, self.inflight)
        try:
            time.sleep(0.001)
            fn(rel)
        finally:
            with self._count:
                self.inflight -= 1

    def create(self, rel):
        self._write(super().create, rel)

    def update(self, rel):
        self._write(super().update, rel)


def test_concurrent_writes_are_serialized():
    storage = CountingStorage()
    h = History("web", "apps", storage, history_limit=0)

    def create(rev):
        try:
            h.create_release(release(revision=rev, status=S.PENDING_INSTALL))
        except StorageError:
            return None
        return rev

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(create, range(1, 41)))

    accepted = sorted(r for r in results if r is not None)
    revs = [r.revision for r in h.releases]
    assert revs == accepted
    assert revs == sorted(set(revs))
    assert revs[-1] == 40
    assert sorted(r.revision for r in storage.query({"name": "web"})) == revs
    assert storage.peak == 1

    with pytest.raises(StorageError):
        h.create_release(release(revision=40, status=S.PENDING_UPGRADE))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda rev: h.update_release(release(revision=rev, status=S.SUPERSEDED)), revs))

    assert {r.status for r in h.releases} == {S.SUPERSEDED}
    assert {r.status for r in storage.query({"name": "web"})} == {S.SUPERSEDED}
    assert storage.peak == 1
