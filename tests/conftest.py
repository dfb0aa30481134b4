import dataclasses

import pytest

from dcm import db
from dcm.supervisor import Supervisor

from fakes import FakeProvider, FakeRuntime, make_def


@pytest.fixture(autouse=True)
def event_db(tmp_path, monkeypatch):
    """Point the event log at an isolated sqlite file for every test."""
    monkeypatch.setattr(db, "settings", dataclasses.replace(db.settings, db_path=str(tmp_path / "events.db")))
    db.init_db()
    return db


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def provider():
    return FakeProvider(make_def("web", "v1"))


@pytest.fixture
def supervisor_factory(runtime, provider):
    made: list[Supervisor] = []

    def _make(name="web", definition=None, registry=None, reload_interval_s=3600.0, rt=None, prov=None):
        sup = Supervisor(
            name,
            definition or make_def(name, "v1"),
            runtime=rt or runtime,
            provider=prov or provider,
            registry=registry,
            reload_interval_s=reload_interval_s,
        )
        made.append(sup)
        return sup

    yield _make

    for sup in made:
        sup.close()
        sup.wait_closed(2)
