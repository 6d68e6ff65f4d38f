import json

import pytest

from retro_insight_pipeline.app.history import (
    CHART_DATA_KEY,
    CHART_TITLE_KEY,
    CHART_TYPE_KEY,
    HISTORY_KEY,
    DashboardState,
    StateStorage,
)
from retro_insight_pipeline.app.schemas import ChartPayload


def test_storage_get_set(storage):
    assert storage.get("missing", "default") == "default"
    storage.set("a", [1, 2])
    assert storage.get("a") == [1, 2]


def test_storage_update_writes_keys_together(storage, monkeypatch):
    storage.update({"a": 1, "b": 2})
    assert (storage.get("a"), storage.get("b")) == (1, 2)

    saves = []
    original_save = storage._save
    monkeypatch.setattr(storage, "_save", lambda data: saves.append(dict(data)) or original_save(data))
    storage.update({"a": 10, "b": 20})

    assert len(saves) == 1
    assert (storage.get("a"), storage.get("b")) == (10, 20)


def test_storage_refuses_non_json_numbers(storage):
    storage.set("a", 1)
    with pytest.raises(ValueError):
        storage.set("a", float("inf"))
    assert storage.get("a") == 1


def test_storage_ignores_file_with_nan_tokens(tmp_path):
    path = tmp_path / "state.json"
    path.write_text('{"chartData": [{"name": "A", "value": NaN}]}', encoding="utf-8")
    assert StateStorage(str(path)).get("chartData", []) == []


def test_storage_ignores_corrupt_file(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    assert StateStorage(str(path)).get("anything", 5) == 5


def test_fresh_state_has_defaults(state):
    assert state.history == []
    assert state.chart == ChartPayload()
    assert state.chart_type == "bar"
    assert state.version == 0


def test_record_answer_prepends(state):
    for i in range(5):
        state.record_answer(f"q{i}", f"a{i}")

    assert len(state.history) == 5
    for i in range(5):
        assert state.history[5 - 1 - i].question == f"q{i}"
    assert state.storage.get(HISTORY_KEY)[0] == {"question": "q4", "answer": "a4"}


def test_history_survives_reload(storage, state):
    state.record_answer("first", "one")
    state.record_answer("second", "two")

    reloaded = DashboardState(storage).load()

    assert [e.question for e in reloaded.history] == ["second", "first"]


def test_history_limit_caps_log(storage):
    state = DashboardState(storage, history_limit=2).load()
    for i in range(4):
        state.record_answer(f"q{i}", "a")
    assert [e.question for e in state.history] == ["q3", "q2"]


def test_history_limit_from_env(storage, monkeypatch):
    monkeypatch.setenv("HISTORY_LIMIT", "1")
    state = DashboardState(storage).load()
    state.record_answer("q0", "a")
    state.record_answer("q1", "a")
    assert [e.question for e in state.history] == ["q1"]


def test_record_chart_survives_reload(storage, state):
    payload = ChartPayload(title="Mood", series=[{"name": "A", "value": 2}, {"name": "B", "value": 0.5}])
    state.record_chart(payload)

    reloaded = DashboardState(storage).load()

    assert reloaded.chart.title == "Mood"
    assert reloaded.chart.series == payload.series
    assert storage.get(CHART_TITLE_KEY) == "Mood"
    assert storage.get(CHART_DATA_KEY) == [{"name": "A", "value": 2}, {"name": "B", "value": 0.5}]


def test_new_chart_replaces_previous(state):
    state.record_chart(ChartPayload(title="Old", series=[{"name": "A", "value": 1}, {"name": "B", "value": 2}]))
    state.record_chart(ChartPayload(title="New", series=[{"name": "C", "value": 3}]))
    assert state.chart.title == "New"
    assert [p.name for p in state.chart.series] == ["C"]


def test_chart_type_is_independent_of_chart(storage, state):
    state.record_chart_type("pie")
    state.record_chart(ChartPayload(title="Any", series=[]))

    reloaded = DashboardState(storage).load()

    assert reloaded.chart_type == "pie"
    assert storage.get(CHART_TYPE_KEY) == "pie"


def test_unknown_chart_type_rejected(state):
    with pytest.raises(ValueError):
        state.record_chart_type("radar")
    assert state.chart_type == "bar"


def test_malformed_stored_values_fall_back_to_defaults(tmp_path):
    path = tmp_path / "state.json"
    path.write_text(json.dumps({
        HISTORY_KEY: [{"question": "only question"}],
        CHART_DATA_KEY: [{"name": "A", "value": "not a number"}],
        CHART_TYPE_KEY: "hexagon",
    }), encoding="utf-8")

    state = DashboardState(StateStorage(str(path))).load()

    assert state.history == []
    assert state.chart == ChartPayload()
    assert state.chart_type == "bar"


def test_version_increments_on_every_write(state):
    state.record_answer("q", "a")
    state.record_chart(ChartPayload())
    state.record_chart_type("line")
    assert state.version == 3


def test_single_request_slot(state):
    assert state.try_begin_request()
    assert state.busy
    assert not state.try_begin_request()
    state.end_request()
    assert not state.busy
    assert state.try_begin_request()
    state.end_request()


def test_failed_chart_write_leaves_title_and_series_consistent(storage, state, monkeypatch):
    state.record_chart(ChartPayload(title="Before", series=[{"name": "A", "value": 1}]))

    def broken_save(data):
        raise OSError("disk full")

    original_save = storage._save
    monkeypatch.setattr(storage, "_save", broken_save)
    with pytest.raises(OSError):
        state.record_chart(ChartPayload(title="After", series=[{"name": "B", "value": 2}]))
    monkeypatch.setattr(storage, "_save", original_save)

    reloaded = DashboardState(storage).load()
    assert reloaded.chart.title == "Before"
    assert [p.name for p in reloaded.chart.series] == ["A"]


def test_chart_state_reports_version(state):
    state.record_chart_type("area")
    assert state.chart_state().version == state.version == 1
