from types import SimpleNamespace

from taskseries.task_template import TaskTemplate, build_task_template


def _entity(**overrides):
    values = dict(
        title="Water plants",
        description="balcony",
        status="todo",
        priority=2,
        task_type="reminder",
        goal_id=None,
        note=None,
        is_backlog=False,
        skipped=False,
        plan_period=None,
        start_time=1_000,
        end_time=4_000,
        tags=[SimpleNamespace(id=3), SimpleNamespace(id=5)],
        series=SimpleNamespace(color="#112233"),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_defaults_without_inputs():
    t = build_task_template()
    assert t == TaskTemplate()
    assert t.status == "todo"
    assert t.priority == 1
    assert t.duration_ms is None


def test_payload_overrides_entity():
    t = build_task_template(entity=_entity(), payload={"title": "Feed cat", "priority": 5})
    assert t.title == "Feed cat"
    assert t.priority == 5
    assert t.description == "balcony"
    assert t.tag_ids == (3, 5)
    assert t.color == "#112233"


def test_moving_start_keeps_entity_duration():
    t = build_task_template(entity=_entity(), payload={"start_time": 10_000})
    assert t.start_time == 10_000
    assert t.end_time == 13_000


def test_explicit_end_time_wins_over_duration():
    t = build_task_template(entity=_entity(), payload={"start_time": 10_000, "end_time": 10_500})
    assert t.duration_ms == 500


def test_payload_tag_ids_replace_entity_tags():
    t = build_task_template(entity=_entity(), payload={"tag_ids": [9]})
    assert t.tag_ids == (9,)


def test_unknown_payload_keys_are_ignored():
    t = build_task_template(payload={"title": "x", "recurrence": {"frequency": "daily"}, "due_time": 5})
    assert t.title == "x"


def test_occurrence_values_shift_end_time():
    t = TaskTemplate(title="Run", start_time=0, end_time=1_800_000)
    values = t.occurrence_values(86_400_000)
    assert values["start_time"] == 86_400_000
    assert values["end_time"] == 86_400_000 + 1_800_000
    assert values["title"] == "Run"
    assert "due_time" not in values


def test_occurrence_values_without_duration_leave_end_open():
    values = TaskTemplate(title="Run", start_time=0).occurrence_values(5)
    assert values["end_time"] is None
