import threading

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine, select

from app.core.errors import InfrastructureError, NotFoundError, ValidationError
from app.models.key_step import KeyStep
from app.schemas.key_step import KeyStepCreate, KeyStepUpdate
from app.services import key_steps
from app.services.key_steps import Child, Root, placement_for
from tests.factories import add_project


def _root(project_id, title="Design", **fields):
    fields.setdefault("start_date", "2024-02-01")
    fields.setdefault("end_date", "2024-03-01")
    return KeyStepCreate(project_id=project_id, title=title, **fields)


def _child(parent_id, title, **fields):
    fields.setdefault("start_date", "2024-02-05")
    fields.setdefault("end_date", "2024-02-20")
    return KeyStepCreate(parent_key_step_id=parent_id, title=title, **fields)


@pytest.fixture()
def project(db_session):
    return add_project(db_session)


def test_placement_is_explicit():
    assert placement_for(KeyStepCreate(project_id="p", phase=4)) == Root(phase=4)
    assert placement_for(KeyStepCreate(project_id="p", phase="x")) == Root(phase=1)
    assert placement_for(KeyStepCreate(project_id="p")) == Root(phase=1)
    assert placement_for(KeyStepCreate(parent_key_step_id="k1", phase=7)) == Child(parent_id="k1")


def test_root_honors_caller_phase_or_defaults_to_one(db_session, project):
    explicit = key_steps.create_key_step(db_session, _root(project.id, phase=3))
    default = key_steps.create_key_step(db_session, _root(project.id, title="Build"))
    invalid = key_steps.create_key_step(db_session, _root(project.id, title="Test", phase=-2))

    assert (explicit.phase, default.phase, invalid.phase) == (3, 1, 1)
    assert explicit.parent_key_step_id is None


def test_children_get_consecutive_phases(db_session, project):
    root = key_steps.create_key_step(db_session, _root(project.id))

    phases = [
        key_steps.create_key_step(db_session, _child(root.id, title, phase=9)).phase
        for title in ("Survey", "Drawings", "Approval")
    ]

    assert phases == [1, 2, 3]


def test_child_phase_counts_only_siblings(db_session, project):
    first = key_steps.create_key_step(db_session, _root(project.id, title="A"))
    second = key_steps.create_key_step(db_session, _root(project.id, title="B", phase=2))
    key_steps.create_key_step(db_session, _child(first.id, "A1"))
    key_steps.create_key_step(db_session, _child(first.id, "A2"))

    assert key_steps.create_key_step(db_session, _child(second.id, "B1")).phase == 1


def test_child_inherits_project_of_parent(db_session, project):
    root = key_steps.create_key_step(db_session, _root(project.id))
    child = key_steps.create_key_step(db_session, _child(root.id, "Survey"))

    assert child.project_id == project.id
    assert child.parent_key_step_id == root.id


def test_grandchild_is_rejected(db_session, project):
    root = key_steps.create_key_step(db_session, _root(project.id))
    child = key_steps.create_key_step(db_session, _child(root.id, "Survey"))

    with pytest.raises(ValidationError) as exc:
        key_steps.create_key_step(db_session, _child(child.id, "Too deep"))

    assert exc.value.errors[0].field == "parent_key_step_id"


def test_unknown_parent_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        key_steps.create_key_step(db_session, _child("missing", "Orphan"))


@pytest.mark.parametrize(
    "fields, field",
    [
        ({"title": "  "}, "title"),
        ({"start_date": "2024-13-45"}, "start_date"),
        ({"start_date": None}, "start_date"),
        ({"start_date": "2024-05-01", "end_date": "2024-04-01"}, "dates"),
        ({"status": "blocked"}, "status"),
    ],
)
def test_invalid_input_is_rejected_before_write(db_session, project, fields, field):
    with pytest.raises(ValidationError) as exc:
        key_steps.create_key_step(db_session, _root(project.id, **fields))

    assert field in [e.field for e in exc.value.errors]
    assert db_session.exec(select(KeyStep)).all() == []


def test_update_replaces_fields_and_normalizes_dates(db_session, project):
    step = key_steps.create_key_step(db_session, _root(project.id, header="Phase A", phase=2))

    updated = key_steps.update_key_step(db_session, step.id, KeyStepUpdate(
        title="Detailed design",
        start_date="2024-04-01T09:30:00Z",
        end_date="2024-04-30",
        status="completed",
    ))

    assert updated.title == "Detailed design"
    assert updated.header is None
    assert updated.start_date == "2024-04-01"
    assert updated.status == "completed"
    assert updated.phase == 2


def test_update_rejects_non_positive_phase(db_session, project):
    step = key_steps.create_key_step(db_session, _root(project.id))

    with pytest.raises(ValidationError) as exc:
        key_steps.update_key_step(db_session, step.id, KeyStepUpdate(
            title="Design", start_date="2024-02-01", end_date="2024-03-01", phase=0,
        ))

    assert exc.value.errors[0].message == "Phase must be a positive integer"


def test_update_of_missing_step_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        key_steps.update_key_step(db_session, "missing", KeyStepUpdate(
            title="x", start_date="2024-01-01", end_date="2024-01-02",
        ))


def test_delete_cascades_one_level(db_session, project):
    k1 = key_steps.create_key_step(db_session, _root(project.id, title="K1"))
    key_steps.create_key_step(db_session, _child(k1.id, "K1a"))
    key_steps.create_key_step(db_session, _child(k1.id, "K1b"))
    other = key_steps.create_key_step(db_session, _root(project.id, title="K2", phase=2))
    k1_id, other_id = k1.id, other.id

    removed = key_steps.delete_key_step(db_session, k1_id)

    assert removed == 3
    assert db_session.exec(select(KeyStep).where(KeyStep.parent_key_step_id == k1_id)).all() == []
    assert db_session.get(KeyStep, k1_id) is None
    assert [s.id for s in db_session.exec(select(KeyStep)).all()] == [other_id]


def test_clone_copies_children_onto_new_parent(db_session, project):
    source = key_steps.create_key_step(db_session, _root(project.id, title="K1", requirements="Permits"))
    for title in ("K1a", "K1b", "K1c"):
        key_steps.create_key_step(db_session, _child(source.id, title))
    source_id = source.id
    before = {s.id for s in db_session.exec(select(KeyStep)).all()}

    clone = key_steps.clone_key_step(db_session, source_id, new_title="K1 (copy)")

    children = key_steps.list_children(db_session, clone.id)
    new_rows = [s for s in db_session.exec(select(KeyStep)).all() if s.id not in before]
    assert clone.title == "K1 (copy)"
    assert clone.requirements == "Permits"
    assert clone.parent_key_step_id is None
    assert [c.title for c in children] == ["K1a", "K1b", "K1c"]
    assert [c.phase for c in children] == [1, 2, 3]
    assert len(new_rows) == 4
    assert all(s.parent_key_step_id != source_id for s in new_rows)
    assert len(key_steps.list_children(db_session, source_id)) == 3


def test_clone_without_title_keeps_source_title(db_session, project):
    source = key_steps.create_key_step(db_session, _root(project.id, title="K1"))

    assert key_steps.clone_key_step(db_session, source.id, new_title="  ").title == "K1"


def test_list_for_project_orders_roots_then_children(db_session, project):
    second = key_steps.create_key_step(db_session, _root(project.id, title="Build", phase=2))
    first = key_steps.create_key_step(db_session, _root(project.id, title="Design", phase=1))
    key_steps.create_key_step(db_session, _child(second.id, "Build-1"))
    key_steps.create_key_step(db_session, _child(first.id, "Design-1"))
    key_steps.create_key_step(db_session, _child(first.id, "Design-2"))

    titles = [s.title for s in key_steps.list_for_project(db_session, project.id)]

    assert titles == ["Design", "Design-1", "Design-2", "Build", "Build-1"]


def test_failed_cascade_leaves_tree_intact(db_session, engine, project):
    root = key_steps.create_key_step(db_session, _root(project.id, title="K1"))
    key_steps.create_key_step(db_session, _child(root.id, "K1a"))
    key_steps.create_key_step(db_session, _child(root.id, "K1b"))
    root_id = root.id

    def fail_parent_delete(conn, cursor, statement, parameters, context, executemany):
        if statement.startswith("DELETE FROM key_steps WHERE key_steps.id "):
            raise OperationalError(statement, parameters, Exception("disk I/O error"))

    event.listen(engine, "before_cursor_execute", fail_parent_delete)
    try:
        with pytest.raises(InfrastructureError):
            key_steps.delete_key_step(db_session, root_id)
    finally:
        event.remove(engine, "before_cursor_execute", fail_parent_delete)

    assert db_session.get(KeyStep, root_id) is not None
    assert sorted(s.title for s in key_steps.list_children(db_session, root_id)) == ["K1a", "K1b"]
    assert len(db_session.exec(select(KeyStep)).all()) == 3


def test_concurrent_children_get_distinct_consecutive_phases(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'steps.db'}", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    with Session(engine) as db:
        root_id = key_steps.create_key_step(db, _root(add_project(db).id)).id
    errors = []

    def worker(n):
        try:
            with Session(engine) as db:
                key_steps.create_key_step(db, _child(root_id, f"Step {n}"))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with Session(engine) as db:
        phases = sorted(s.phase for s in key_steps.list_children(db, root_id))
    assert phases == list(range(1, 9))
    engine.dispose()
