from tracker.domain import (
    ActionKind,
    AppData,
    EntityKind,
    EntityRef,
    Income,
    Segment,
    SyncAction,
)
from tracker.transforms import (
    DEFAULT_COLORS,
    add_record,
    apply_action,
    assign_default_colors,
    clean_app_data,
    remove_record,
    replay,
    update_record,
    upsert_record,
)


def income(id, amount=100, title="Salary"):
    return Income(id=id, title=title, amount=amount, date="2024-01-01")


def action(n, kind, payload, entity=EntityKind.INCOME):
    return SyncAction(id=f"a{n}", kind=kind, entity=entity, payload=payload)


def test_record_helpers_do_not_mutate_input():
    records = (income("i1"), income("i2"))
    assert len(add_record(records, income("i3"))) == 3
    assert update_record(records, income("i1", 5))[0].amount == 5
    assert remove_record(records, "i1") == (income("i2"),)
    assert records == (income("i1"), income("i2"))


def test_upsert_reports_whether_target_existed():
    records = (income("i1"),)
    replaced, found = upsert_record(records, income("i1", 7))
    assert found and replaced == (income("i1", 7),)
    appended, found = upsert_record(records, income("i2"))
    assert not found and len(appended) == 2


def test_default_colors_follow_position():
    segments = [Segment(f"s{n}", f"S{n}", 10) for n in range(7)]
    segments[1] = Segment("s1", "S1", 10, "#000000")
    colored = assign_default_colors(segments)
    assert colored[0].color == DEFAULT_COLORS[0]
    assert colored[1].color == "#000000"
    assert colored[6].color == DEFAULT_COLORS[0]


def test_clean_app_data_drops_bad_entries():
    raw = {
        "incomes": [None, {"id": "i1", "title": "Salary", "amount": 10, "date": "2024-01-01"}, {"id": "bad"}],
        "expenses": "not a list",
    }
    data = clean_app_data(raw)
    assert [i.id for i in data.incomes] == ["i1"]
    assert data.expenses == ()
    assert data.segments == ()
    assert clean_app_data(None) == AppData.empty()


def test_clean_app_data_drops_nan_amounts():
    raw = {"incomes": [{"id": "i1", "title": "Salary", "amount": float("nan"), "date": "2024-01-01"}]}
    assert clean_app_data(raw).incomes == ()


def test_update_of_missing_record_is_appended_and_reported():
    data = AppData.empty()
    seen = []
    outcome = replay(data, [action(1, ActionKind.UPDATE, income("ghost"))], seen.append)
    assert outcome.data.incomes == (income("ghost"),)
    assert [a.target_id for a in outcome.missing_updates] == ["ghost"]
    assert seen == list(outcome.missing_updates)


def test_delete_of_missing_record_is_a_noop():
    data = AppData(incomes=(income("i1"),))
    new_data, found = apply_action(data, action(1, ActionKind.DELETE, EntityRef("zz")))
    assert not found
    assert new_data == data


def test_add_then_delete_against_snapshot_lacking_entity():
    snapshot = AppData(incomes=(income("keep"),))
    actions = [
        action(1, ActionKind.ADD, income("tmp")),
        action(2, ActionKind.DELETE, EntityRef("tmp")),
    ]
    result = replay(snapshot, actions).data
    assert [i.id for i in result.incomes] == ["keep"]
    # replaying the delete a second time changes nothing
    assert replay(result, actions[1:]).data == result


def test_replay_matches_direct_application():
    actions = [
        action(1, ActionKind.ADD, income("i1", 10)),
        action(2, ActionKind.ADD, income("i2", 20)),
        action(3, ActionKind.UPDATE, income("i1", 15)),
        action(4, ActionKind.ADD, income("i3", 30)),
        action(5, ActionKind.DELETE, EntityRef("i2")),
        action(6, ActionKind.UPDATE, income("i3", 35)),
    ]
    direct = ()
    for a in actions:
        if a.kind is ActionKind.ADD:
            direct = add_record(direct, a.payload)
        elif a.kind is ActionKind.UPDATE:
            direct = update_record(direct, a.payload)
        else:
            direct = remove_record(direct, a.target_id)

    replayed = replay(AppData.empty(), actions)
    assert replayed.data.incomes == direct
    assert replayed.missing_updates == ()


def test_replay_routes_actions_to_their_collection():
    seg = Segment("s1", "Food", 100)
    outcome = replay(AppData.empty(), [
        action(1, ActionKind.ADD, seg, EntityKind.SEGMENT),
        action(2, ActionKind.ADD, income("i1")),
    ])
    assert outcome.data.segments == (seg,)
    assert outcome.data.incomes == (income("i1"),)
    assert outcome.data.expenses == ()


def test_add_of_an_id_already_on_the_snapshot_keeps_ids_unique():
    snapshot = AppData(incomes=(income("i1", 10), income("i2", 20)))
    data, found = apply_action(snapshot, action(1, ActionKind.ADD, income("i1", 12)))
    assert found
    assert [(i.id, i.amount) for i in data.incomes] == [("i1", 12), ("i2", 20)]
