import pytest
from plan_fixtures import exam, rules
from plan_manager import PlanManager


@pytest.fixture
def exams():
    return [
        exam("Algorithms", "A|B", availability="Enabled"),
        exam("Compilers", "A|B", credits=9),
        exam("Databases", "B"),
        exam("Graphics", "C"),
        exam("Vision", "1", variants=("FBA",)),
        exam("Robotics", "2|C", variants=("FBA", "F94"), availability="Biennial (Even)"),
    ]


@pytest.fixture
def pm(exams):
    manager = PlanManager(exams, rules(), year="2025/2026", curriculum="F94")
    manager.init_defaults()
    return manager


def table_of(manager, item_id):
    return manager.get_item(item_id)["table"]


class TestInitDefaults:
    def test_seeds_fixed_items(self, pm):
        assert [p["id"] for p in pm.plan] == ["fixed-english-placement-test", "fixed-thesis"]
        assert all(p["kind"] == "fixed" and p["table"] == "Obbligatori" for p in pm.plan)
        assert pm.report["tables"]["Obbligatori"] == {"current": 42, "min": 42}

    def test_calling_twice_gives_same_plan(self, pm):
        first = [dict(p) for p in pm.plan]
        pm.init_defaults()
        assert pm.plan == first

    def test_reset_drops_user_items(self, pm):
        pm.add_exam("Algorithms")
        pm.add_custom_exam("Erasmus", 6)
        pm.reset()
        assert len(pm.plan) == 2
        assert pm.curriculum == "F94"


class TestAddExam:
    def test_add_places_in_best_table(self, pm):
        assert pm.add_exam("Algorithms") is True
        assert table_of(pm, "Algorithms") == "A"
        assert pm.get_allowed_tables(pm.exams_by_id["Algorithms"]) == ["A", "B"]

    def test_accepts_exam_dict(self, pm, exams):
        assert pm.add_exam(exams[2]) is True
        assert table_of(pm, "Databases") == "B"

    def test_duplicate_rejected(self, pm):
        pm.add_exam("Algorithms")
        before = [dict(p) for p in pm.plan]
        assert pm.add_exam("Algorithms") is False
        assert pm.plan == before

    def test_unknown_exam_rejected(self, pm):
        assert pm.add_exam("Nope") is False

    def test_target_table_is_provisional(self, pm):
        assert pm.add_exam("Algorithms", "Fuori Piano") is True
        assert table_of(pm, "Algorithms") == "A"

    def test_unavailable_exam_can_still_be_added(self, pm):
        robotics = pm.exams_by_id["Robotics"]
        assert pm.is_available(robotics) is False
        assert pm.add_exam(robotics) is True

    def test_report_refreshed(self, pm):
        pm.add_exam("Compilers")
        assert pm.report["tables"]["A"]["current"] == 9
        assert pm.report["total_credits"] == 51


class TestCustomExam:
    def test_custom_goes_to_free_electives(self, pm):
        added = pm.add_custom_exam("Erasmus Course", 6)
        assert added["id"].startswith("custom-")
        assert added["table"] == "Facoltativi"
        assert added["exam_id"] is None

    def test_custom_ids_unique(self, pm):
        a = pm.add_custom_exam("X", 3)
        b = pm.add_custom_exam("X", 3)
        assert a["id"] != b["id"]

    def test_adding_custom_never_lowers_total(self, pm):
        pm.add_exam("Algorithms")
        pm.add_custom_exam("Lab", 6)
        before = pm.report["total_credits"]
        pm.add_custom_exam("Seminar", 12)
        assert pm.report["total_credits"] >= before


class TestRemoveExam:
    def test_remove_catalog_item(self, pm):
        pm.add_exam("Algorithms")
        assert pm.remove_exam("Algorithms") is True
        assert pm.is_in_plan("Algorithms") is False

    def test_fixed_items_cannot_be_removed(self, pm):
        assert pm.remove_exam("fixed-thesis") is False
        assert pm.get_item("fixed-thesis") is not None

    def test_unknown_item(self, pm):
        assert pm.remove_exam("ghost") is False

    def test_removal_rebalances(self, pm):
        for name in ("Algorithms", "Compilers", "Databases"):
            pm.add_exam(name)
        # A: Algorithms 6 + Compilers 9 = 15 < 18, so A keeps both.
        pm.add_exam("Graphics")
        pm.remove_exam("Algorithms")
        assert table_of(pm, "Compilers") == "A"


class TestMoveExam:
    def test_move_to_disallowed_table_rejected(self, pm):
        pm.add_exam("Databases")
        assert pm.move_exam("Databases", "A") is False

    def test_move_to_free_elective_allowed_then_reallocated(self, pm):
        pm.add_exam("Algorithms")
        assert pm.move_exam("Algorithms", "Facoltativi") is True
        assert table_of(pm, "Algorithms") == "A"

    def test_move_to_other_allowed_table(self, pm):
        pm.add_exam("Algorithms")
        assert pm.move_exam("Algorithms", "B") is True

    def test_custom_can_move_anywhere(self, pm):
        added = pm.add_custom_exam("Transfer credit", 6)
        assert pm.move_exam(added["id"], "B") is True
        assert table_of(pm, added["id"]) == "B"
        assert pm.report["tables"]["B"]["current"] == 6

    def test_fixed_items_cannot_move(self, pm):
        assert pm.move_exam("fixed-thesis", "Facoltativi") is False

    def test_unknown_item(self, pm):
        assert pm.move_exam("ghost", "A") is False


class TestCurriculumSwitch:
    def test_exam_without_tables_becomes_free_elective(self, exams):
        manager = PlanManager(exams, rules(), year="2025/2026", curriculum="FBA")
        manager.init_defaults()
        manager.add_exam("Vision")
        assert table_of(manager, "Vision") == "1"
        assert manager.set_curriculum("F94") is True
        assert table_of(manager, "Vision") == "Facoltativi"
        assert manager.is_in_plan("Vision")

    def test_catalog_items_rehomed(self, pm):
        pm.add_exam("Robotics")
        assert table_of(pm, "Robotics") == "C"
        pm.set_curriculum("FBA")
        assert table_of(pm, "Robotics") == "2"
        assert list(pm.report["tables"])[:3] == ["Obbligatori", "1", "2"]

    def test_fixed_and_custom_pass_through(self, pm):
        added = pm.add_custom_exam("Lab", 6)
        pm.set_curriculum("FBA")
        assert table_of(pm, added["id"]) == "Facoltativi"
        assert table_of(pm, "fixed-thesis") == "Obbligatori"

    def test_unknown_curriculum_rejected(self, pm):
        assert pm.set_curriculum("XYZ") is False
        assert pm.curriculum == "F94"

    def test_display_tables(self, pm):
        assert pm.display_tables(pm.exams_by_id["Algorithms"]) == "A | B"
        assert pm.display_tables(pm.exams_by_id["Vision"]) == "Optional"


class TestYearAndLanguage:
    def test_set_year_changes_availability(self, pm):
        robotics = pm.exams_by_id["Robotics"]
        assert pm.describe_next_availability(robotics) == "Next activation: Even Years (e.g. 2026/27)"
        pm.set_year("2026/2027")
        assert pm.is_available(robotics) is True
        assert pm.describe_next_availability(robotics) is None

    def test_set_language(self, pm):
        assert pm.set_language("it") is True
        assert pm.report["messages"][-1].startswith("Totale")
        assert pm.set_language("de") is False


class TestPersistenceShape:
    def test_snapshot_restore(self, pm, exams):
        pm.add_exam("Algorithms")
        pm.add_custom_exam("Lab", 6)
        state = pm.snapshot()

        other = PlanManager(exams, rules())
        other.restore(state)
        assert other.year == "2025/2026"
        assert other.curriculum == "F94"
        assert other.plan == pm.plan
        assert other.report == pm.report

    def test_restore_legacy_items(self, exams):
        manager = PlanManager(exams, rules(), year="2025/2026")
        manager.restore({
            "year": "2024/2025",
            "curriculum": "F94",
            "plan": [
                {"id": "thesis", "examId": None, "name": "Thesis", "cfu": 39,
                 "table": "Obbligatori", "isCustom": True},
                {"id": "Databases", "examId": "Databases", "name": "Databases", "cfu": 6,
                 "table": "B", "isCustom": False},
                {"id": "custom-1", "examId": None, "name": "Lab", "cfu": 3,
                 "table": "Facoltativi", "isCustom": True},
            ],
        })
        kinds = {p["id"]: p["kind"] for p in manager.plan}
        assert kinds == {"thesis": "fixed", "Databases": "catalog", "custom-1": "custom"}
        assert manager.remove_exam("thesis") is False

    def test_restore_drops_duplicate_exams(self, exams):
        manager = PlanManager(exams, rules(), curriculum="F94")
        manager.restore({
            "curriculum": "F94",
            "plan": [
                {"id": "Databases", "exam_id": "Databases", "credits": 6, "kind": "catalog"},
                {"id": "Databases-copy", "exam_id": "Databases", "credits": 6, "kind": "catalog"},
                {"name": "no id"},
            ],
        })
        assert [p["id"] for p in manager.plan] == ["Databases"]

    def test_language_round_trips(self, pm, exams):
        pm.set_language("it")
        state = pm.snapshot()
        assert state["lang"] == "it"

        other = PlanManager(exams, rules())
        other.restore(state)
        assert other.lang == "it"
        assert other.report["messages"][-1].startswith("Totale")

    def test_restore_ignores_unsupported_language(self, exams):
        manager = PlanManager(exams, rules(), lang="it")
        manager.restore({"lang": "de", "plan": []})
        assert manager.lang == "it"

    def test_restore_ignores_unknown_curriculum(self, exams):
        manager = PlanManager(exams, rules(), curriculum="F94")
        manager.restore({"curriculum": "OLD", "plan": []})
        assert manager.curriculum == "F94"


class TestReportStability:
    def test_refresh_twice_same_report(self, pm):
        for name in ("Algorithms", "Compilers", "Databases", "Graphics"):
            pm.add_exam(name)
        pm.add_custom_exam("Lab", 9)
        first = pm.refresh()
        second = pm.refresh()
        assert first == second

    def test_no_duplicate_exam_ids(self, pm):
        for name in ("Algorithms", "Algorithms", "Databases", "Databases"):
            pm.add_exam(name)
        exam_ids = [p["exam_id"] for p in pm.plan if p["exam_id"]]
        assert len(exam_ids) == len(set(exam_ids))
