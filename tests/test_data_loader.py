import json

import pytest
from data_loader import load_data, load_exams, load_rules
from plan_fixtures import F94_RULES

HEADER = "Exams,link,CFU,Language,Period,ordinamento,table,SSD,Pillar,Subpillar,avaiability\n"


def write_data(tmp_path, rows: str, rules=None, header=HEADER):
    (tmp_path / "exams.csv").write_text(header + rows, encoding="utf-8")
    (tmp_path / "rules.json").write_text(json.dumps(rules or F94_RULES), encoding="utf-8")
    return str(tmp_path)


class TestLoadExams:
    def test_row_fields(self, tmp_path):
        write_data(tmp_path, "Compilers,http://x,9,English,2,fba|F94,A|B,INF/01,Sys,Soft,Enabled\n")
        exams = load_exams(str(tmp_path / "exams.csv"))
        assert exams == [{
            "id": "Compilers",
            "name": "Compilers",
            "link": "http://x",
            "credits": 9,
            "language": "English",
            "period": 2,
            "variants": ["FBA", "F94"],
            "raw_table": "A|B",
            "ssd": "INF/01",
            "pillar": "Sys",
            "subpillar": "Soft",
            "availability": "Enabled",
        }]

    def test_defaults_for_blank_and_bad_values(self, tmp_path):
        write_data(tmp_path, "Seminar,,,,7,F94,,,,,\nLab,,abc,,,F94,,,,,\n")
        exams = load_exams(str(tmp_path / "exams.csv"))
        assert [e["credits"] for e in exams] == [6, 6]
        assert [e["period"] for e in exams] == [1, 1]
        assert exams[0]["raw_table"] == ""
        assert exams[0]["availability"] == ""

    def test_blank_names_skipped(self, tmp_path):
        write_data(tmp_path, ",,6,,1,F94,A,,,,\n  Graphics ,,6,,1,F94,C,,,,\n")
        exams = load_exams(str(tmp_path / "exams.csv"))
        assert [e["id"] for e in exams] == ["Graphics"]

    def test_correctly_spelled_availability_column(self, tmp_path):
        header = "Exams,CFU,ordinamento,table,availability\n"
        write_data(tmp_path, "Robotics,6,F94,C,Biennial (Even)\n", header=header)
        exams = load_exams(str(tmp_path / "exams.csv"))
        assert exams[0]["availability"] == "Biennial (Even)"
        assert exams[0]["link"] == ""

    def test_missing_exams_column_raises(self, tmp_path):
        write_data(tmp_path, "x,6\n", header="Name,CFU\n")
        with pytest.raises(ValueError, match="Exams"):
            load_exams(str(tmp_path / "exams.csv"))

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_exams(str(tmp_path / "nope.csv"))


class TestLoadRules:
    def test_not_an_object(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError):
            load_rules(str(path))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text("{oops", encoding="utf-8")
        with pytest.raises(ValueError):
            load_rules(str(path))


class TestLoadData:
    def test_index_and_rules(self, tmp_path):
        path = write_data(tmp_path, "Compilers,,9,,1,F94,A|B,,,,\nVision,,6,,1,FBA,1,,,,\n")
        data = load_data(path)
        assert [e["id"] for e in data["exams"]] == ["Compilers", "Vision"]
        assert data["exams_by_id"]["Vision"]["raw_table"] == "1"
        assert data["rules"] == F94_RULES

    def test_duplicate_names_keep_first(self, tmp_path, capsys):
        path = write_data(tmp_path, "Compilers,,9,,1,F94,A,,,,\nCompilers,,6,,1,F94,B,,,,\n")
        data = load_data(path)
        assert len(data["exams"]) == 1
        assert data["exams_by_id"]["Compilers"]["credits"] == 9
        assert "[WARN] 1 duplicate exam name(s)" in capsys.readouterr().out

    def test_integrity_warnings(self, tmp_path, capsys):
        path = write_data(tmp_path, "Odd,,6,,1,XYZ,Q,,,,\n")
        load_data(path)
        out = capsys.readouterr().out
        assert "['XYZ']" in out
        assert "table code(s) in catalog match no curriculum: ['Q']" in out

    def test_placeable_counts(self, tmp_path, capsys):
        path = write_data(tmp_path, "Compilers,,9,,1,F94,A|B,,,,\nSeminar,,3,,1,F94,,,,,\n")
        load_data(path)
        out = capsys.readouterr().out
        assert "[INFO] Curriculum F94: 1/2 exams have a core table" in out
        assert "[INFO] Curriculum FBA: 0/2 exams have a core table" in out

    def test_missing_rules_file(self, tmp_path):
        (tmp_path / "exams.csv").write_text(HEADER, encoding="utf-8")
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path))
