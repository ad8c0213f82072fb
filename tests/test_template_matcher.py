from pathlib import Path

from models import TemplateSummary
from template_matcher import detect_template, match_template
from template_store import TemplateStore

KNOWN = [TemplateSummary(id="SBD 4", name="SBD4")]


def test_matches_by_name_substring() -> None:
    assert match_template("my_SBD4_form.pdf", KNOWN) == "SBD 4"


def test_matches_by_id_substring() -> None:
    assert match_template("Final SBD 4 declaration.PDF", KNOWN) == "SBD 4"


def test_no_match() -> None:
    assert match_template("unrelated.pdf", KNOWN) is None
    assert match_template("", KNOWN) is None


def test_blank_template_names_never_match_everything() -> None:
    assert match_template("anything.pdf", [TemplateSummary(id="", name="")]) is None


def test_first_known_template_wins() -> None:
    known = [TemplateSummary(id="SBD 1", name="SBD1"), TemplateSummary(id="SBD", name="SBD")]
    assert match_template("sbd1_tourism.pdf", known) == "SBD 1"


def test_detect_template_reads_the_store(tmp_path: Path) -> None:
    store = TemplateStore(tmp_path)
    store.save("SBD 4", {"fields": {}}, name="SBD4")

    assert detect_template("my_SBD4_form.pdf", store) == "SBD 4"
    assert detect_template(None, store) is None
