import os
from io import BytesIO

import pytest
from PIL import Image

from conftest import GREEN, RED, cell_center, png_bytes
from mtg_sheet_forge import diagnostics as diag
from mtg_sheet_forge import pages
from mtg_sheet_forge.cards import CardSlot, RemoteCard, ResolvedImages
from mtg_sheet_forge.encoder import BudgetExceededError
from mtg_sheet_forge.engine import PDF_FILENAME, REPORT_FILENAME, SheetEngine, sheet_filename
from mtg_sheet_forge.pages import PageRenderError, Side
from mtg_sheet_forge.sources import CardSourceResolver

DEFAULT_BACK_CENTER = (150, 40, 34)


def slots(count, color=RED):
    return [CardSlot(display_name=f"card {i}", front_image=png_bytes(color)) for i in range(count)]


def decode(sheet):
    with Image.open(BytesIO(sheet.data)) as img:
        return img.convert("RGB")


def close_to(actual, expected, tolerance=16):
    return all(abs(a - e) <= tolerance for a, e in zip(actual, expected))


@pytest.fixture
def engine(small_grid, small_settings):
    messages = []
    eng = SheetEngine(progress_callback=messages.append, settings=small_settings, template=small_grid)
    eng.messages = messages
    return eng


def test_sheet_filename():
    assert sheet_filename(0, Side.FRONT) == "Sheet1_Front.jpg"
    assert sheet_filename(2, "Back", "webp") == "Sheet3_Back.webp"


def test_nineteen_cards_on_reference_sheet():
    engine = SheetEngine(progress_callback=lambda message: None)
    sheets = list(engine.export(slots(19)))

    assert [s.filename for s in sheets] == [
        "Sheet1_Front.jpg", "Sheet1_Back.jpg", "Sheet2_Front.jpg", "Sheet2_Back.jpg",
    ]
    assert [(s.page_index, s.side) for s in sheets] == [
        (0, Side.FRONT), (0, Side.BACK), (1, Side.FRONT), (1, Side.BACK),
    ]
    for sheet in sheets:
        assert decode(sheet).size == (3600, 5400)

    grid = engine.template
    first_back = decode(sheets[1])
    for index in range(18):
        assert close_to(first_back.getpixel(cell_center(grid.cell(index))), DEFAULT_BACK_CENTER)

    second_front = decode(sheets[2])
    assert close_to(second_front.getpixel(cell_center(grid.cell(0))), RED)
    assert close_to(second_front.getpixel(cell_center(grid.cell(1))), (255, 255, 255))
    second_back = decode(sheets[3])
    assert close_to(second_back.getpixel(cell_center(grid.cell(2))), DEFAULT_BACK_CENTER)
    assert close_to(second_back.getpixel(cell_center(grid.cell(0))), (255, 255, 255))
    assert engine.diagnostics == []


def test_export_is_lazy(engine, monkeypatch):
    calls = []
    original = pages.build_page

    def counting(*args, **kwargs):
        calls.append(args[1])
        return original(*args, **kwargs)

    monkeypatch.setattr("mtg_sheet_forge.engine.build_page", counting)
    sheets = engine.export(slots(13))
    assert calls == []
    first = next(sheets)
    assert first.filename == "Sheet1_Front.jpg"
    assert calls == [Side.FRONT, Side.BACK]
    assert len(list(sheets)) == 5


def test_page_size_larger_than_grid_fails_before_rendering(engine):
    with pytest.raises(ValueError):
        engine.export(slots(3), page_size=7)


def test_custom_page_size(engine):
    sheets = list(engine.export(slots(5), page_size=2))
    assert [s.filename for s in sheets][::2] == ["Sheet1_Front.jpg", "Sheet2_Front.jpg", "Sheet3_Front.jpg"]


def test_empty_card_list_yields_nothing(engine):
    assert list(engine.export([])) == []


def test_webp_output_names(small_grid, small_settings):
    settings = small_settings.model_copy(update={"image_format": "WEBP"})
    engine = SheetEngine(progress_callback=lambda m: None, settings=settings, template=small_grid)
    sheets = list(engine.export(slots(2)))
    assert [s.filename for s in sheets] == ["Sheet1_Front.webp", "Sheet1_Back.webp"]
    with Image.open(BytesIO(sheets[0].data)) as img:
        assert img.format == "WEBP"


def test_cancel_stops_after_current_page(engine):
    sheets = engine.export(slots(20))
    first = next(sheets)
    engine.cancel()
    rest = list(sheets)
    assert [first.filename] + [s.filename for s in rest] == ["Sheet1_Front.jpg", "Sheet1_Back.jpg"]
    assert engine.cancelled


def test_failed_page_is_skipped(engine, monkeypatch):
    def broken(size):
        raise MemoryError("sheet too large")

    monkeypatch.setattr(pages, "new_page", broken)
    assert list(engine.export(slots(8))) == []
    assert [(d.reason, d.page) for d in engine.diagnostics] == [
        (diag.PAGE_FAILED, 0),
        (diag.PAGE_FAILED, 1),
    ]


def test_failed_page_can_abort_the_run(small_grid, small_settings, monkeypatch):
    def broken(size):
        raise MemoryError("sheet too large")

    monkeypatch.setattr(pages, "new_page", broken)
    settings = small_settings.model_copy(update={"abort_on_page_error": True})
    engine = SheetEngine(progress_callback=lambda m: None, settings=settings, template=small_grid)
    with pytest.raises(PageRenderError):
        list(engine.export(slots(2)))


def test_budget_unmet_is_reported(small_grid, small_settings):
    settings = small_settings.model_copy(update={"max_bytes": 10})
    engine = SheetEngine(progress_callback=lambda m: None, settings=settings, template=small_grid)
    sheets = list(engine.export(slots(2)))

    assert len(sheets) == 2
    assert [(d.reason, d.side) for d in engine.diagnostics] == [
        (diag.BUDGET_UNMET, "Front"),
        (diag.BUDGET_UNMET, "Back"),
    ]


def test_strict_budget_stops_the_run(small_grid, small_settings):
    settings = small_settings.model_copy(update={"max_bytes": 10, "strict_budget": True})
    engine = SheetEngine(progress_callback=lambda m: None, settings=settings, template=small_grid)
    with pytest.raises(BudgetExceededError):
        list(engine.export(slots(2)))
    assert [d.reason for d in engine.diagnostics] == [diag.BUDGET_UNMET]


def test_compression_is_logged(small_grid, small_settings):
    messages = []
    settings = small_settings.model_copy(update={"max_bytes": 10})
    engine = SheetEngine(progress_callback=messages.append, settings=settings, template=small_grid)
    list(engine.export(slots(1)))
    assert any("compressing further" in m for m in messages)
    assert any("Final size" in m for m in messages)


def test_bad_universal_back_falls_back_to_default(engine, small_grid):
    sheets = list(engine.export(slots(1), universal_back=b"not an image"))

    assert [d.reason for d in engine.diagnostics] == [diag.DECODE_FAILED]
    assert engine.diagnostics[0].card == "universal back"
    back = decode(sheets[1])
    assert close_to(back.getpixel(cell_center(small_grid.cell(2))), DEFAULT_BACK_CENTER)


def test_universal_back_is_used(engine, small_grid):
    sheets = list(engine.export(slots(1), universal_back=png_bytes(GREEN)))
    back = decode(sheets[1])
    assert close_to(back.getpixel(cell_center(small_grid.cell(2))), GREEN)


def test_print_is_used_without_callback(capsys):
    SheetEngine().log("hello")
    assert capsys.readouterr().out == "hello\n"


class FakeRemote:
    def __init__(self):
        self.calls = []

    def resolve(self, card):
        self.calls.append(card.name)
        if card.name == "Missing":
            return ResolvedImages(front=None, error='Card "Missing" not found')
        return ResolvedImages(front=png_bytes(RED))


def test_run_job_writes_sheets_pdf_and_report(tmp_path, small_grid, small_settings):
    resolver = CardSourceResolver(remote=FakeRemote(), log=lambda m: None)
    engine = SheetEngine(progress_callback=lambda m: None, settings=small_settings, template=small_grid, resolver=resolver)
    entries = [RemoteCard(name="Shock")] * 7 + [RemoteCard(name="Missing")]

    files = engine.run_job(entries, str(tmp_path), bundle_pdf=True)

    names = [os.path.basename(f) for f in files]
    assert names == [
        "Sheet1_Front.jpg", "Sheet1_Back.jpg", "Sheet2_Front.jpg", "Sheet2_Back.jpg", PDF_FILENAME,
    ]
    assert sorted(resolver.remote.calls) == ["Missing", "Shock"]
    with open(tmp_path / PDF_FILENAME, "rb") as f:
        assert f.read(4) == b"%PDF"

    reasons = [d.reason for d in engine.diagnostics]
    assert reasons == [diag.RESOLVE_FAILED, diag.MISSING_FRONT]
    assert engine.report_path == str(tmp_path / REPORT_FILENAME)
    report = (tmp_path / REPORT_FILENAME).read_text(encoding="utf-8")
    assert "Missing" in report
    assert diag.RESOLVE_FAILED in report


def test_run_job_without_issues_has_no_report(tmp_path, engine):
    files = engine.run_job(slots(3), str(tmp_path))
    assert len(files) == 2
    assert not (tmp_path / REPORT_FILENAME).exists()
    assert engine.report_path is None
    assert "Job complete! Generated 2 files." in engine.messages


def test_run_job_with_nothing_to_export(tmp_path, engine):
    assert engine.run_job([], str(tmp_path)) == []
