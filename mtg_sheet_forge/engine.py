import os
import threading
from typing import Iterator, NamedTuple, Optional, Sequence

from PIL import Image

from . import diagnostics as diag
from .cards import CardSlot
from .diagnostics import Diagnostic
from .encoder import BudgetExceededError, encode_page
from .grid import REFERENCE_GRID
from .pages import ExportCancelled, PageRenderError, Side, build_page, paginate
from .pdf_bundle import write_sheet_pdf
from .render import ImageDecodeError, load_image
from .settings import ExportSettings
from .sources import CardSourceResolver

REPORT_FILENAME = "Export_Report.txt"
PDF_FILENAME = "Sheets.pdf"


class ExportedSheet(NamedTuple):
    page_index: int
    side: Side
    data: bytes
    filename: str


def sheet_filename(page_index, side, extension="jpg"):
    return f"Sheet{page_index + 1}_{Side(side).value}.{extension}"


class SheetEngine:
    def __init__(self, progress_callback=None, settings=None, template=REFERENCE_GRID, resolver=None):
        self.progress_callback = progress_callback
        self.settings = settings or ExportSettings()
        self.template = template
        self._resolver = resolver
        self.diagnostics = []
        self.report_path = None
        self._cancel = threading.Event()

    def log(self, message):
        if self.progress_callback:
            self.progress_callback(message)
        else:
            print(message)

    @property
    def resolver(self):
        if self._resolver is None:
            self._resolver = CardSourceResolver(max_workers=self.settings.decode_workers, log=self.log)
        return self._resolver

    def reset(self):
        self.diagnostics = []
        self.report_path = None
        self._cancel.clear()

    def cancel(self):
        self._cancel.set()

    @property
    def cancelled(self):
        return self._cancel.is_set()

    def record(self, diagnostic: Diagnostic):
        self.diagnostics.append(diagnostic)
        self.log(str(diagnostic))

    def prepare_slots(self, entries):
        entries = list(entries)
        if all(isinstance(entry, CardSlot) for entry in entries):
            return entries
        self.log(f"Resolving {len(entries)} cards...")
        slots, failures = self.resolver.resolve_all(entries)
        for entry, error in failures:
            self.record(Diagnostic(reason=diag.RESOLVE_FAILED, card=entry.name, detail=error))
        return slots

    def load_universal_back(self, universal_back):
        if universal_back is None or isinstance(universal_back, Image.Image):
            return universal_back
        try:
            return load_image(universal_back)
        except ImageDecodeError as e:
            self.record(Diagnostic(
                reason=diag.DECODE_FAILED,
                card="universal back",
                detail=f"{e}; using the default back",
            ))
            return None

    def export(self, cards: Sequence[CardSlot], page_size: Optional[int] = None,
               universal_back=None) -> Iterator[ExportedSheet]:
        """
        Lazily render and encode every sheet of `cards`.

        Yields ExportedSheet tuples in page order, front before back. A page
        is only yielded once both of its sides are encoded.
        """
        page_size = page_size or self.settings.page_size
        if page_size > self.template.capacity:
            raise ValueError(
                f"Page size {page_size} exceeds the {self.template.capacity} cells of the sheet"
            )
        groups = paginate(cards, page_size)
        return self._export_groups(groups, universal_back)

    def _export_groups(self, groups, universal_back):
        back_image = self.load_universal_back(universal_back)
        total = len(groups)
        for page_index, group in enumerate(groups):
            if self.cancelled:
                self.log("Export cancelled.")
                return
            try:
                self.log(f"Generating sheet {page_index + 1}/{total} (Fronts)...")
                front = self._render_and_encode(group, Side.FRONT, page_index, back_image)
                self.log(f"Generating sheet {page_index + 1}/{total} (Backs)...")
                back = self._render_and_encode(group, Side.BACK, page_index, back_image)
            except ExportCancelled as e:
                self.log(f"Export cancelled: {e}")
                return
            except PageRenderError as e:
                self.record(Diagnostic(reason=diag.PAGE_FAILED, page=page_index, detail=str(e)))
                if self.settings.abort_on_page_error:
                    raise
                continue
            yield front
            yield back
        self.log(f"All {total} sheets created.")

    def _render_and_encode(self, group, side, page_index, back_image):
        rendered = build_page(
            group,
            side,
            template=self.template,
            universal_back=back_image,
            page_index=page_index,
            settings=self.settings,
            log=self.log,
            cancel_event=self._cancel,
        )
        self.diagnostics.extend(rendered.diagnostics)
        filename = sheet_filename(page_index, side, self.settings.extension)

        def report(attempt):
            if attempt.size > self.settings.max_bytes:
                self.log(f"{filename}: {attempt.size_mb:.2f}MB at quality {attempt.quality:.2f}, compressing further...")

        try:
            encoded = encode_page(
                rendered.image,
                max_bytes=self.settings.max_bytes,
                start_quality=self.settings.start_quality,
                quality_step=self.settings.quality_step,
                quality_floor=self.settings.quality_floor,
                image_format=self.settings.image_format,
                dpi=self.settings.dpi,
                strict=self.settings.strict_budget,
                report=report,
            )
        except BudgetExceededError as e:
            self.record(Diagnostic(reason=diag.BUDGET_UNMET, page=page_index, side=side.value, detail=str(e)))
            raise
        if not encoded.within_budget:
            self.record(Diagnostic(
                reason=diag.BUDGET_UNMET,
                page=page_index,
                side=side.value,
                detail=f"{encoded.size} bytes at quality floor {encoded.quality:.2f}",
            ))
        self.log(f"{filename}: Final size {encoded.size / (1024 * 1024):.2f}MB at quality {encoded.quality:.2f}")
        return ExportedSheet(page_index=page_index, side=side, data=encoded.data, filename=filename)

    def write_report(self, output_dir):
        path = os.path.join(output_dir, REPORT_FILENAME)
        with open(path, 'w', encoding='utf-8') as f:
            f.write("--- Export diagnostics ---\n\n")
            for entry in self.diagnostics:
                f.write(f"- {entry}\n")
        return path

    def run_job(self, entries, output_dir, universal_back=None, bundle_pdf=False, page_size=None):
        self.log("Starting job...")
        self.reset()
        os.makedirs(output_dir, exist_ok=True)

        slots = self.prepare_slots(entries)
        if not slots:
            self.log("No cards to export.")
            return []

        generated_files = []
        sheets = []
        for sheet in self.export(slots, page_size=page_size, universal_back=universal_back):
            path = os.path.join(output_dir, sheet.filename)
            with open(path, 'wb') as f:
                f.write(sheet.data)
            generated_files.append(path)
            if bundle_pdf:
                sheets.append(sheet)

        if bundle_pdf and sheets:
            self.log(f"Building PDF: {PDF_FILENAME}...")
            pdf_path = write_sheet_pdf(sheets, os.path.join(output_dir, PDF_FILENAME), dpi=self.settings.dpi)
            generated_files.append(pdf_path)

        if self.diagnostics:
            self.report_path = self.write_report(output_dir)
            self.log(f"{len(self.diagnostics)} issues written to {REPORT_FILENAME}")

        self.log(f"Job complete! Generated {len(generated_files)} files.")
        return generated_files
