import argparse
import math
import os

from pydantic import ValidationError
from tqdm import tqdm

from mtg_sheet_forge.decklist import load_card_list
from mtg_sheet_forge.encoder import BudgetExceededError
from mtg_sheet_forge.engine import PDF_FILENAME, SheetEngine
from mtg_sheet_forge.grid import REFERENCE_GRID
from mtg_sheet_forge.pdf_bundle import write_sheet_pdf
from mtg_sheet_forge.settings import MAX_SHEET_BYTES, ExportSettings
from mtg_sheet_forge.sources import CardSourceResolver, ScryfallSource


def build_settings(args):
    overrides = {
        'image_format': args.format,
        'strict_budget': args.strict_budget,
    }
    if args.page_size is not None:
        overrides['page_size'] = args.page_size
    if args.max_mb is not None:
        overrides['max_bytes'] = int(args.max_mb * 1024 * 1024)
    return ExportSettings(**overrides)


def run(args):
    try:
        settings = build_settings(args)
    except ValidationError as e:
        print(f"Error: Invalid settings\n{e}")
        return 2

    if settings.page_size > REFERENCE_GRID.capacity:
        print(f"Error: Invalid settings\n--page_size must be at most {REFERENCE_GRID.capacity}, got {settings.page_size}")
        return 2

    if not os.path.exists(args.input):
        print(f"Error: Input file not found at {args.input}")
        return 1

    entries = load_card_list(args.input, border=not args.no_border)
    if not entries:
        print(f"Warning: No cards found in {args.input}")
        return 1

    universal_back = None
    if args.universal_back:
        with open(args.universal_back, 'rb') as f:
            universal_back = f.read()

    remote = ScryfallSource(cache_dir=args.cache_dir, log=tqdm.write)
    resolver = CardSourceResolver(remote=remote, max_workers=settings.decode_workers, log=tqdm.write)
    engine = SheetEngine(progress_callback=tqdm.write, settings=settings, resolver=resolver)

    print(f"Found {len(entries)} cards in {args.input}.")
    engine.reset()
    slots = engine.prepare_slots(entries)
    os.makedirs(args.output_dir, exist_ok=True)

    total_sheets = math.ceil(len(slots) / settings.page_size) * 2
    sheets = []
    failed = None
    with tqdm(total=total_sheets, desc="Writing sheets", unit="sheet", leave=False) as pbar:
        try:
            for sheet in engine.export(slots, universal_back=universal_back):
                with open(os.path.join(args.output_dir, sheet.filename), 'wb') as f:
                    f.write(sheet.data)
                if args.bundle_pdf:
                    sheets.append(sheet)
                pbar.update(1)
        except BudgetExceededError as e:
            failed = e

    if sheets:
        write_sheet_pdf(sheets, os.path.join(args.output_dir, PDF_FILENAME), dpi=settings.dpi)

    if engine.diagnostics:
        report = engine.write_report(args.output_dir)
        print(f"\n{len(engine.diagnostics)} issues, see {report}")
    if failed is not None:
        print(f"\nError: Export stopped, sheet over the size budget: {failed}")
        return 1
    print(f"\nDone! Sheets written to {args.output_dir}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description="MTG print sheet exporter")
    parser.add_argument('--input', required=True, help='Decklist text file ("4 Lightning Bolt", "1 Meren of Clan Nel Toth (CMM) 346") or CSV card list')
    parser.add_argument('--output_dir', default="Output", help='Directory where sheet images are saved (default: "Output").')
    parser.add_argument('--universal_back', default=None, help='Image used as the back of every single-faced card')
    parser.add_argument('--page_size', type=int, default=None, help='Cards per sheet (at most 18)')
    parser.add_argument('--max_mb', type=float, default=None,
                        help=f'Size budget per sheet image in MB (default: {MAX_SHEET_BYTES // (1024 * 1024)})')
    parser.add_argument('--strict_budget', action='store_true', help='Fail instead of writing a sheet still over budget at the lowest quality')
    parser.add_argument('--format', choices=['JPEG', 'WEBP'], default='JPEG', help='Sheet image format')
    parser.add_argument('--bundle_pdf', action='store_true', help='Also write all sheets into one PDF')
    parser.add_argument('--no_border', action='store_true', help='Draw cards edge to edge without the black border')
    parser.add_argument('--cache_dir', default=None, help='Directory for caching downloaded card images')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    return run(args)


if __name__ == '__main__':
    raise SystemExit(main())
