import csv
import os
import re

from .cards import RemoteCard

WITH_SET_RE = re.compile(r"^(\d+)x?\s+(.+?)\s+\(([A-Z0-9]+)\)\s+(\S+)$", re.IGNORECASE)
BASIC_RE = re.compile(r"^(\d+)x?\s+(.+)$", re.IGNORECASE)
MARKERS = ("*F*", "*CMDR*")


def parse_decklist_line(line):
    """Return (quantity, name, set_code, collector_number) or None."""
    clean = line.strip()
    for marker in MARKERS:
        clean = clean.replace(marker, "")
    clean = clean.strip()
    if not clean:
        return None
    match = WITH_SET_RE.match(clean)
    if match:
        return int(match.group(1)), match.group(2).strip(), match.group(3).upper(), match.group(4)
    match = BASIC_RE.match(clean)
    if match:
        return int(match.group(1)), match.group(2).strip(), None, None
    return None


def parse_decklist(text, border=True):
    """
    Parse a plain text decklist into RemoteCard entries, one per copy.

    Understands "4 Lightning Bolt", "2x Island" and
    "1 Meren of Clan Nel Toth (CMM) 346". Other lines are skipped.
    """
    cards = []
    for line in text.splitlines():
        parsed = parse_decklist_line(line)
        if parsed is None:
            continue
        quantity, name, set_code, collector_number = parsed
        for _ in range(quantity):
            cards.append(RemoteCard(
                name=name,
                set_code=set_code,
                collector_number=collector_number,
                border=border,
                back_border=border,
            ))
    return cards


def parse_csv_file(file_path, border=True):
    cards = []
    with open(file_path, 'r', encoding='utf-8') as f:
        reader = csv.DictReader(f)
        for row in reader:
            quantity = int(row.get('count') or 1)
            for _ in range(quantity):
                cards.append(RemoteCard(
                    name=row['name'].strip('"'),
                    set_code=row.get('set_code') or None,
                    collector_number=row.get('collector_number') or None,
                    scryfall_id=row.get('scryfall_id') or None,
                    border=border,
                    back_border=border,
                ))
    return cards


def load_card_list(file_path, border=True):
    if os.path.splitext(file_path)[1].lower() == ".csv":
        return parse_csv_file(file_path, border=border)
    with open(file_path, 'r', encoding='utf-8') as f:
        return parse_decklist(f.read(), border=border)
