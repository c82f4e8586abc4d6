import pytest

from mtg_sheet_forge.cards import RemoteCard
from mtg_sheet_forge.decklist import load_card_list, parse_decklist, parse_decklist_line


@pytest.mark.parametrize("line, expected", [
    ("4 Lightning Bolt", (4, "Lightning Bolt", None, None)),
    ("2x Island", (2, "Island", None, None)),
    ("1 Meren of Clan Nel Toth (CMM) 346", (1, "Meren of Clan Nel Toth", "CMM", "346")),
    ("1 Sol Ring (cmm) 400 *F*", (1, "Sol Ring", "CMM", "400")),
    ("1 Atraxa, Praetors' Voice *CMDR*", (1, "Atraxa, Praetors' Voice", None, None)),
    ("1 Delver of Secrets // Insectile Aberration (ISD) 51", (1, "Delver of Secrets // Insectile Aberration", "ISD", "51")),
    ("  3   Forest  ", (3, "Forest", None, None)),
])
def test_parse_line(line, expected):
    assert parse_decklist_line(line) == expected


@pytest.mark.parametrize("line", ["", "   ", "Sideboard", "// Creatures", "Lightning Bolt"])
def test_unparseable_lines_are_skipped(line):
    assert parse_decklist_line(line) is None


def test_parse_decklist_expands_quantities():
    text = "Deck\n2 Shock\n\n1 Island (M19) 264\nSideboard\n"
    cards = parse_decklist(text, border=False)
    assert cards == [
        RemoteCard(name="Shock", border=False, back_border=False),
        RemoteCard(name="Shock", border=False, back_border=False),
        RemoteCard(name="Island", set_code="M19", collector_number="264", border=False, back_border=False),
    ]


def test_load_text_file(tmp_path):
    path = tmp_path / "deck.txt"
    path.write_text("1 Shock\n2x Island\n", encoding="utf-8")
    assert [c.name for c in load_card_list(str(path))] == ["Shock", "Island", "Island"]


def test_load_csv_file(tmp_path):
    path = tmp_path / "cards.csv"
    path.write_text(
        "count,name,set_code,collector_number,scryfall_id\n"
        '2,"Lightning Bolt",m10,146,\n'
        "1,Island,,,0a1b2c\n"
        ",Shock,,,\n",
        encoding="utf-8",
    )
    cards = load_card_list(str(path))
    assert [c.name for c in cards] == ["Lightning Bolt", "Lightning Bolt", "Island", "Shock"]
    assert cards[0].set_code == "m10"
    assert cards[0].collector_number == "146"
    assert cards[2].scryfall_id == "0a1b2c"
    assert cards[2].lookup_key == ("id", "0a1b2c")
    assert cards[3].lookup_key == ("name", "shock")
