import json

import pytest

from midichords.core.music_theory import (
    CHORD_DEFINITIONS,
    DEFAULT_CATALOG,
    DOMINANT_7TH,
    MAJOR,
    MAJOR_7TH,
    Chord,
    ChordCatalog,
    ChordType,
    Interval,
    Note,
    PitchClass,
    load_chord_catalog,
    normalize_intervals,
)


def test_pitch_class_from_midi_note():
    assert PitchClass.from_midi_note(60) is PitchClass.C
    assert PitchClass.from_midi_note(61) is PitchClass.C_SHARP
    assert PitchClass.from_midi_note(127) is PitchClass.G
    assert PitchClass.from_position(14) is PitchClass.D
    assert all(pc.position == i for i, pc in enumerate(PitchClass))


def test_pitch_class_names():
    assert PitchClass.A_SHARP.get_name() == "A#"
    assert PitchClass.A_SHARP.get_name(use_flats=True) == "Bb"
    assert str(PitchClass.F_SHARP) == "F#"


@pytest.mark.parametrize("midi_note, pitch_class, octave", [(60, PitchClass.C, 4), (0, PitchClass.C, -1), (69, PitchClass.A, 4), (127, PitchClass.G, 9)])
def test_note_midi_conversion(midi_note, pitch_class, octave):
    note = Note.from_midi_note(midi_note)
    assert note == Note(pitch_class, octave)
    assert note.to_midi_note() == midi_note


def test_note_helpers():
    assert Note(PitchClass.A, 4).frequency() == pytest.approx(440.0)
    assert Note(PitchClass.A, 5).frequency() == pytest.approx(880.0)
    assert Note(PitchClass.D_SHARP, 3).get_name() == "D#3"
    assert Note(PitchClass.D_SHARP, 3).get_name(use_flats=True) == "Eb3"


@pytest.mark.parametrize("midi_note", [-1, 128])
def test_note_out_of_range(midi_note):
    with pytest.raises(ValueError):
        Note.from_midi_note(midi_note)


def test_intervals():
    assert Interval.between(PitchClass.C, PitchClass.G) is Interval.PERFECT_FIFTH
    assert Interval.between(PitchClass.G, PitchClass.C) is Interval.PERFECT_FOURTH
    assert Interval.between(Note(PitchClass.E, 4), Note(PitchClass.G, 2)) is Interval.MINOR_THIRD
    assert Interval.from_semitones(12) is Interval.UNISON
    assert Interval.from_semitones(14) is Interval.MAJOR_SECOND
    assert Interval.semitones_between(Note(PitchClass.C, 4), Note(PitchClass.C, 5)) == 12


@pytest.mark.parametrize(
    "intervals, expected",
    [
        ([0, 4, 7], (0, 4, 7)),
        ([7, 0, 4, 4], (0, 4, 7)),
        ([4, 7, 12], (0, 3, 8)),
        ([0, 4, 7, 10, 14], (0, 2, 4, 7, 10)),
        ([], ()),
    ],
)
def test_normalize_intervals(intervals, expected):
    assert normalize_intervals(intervals) == expected


def test_catalog_lookup():
    assert DEFAULT_CATALOG.find_by_intervals([0, 4, 7]) == MAJOR
    assert DEFAULT_CATALOG.find_by_intervals([11, 0, 7, 4]) == MAJOR_7TH
    assert DEFAULT_CATALOG.find_by_intervals([5, 9, 12]) == MAJOR
    assert DEFAULT_CATALOG.find_by_intervals([0, 2, 4, 7, 10]) == CHORD_DEFINITIONS["DOMINANT_9TH"]
    assert DEFAULT_CATALOG.find_by_intervals([0, 1, 6]) is None
    assert DEFAULT_CATALOG.find_by_intervals([]) is None


def test_catalog_by_symbol_and_key():
    assert DEFAULT_CATALOG.by_symbol("maj7") == MAJOR_7TH
    assert DEFAULT_CATALOG.by_symbol("nope") is None
    assert DEFAULT_CATALOG["DOMINANT_7TH"] == DOMINANT_7TH
    assert MAJOR in DEFAULT_CATALOG
    assert DEFAULT_CATALOG.keys()[0] == "MAJOR"


def test_default_catalog_shapes_are_unique():
    shapes = [ct.pitch_class_intervals for ct in DEFAULT_CATALOG]
    assert len(set(shapes)) == len(shapes) == len(CHORD_DEFINITIONS)
    symbols = [ct.symbol for ct in DEFAULT_CATALOG]
    assert len(set(symbols)) == len(symbols)
    assert all(ct.intervals[0] == 0 for ct in DEFAULT_CATALOG)


def test_catalog_rejects_duplicate_shapes():
    with pytest.raises(ValueError):
        ChordCatalog({
            "MAJOR": ChordType("Major", "", (0, 4, 7)),
            "MAJOR_OCTAVE": ChordType("Major Spread", "sp", (0, 4, 19)),
        })


@pytest.mark.parametrize("intervals", [(4, 7), (), (0, -3, 7)])
def test_chord_type_validation(intervals):
    with pytest.raises(ValueError):
        ChordType("Broken", "x", intervals)


def test_chord_type_keeps_literal_intervals():
    ninth = CHORD_DEFINITIONS["DOMINANT_9TH"]
    assert ninth.intervals == (0, 4, 7, 10, 14)
    assert ninth.pitch_class_intervals == (0, 2, 4, 7, 10)


@pytest.mark.parametrize(
    "chord, name, full_name",
    [
        (Chord.major(PitchClass.C), "C", "C Major"),
        (Chord.minor(PitchClass.A), "Am", "A Minor"),
        (Chord.dominant7(PitchClass.G), "G7", "G Dominant 7th"),
        (Chord.major(PitchClass.C).with_inversion(1), "C/E", "C Major/E (1st inversion)"),
        (Chord(PitchClass.D, CHORD_DEFINITIONS["MINOR_9TH"]), "Dm9", "D Minor 9th"),
        (Chord(PitchClass.A, CHORD_DEFINITIONS["SEVENTH_FLAT_5"]), "A7b5", "A Seventh Flat 5"),
        (Chord.minor7(PitchClass.E).with_inversion(3), "Em7/D", "E Minor 7th/D (3rd inversion)"),
    ],
)
def test_chord_names(chord, name, full_name):
    assert chord.get_name() == name
    assert chord.get_full_name() == full_name


def test_flat_notation():
    f_sharp = Chord.major(PitchClass.F_SHARP)
    assert f_sharp.get_name() == "F#"
    assert f_sharp.get_name(use_flats=True) == "Gb"
    assert Chord.minor(PitchClass.C_SHARP).get_name(use_flats=True) == "Dbm"


def test_chord_pitch_classes():
    g7 = Chord.dominant7(PitchClass.G)
    assert g7.pitch_classes() == (PitchClass.G, PitchClass.B, PitchClass.D, PitchClass.F)
    assert g7.contains(PitchClass.F)
    assert not g7.contains(PitchClass.A)
    assert Chord.major7(PitchClass.C).intervals() == (0, 4, 7, 11)


def test_chord_inversion_bounds():
    with pytest.raises(ValueError):
        Chord.major(PitchClass.C).with_inversion(3)
    with pytest.raises(ValueError):
        Chord(PitchClass.C, MAJOR, inversion=-1)
    with pytest.raises(ValueError):
        Chord(PitchClass.C, MAJOR, inversion=1, bass_note=PitchClass.D)


def test_slash_chord():
    chord = Chord(PitchClass.C, MAJOR, 0, PitchClass.D)
    assert chord.is_slash_chord()
    assert chord.get_name() == "C/D"
    assert not Chord(PitchClass.C, MAJOR, 1, PitchClass.E).is_slash_chord()


def test_chord_value_equality():
    assert Chord.major(PitchClass.C) == Chord(PitchClass.C, MAJOR, 0, None)
    assert hash(Chord.major(PitchClass.C)) == hash(Chord(PitchClass.C, MAJOR))
    assert Chord.major(PitchClass.C) != Chord.major(PitchClass.D)


class TestLoadChordCatalog:
    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_chord_catalog(str(tmp_path / "missing.json")) is DEFAULT_CATALOG

    def test_custom_definitions(self, tmp_path):
        path = tmp_path / "chords.json"
        path.write_text(json.dumps({
            "POWER": {"name": "Power Chord", "symbol": "5", "intervals": [0, 7, 12]},
            "MAJOR": {"name": "Major", "symbol": "", "intervals": [0, 4, 7]},
            "BROKEN": {"name": "Broken", "intervals": [4, 7]},
            "ALSO_BROKEN": "not an object",
        }))
        catalog = load_chord_catalog(str(path))
        assert catalog.keys() == ["POWER", "MAJOR"]
        assert catalog.find_by_intervals([0, 4, 7]).full_name == "Major"
        assert catalog.by_symbol("5").intervals == (0, 7, 12)

    def test_boolean_intervals_are_rejected(self, tmp_path):
        path = tmp_path / "chords.json"
        path.write_text(json.dumps({
            "BOOLS": {"name": "Bools", "symbol": "b", "intervals": [0, True, 7]},
            "MINOR": {"name": "Minor", "symbol": "m", "intervals": [0, 3, 7]},
        }))
        catalog = load_chord_catalog(str(path))
        assert catalog.keys() == ["MINOR"]

    def test_invalid_json_uses_defaults(self, tmp_path):
        path = tmp_path / "chords.json"
        path.write_text("{not json")
        assert load_chord_catalog(str(path)) is DEFAULT_CATALOG

    def test_no_valid_entries_uses_defaults(self, tmp_path):
        path = tmp_path / "chords.json"
        path.write_text(json.dumps({"X": {"name": 3}}))
        assert load_chord_catalog(str(path)) is DEFAULT_CATALOG

    def test_duplicate_shapes_raise(self, tmp_path):
        path = tmp_path / "chords.json"
        path.write_text(json.dumps({
            "A": {"name": "Major", "symbol": "", "intervals": [0, 4, 7]},
            "B": {"name": "Also Major", "symbol": "M", "intervals": [0, 4, 7, 16]},
        }))
        with pytest.raises(ValueError):
            load_chord_catalog(str(path))
