# --- Music theory value types and the chord type catalog ---
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from midichords.utils.utils import resource_path

# --- Constants ---
A4_MIDI_NOTE = 69
A4_FREQUENCY = 440.0

# Default path for chord definitions JSON file
DEFAULT_CHORD_CONFIG_PATH = resource_path(
    os.path.join("data", "chord_definitions.json")
)

# --- Logging Setup ---
logger = logging.getLogger(__name__)


def midi_to_frequency(midi_note: int) -> float:
    return A4_FREQUENCY * 2.0 ** ((midi_note - A4_MIDI_NOTE) / 12.0)


class PitchClass(Enum):
    C = (0, "C", "C")
    C_SHARP = (1, "C#", "Db")
    D = (2, "D", "D")
    D_SHARP = (3, "D#", "Eb")
    E = (4, "E", "E")
    F = (5, "F", "F")
    F_SHARP = (6, "F#", "Gb")
    G = (7, "G", "G")
    G_SHARP = (8, "G#", "Ab")
    A = (9, "A", "A")
    A_SHARP = (10, "A#", "Bb")
    B = (11, "B", "B")

    def __init__(self, position: int, sharp_name: str, flat_name: str):
        self.position = position
        self.sharp_name = sharp_name
        self.flat_name = flat_name

    def get_name(self, use_flats: bool = False) -> str:
        return self.flat_name if use_flats else self.sharp_name

    @classmethod
    def from_position(cls, position: int) -> "PitchClass":
        return _PITCH_CLASSES[position % 12]

    @classmethod
    def from_midi_note(cls, midi_note: int) -> "PitchClass":
        return _PITCH_CLASSES[midi_note % 12]

    def __str__(self) -> str:
        return self.sharp_name


_PITCH_CLASSES: Tuple[PitchClass, ...] = tuple(PitchClass)


@dataclass(frozen=True)
class Note:
    """A pitch class in a specific octave; C4 is MIDI note 60."""
    pitch_class: PitchClass
    octave: int

    @classmethod
    def from_midi_note(cls, midi_note: int) -> "Note":
        if not (0 <= midi_note <= 127):
            raise ValueError(f"MIDI note must be 0-127, got {midi_note}")
        return cls(PitchClass.from_midi_note(midi_note), midi_note // 12 - 1)

    def to_midi_note(self) -> int:
        return (self.octave + 1) * 12 + self.pitch_class.position

    def frequency(self) -> float:
        return midi_to_frequency(self.to_midi_note())

    def get_name(self, use_flats: bool = False) -> str:
        return f"{self.pitch_class.get_name(use_flats)}{self.octave}"


class Interval(Enum):
    UNISON = (0, "P1", "Perfect Unison")
    MINOR_SECOND = (1, "m2", "Minor Second")
    MAJOR_SECOND = (2, "M2", "Major Second")
    MINOR_THIRD = (3, "m3", "Minor Third")
    MAJOR_THIRD = (4, "M3", "Major Third")
    PERFECT_FOURTH = (5, "P4", "Perfect Fourth")
    TRITONE = (6, "TT", "Tritone")
    PERFECT_FIFTH = (7, "P5", "Perfect Fifth")
    MINOR_SIXTH = (8, "m6", "Minor Sixth")
    MAJOR_SIXTH = (9, "M6", "Major Sixth")
    MINOR_SEVENTH = (10, "m7", "Minor Seventh")
    MAJOR_SEVENTH = (11, "M7", "Major Seventh")
    OCTAVE = (12, "P8", "Perfect Octave")

    def __init__(self, semitones: int, short_name: str, long_name: str):
        self.semitones = semitones
        self.short_name = short_name
        self.long_name = long_name

    @classmethod
    def from_semitones(cls, semitones: int) -> "Interval":
        """Simple interval for a semitone count, octaves folded (12 -> UNISON)."""
        return _INTERVALS[semitones % 12]

    @classmethod
    def between(cls, low: Union[PitchClass, Note], high: Union[PitchClass, Note]) -> "Interval":
        """Ascending interval from ``low`` to ``high``, ignoring octaves."""
        low_pc = low.pitch_class if isinstance(low, Note) else low
        high_pc = high.pitch_class if isinstance(high, Note) else high
        return cls.from_semitones((high_pc.position - low_pc.position + 12) % 12)

    @staticmethod
    def semitones_between(low: Note, high: Note) -> int:
        return high.to_midi_note() - low.to_midi_note()


_INTERVALS: Tuple[Interval, ...] = tuple(Interval)[:12]


def normalize_intervals(intervals: Iterable[int]) -> Tuple[int, ...]:
    """Shift so the lowest interval is 0, fold to one octave, sort, dedupe."""
    values = list(intervals)
    if not values:
        return ()
    lowest = min(values)
    return tuple(sorted({(i - lowest) % 12 for i in values}))


@dataclass(frozen=True)
class ChordType:
    """
    Catalog entry for one chord shape.

    ``intervals`` are semitones above the root and may exceed 11 for
    extensions (14 = 9th, 17 = 11th, 21 = 13th). Matching against played
    notes uses ``pitch_class_intervals``, the same set folded into one octave.
    """
    full_name: str
    symbol: str
    intervals: Tuple[int, ...]
    pitch_class_intervals: Tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        intervals = tuple(self.intervals)
        if not intervals or intervals[0] != 0:
            raise ValueError(f"Chord type '{self.full_name}' must start at interval 0, got {intervals}")
        if any(i < 0 for i in intervals):
            raise ValueError(f"Chord type '{self.full_name}' has negative intervals: {intervals}")
        object.__setattr__(self, "intervals", intervals)
        object.__setattr__(self, "pitch_class_intervals", tuple(sorted({i % 12 for i in intervals})))

    def __str__(self) -> str:
        return self.full_name


# CHORD_DEFINITIONS keyed by identifier, in lookup precedence order.
# Each folded (mod 12) shape appears exactly once.
CHORD_DEFINITIONS: Dict[str, ChordType] = OrderedDict(
    [
        # --- TRIADS ---
        ("MAJOR", ChordType("Major", "", (0, 4, 7))),
        ("MINOR", ChordType("Minor", "m", (0, 3, 7))),
        ("DIMINISHED", ChordType("Diminished", "dim", (0, 3, 6))),
        ("AUGMENTED", ChordType("Augmented", "aug", (0, 4, 8))),
        ("SUSPENDED_2", ChordType("Suspended 2nd", "sus2", (0, 2, 7))),
        ("SUSPENDED_4", ChordType("Suspended 4th", "sus4", (0, 5, 7))),

        # --- SEVENTHS ---
        ("DOMINANT_7TH", ChordType("Dominant 7th", "7", (0, 4, 7, 10))),
        ("MAJOR_7TH", ChordType("Major 7th", "maj7", (0, 4, 7, 11))),
        ("MINOR_7TH", ChordType("Minor 7th", "m7", (0, 3, 7, 10))),
        ("MINOR_MAJOR_7TH", ChordType("Minor Major 7th", "mMaj7", (0, 3, 7, 11))),
        ("DIMINISHED_7TH", ChordType("Diminished 7th", "dim7", (0, 3, 6, 9))),
        ("HALF_DIMINISHED_7TH", ChordType("Half Diminished 7th", "m7b5", (0, 3, 6, 10))),
        ("AUGMENTED_7TH", ChordType("Augmented 7th", "aug7", (0, 4, 8, 10))),
        ("AUGMENTED_MAJOR_7TH", ChordType("Augmented Major 7th", "augMaj7", (0, 4, 8, 11))),

        # --- EXTENDED ---
        ("DOMINANT_9TH", ChordType("Dominant 9th", "9", (0, 4, 7, 10, 14))),
        ("MAJOR_9TH", ChordType("Major 9th", "maj9", (0, 4, 7, 11, 14))),
        ("MINOR_9TH", ChordType("Minor 9th", "m9", (0, 3, 7, 10, 14))),
        ("DOMINANT_11TH", ChordType("Dominant 11th", "11", (0, 4, 7, 10, 14, 17))),
        ("MAJOR_11TH", ChordType("Major 11th", "maj11", (0, 4, 7, 11, 14, 17))),
        ("MINOR_11TH", ChordType("Minor 11th", "m11", (0, 3, 7, 10, 14, 17))),
        ("DOMINANT_13TH", ChordType("Dominant 13th", "13", (0, 4, 7, 10, 14, 17, 21))),
        ("MAJOR_13TH", ChordType("Major 13th", "maj13", (0, 4, 7, 11, 14, 17, 21))),
        ("MINOR_13TH", ChordType("Minor 13th", "m13", (0, 3, 7, 10, 14, 17, 21))),

        # --- ADDED / SIXTHS ---
        ("ADDED_9TH", ChordType("Added 9th", "add9", (0, 4, 7, 14))),
        ("SIXTH", ChordType("Sixth", "6", (0, 4, 7, 9))),
        ("MINOR_SIXTH", ChordType("Minor Sixth", "m6", (0, 3, 7, 9))),
        ("SIXTH_NINTH", ChordType("Sixth/Ninth", "6/9", (0, 4, 7, 9, 14))),

        # --- ALTERED DOMINANTS ---
        ("SEVENTH_FLAT_5", ChordType("Seventh Flat 5", "7b5", (0, 4, 6, 10))),
        ("NINTH_FLAT_5", ChordType("Ninth Flat 5", "9b5", (0, 4, 6, 10, 14))),
        ("NINTH_SHARP_5", ChordType("Ninth Sharp 5", "9#5", (0, 4, 8, 10, 14))),
        ("SEVENTH_FLAT_9", ChordType("Seventh Flat 9", "7b9", (0, 4, 7, 10, 13))),
        ("SEVENTH_SHARP_9", ChordType("Seventh Sharp 9", "7#9", (0, 4, 7, 10, 15))),
        ("SEVENTH_FLAT_5_FLAT_9", ChordType("Seventh Flat 5 Flat 9", "7b5b9", (0, 4, 6, 10, 13))),
        ("SEVENTH_SHARP_5_FLAT_9", ChordType("Seventh Sharp 5 Flat 9", "7#5b9", (0, 4, 8, 10, 13))),
        ("SEVENTH_FLAT_5_SHARP_9", ChordType("Seventh Flat 5 Sharp 9", "7b5#9", (0, 4, 6, 10, 15))),
        ("SEVENTH_SHARP_5_SHARP_9", ChordType("Seventh Sharp 5 Sharp 9", "7#5#9", (0, 4, 8, 10, 15))),

        # --- JAZZ ---
        ("DOMINANT_7_SHARP_11", ChordType("Dominant 7 Sharp 11", "7#11", (0, 4, 7, 10, 18))),
        ("DOMINANT_7_FLAT_13", ChordType("Dominant 7 Flat 13", "7b13", (0, 4, 7, 10, 20))),
        ("MAJOR_7_SHARP_11", ChordType("Major 7 Sharp 11", "maj7#11", (0, 4, 7, 11, 18))),
        ("MINOR_MAJOR_9", ChordType("Minor Major 9", "mMaj9", (0, 3, 7, 11, 14))),
        ("ALTERED", ChordType("Altered Dominant", "7alt", (0, 4, 8, 10, 13, 15))),
        ("LYDIAN_DOMINANT", ChordType("Lydian Dominant", "13#11", (0, 4, 7, 10, 14, 18, 21))),
        ("PHRYGIAN", ChordType("Phrygian", "phryg", (0, 3, 7, 10, 13, 17))),
        ("SUSPENDED_4_7", ChordType("Suspended 4th 7th", "7sus4", (0, 5, 7, 10))),
        ("SUSPENDED_2_7", ChordType("Suspended 2nd 7th", "7sus2", (0, 2, 7, 10))),
        ("MINOR_11_FLAT_5", ChordType("Minor 11 Flat 5", "m11b5", (0, 3, 6, 10, 14, 17))),
        ("DOMINANT_9_SHARP_11", ChordType("Dominant 9 Sharp 11", "9#11", (0, 4, 7, 10, 14, 18))),
        ("DOMINANT_13_FLAT_9", ChordType("Dominant 13 Flat 9", "13b9", (0, 4, 7, 10, 13, 17, 21))),
        ("DOMINANT_13_SHARP_9", ChordType("Dominant 13 Sharp 9", "13#9", (0, 4, 7, 10, 15, 17, 21))),
        ("DOMINANT_13_FLAT_9_SHARP_11", ChordType("Dominant 13 Flat 9 Sharp 11", "13b9#11", (0, 4, 7, 10, 13, 18, 21))),

        # --- QUARTAL ---
        ("QUARTAL", ChordType("Quartal", "quart", (0, 5, 10, 15))),
        ("SO_WHAT", ChordType("So What", "so", (0, 5, 10, 15, 19))),
    ]
)

MAJOR = CHORD_DEFINITIONS["MAJOR"]
MINOR = CHORD_DEFINITIONS["MINOR"]
DOMINANT_7TH = CHORD_DEFINITIONS["DOMINANT_7TH"]
MAJOR_7TH = CHORD_DEFINITIONS["MAJOR_7TH"]
MINOR_7TH = CHORD_DEFINITIONS["MINOR_7TH"]


class ChordCatalog:
    """
    Ordered, immutable table of chord types with exact lookup by shape.

    Two entries folding to the same pitch-class shape would make lookups
    ambiguous, so construction rejects them.
    """

    def __init__(self, definitions: Mapping[str, ChordType]):
        self._definitions: Dict[str, ChordType] = OrderedDict(definitions)
        self._by_shape: Dict[Tuple[int, ...], ChordType] = {}
        self._by_symbol: Dict[str, ChordType] = {}
        for key, chord_type in self._definitions.items():
            shape = chord_type.pitch_class_intervals
            existing = self._by_shape.get(shape)
            if existing is not None:
                raise ValueError(
                    f"Chord type '{key}' duplicates the shape {list(shape)} of '{existing.full_name}'"
                )
            self._by_shape[shape] = chord_type
            self._by_symbol.setdefault(chord_type.symbol, chord_type)

    def find_by_intervals(self, intervals: Iterable[int]) -> Optional[ChordType]:
        shape = normalize_intervals(intervals)
        if not shape:
            return None
        return self._by_shape.get(shape)

    def by_symbol(self, symbol: str) -> Optional[ChordType]:
        return self._by_symbol.get(symbol)

    def keys(self) -> List[str]:
        return list(self._definitions.keys())

    def items(self) -> List[Tuple[str, ChordType]]:
        return list(self._definitions.items())

    def __getitem__(self, key: str) -> ChordType:
        return self._definitions[key]

    def __contains__(self, chord_type: object) -> bool:
        return chord_type in self._definitions.values()

    def __iter__(self) -> Iterator[ChordType]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)


DEFAULT_CATALOG = ChordCatalog(CHORD_DEFINITIONS)


def load_chord_catalog(config_path: str = DEFAULT_CHORD_CONFIG_PATH) -> ChordCatalog:
    """
    Build a catalog from a JSON file of the form
    ``{"KEY": {"name": "Major", "symbol": "", "intervals": [0, 4, 7]}, ...}``.

    Falls back to the default catalog when the file is missing or unreadable.
    Duplicate shapes in the file raise ValueError.
    """
    config_file = Path(config_path)
    if not config_file.exists():
        logger.info(f"Chord definition file not found at '{config_path}'. Using default definitions.")
        return DEFAULT_CATALOG

    try:
        with open(config_file, "r") as f:
            custom_chords = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Error decoding JSON from '{config_path}': {e}. Using default definitions.")
        return DEFAULT_CATALOG
    except OSError as e:
        logger.error(f"Failed to read chord definitions from '{config_path}': {e}. Using default definitions.")
        return DEFAULT_CATALOG

    if not isinstance(custom_chords, dict):
        logger.warning(f"Chord definitions in '{config_path}' must be a JSON object. Using default definitions.")
        return DEFAULT_CATALOG

    loaded_definitions: Dict[str, ChordType] = OrderedDict()
    for key, data in custom_chords.items():
        data = data if isinstance(data, dict) else {}
        name = data.get("name")
        symbol = data.get("symbol", "")
        intervals = data.get("intervals")
        if (
            isinstance(name, str)
            and isinstance(symbol, str)
            and isinstance(intervals, list)
            and intervals
            and all(isinstance(i, int) and not isinstance(i, bool) and i >= 0 for i in intervals)
            and intervals[0] == 0
        ):
            loaded_definitions[key] = ChordType(name, symbol, tuple(intervals))
            logger.debug(f"Loaded custom chord: {key} - {name} {intervals}")
        else:
            logger.warning(f"Skipping invalid chord definition for '{key}' in '{config_path}'.")

    if not loaded_definitions:
        logger.warning(f"No valid chord definitions found in '{config_path}'. Using default definitions.")
        return DEFAULT_CATALOG

    catalog = ChordCatalog(loaded_definitions)
    logger.info(f"Successfully loaded {len(catalog)} chord definitions from '{config_path}'.")
    return catalog


_ORDINALS = {1: "1st", 2: "2nd", 3: "3rd"}


@dataclass(frozen=True)
class Chord:
    """
    A chord identified from sounding notes.

    ``bass_note`` is the pitch class of the lowest sounding note. When it is
    one of the chord's tones, ``inversion`` is that tone's index in
    ``pitch_classes()``; otherwise the chord is a slash chord and
    ``inversion`` is 0.
    """
    root: PitchClass
    type: ChordType
    inversion: int = 0
    bass_note: Optional[PitchClass] = None

    def __post_init__(self):
        if not (0 <= self.inversion < len(self.type.intervals)):
            raise ValueError(f"Invalid inversion {self.inversion} for {self.type.full_name}")
        if self.inversion and self.bass_note is not None and not self.contains(self.bass_note):
            raise ValueError(f"Slash chord over {self.bass_note} cannot have inversion {self.inversion}")

    def intervals(self) -> Tuple[int, ...]:
        return self.type.intervals

    def pitch_classes(self) -> Tuple[PitchClass, ...]:
        return tuple(PitchClass.from_position(self.root.position + i) for i in self.type.intervals)

    def contains(self, pitch_class: PitchClass) -> bool:
        return pitch_class in self.pitch_classes()

    def is_slash_chord(self) -> bool:
        return self.bass_note is not None and not self.contains(self.bass_note)

    def get_name(self, use_flats: bool = False) -> str:
        """Short symbol, e.g. 'C', 'Dm7', 'G7/B'."""
        name = f"{self.root.get_name(use_flats)}{self.type.symbol}"
        if self.bass_note is not None and self.bass_note != self.root:
            name += f"/{self.bass_note.get_name(use_flats)}"
        return name

    def get_full_name(self, use_flats: bool = False) -> str:
        """Long form, e.g. 'C Major/E (1st inversion)'."""
        name = f"{self.root.get_name(use_flats)} {self.type.full_name}"
        if self.bass_note is not None and self.bass_note != self.root:
            name += f"/{self.bass_note.get_name(use_flats)}"
        if self.inversion:
            ordinal = _ORDINALS.get(self.inversion, f"{self.inversion}th")
            name += f" ({ordinal} inversion)"
        return name

    def with_inversion(self, new_inversion: int) -> "Chord":
        if not (0 <= new_inversion < len(self.type.intervals)):
            raise ValueError(f"Invalid inversion: {new_inversion}")
        return Chord(self.root, self.type, new_inversion, self.pitch_classes()[new_inversion])

    @classmethod
    def major(cls, root: PitchClass) -> "Chord":
        return cls(root, MAJOR)

    @classmethod
    def minor(cls, root: PitchClass) -> "Chord":
        return cls(root, MINOR)

    @classmethod
    def dominant7(cls, root: PitchClass) -> "Chord":
        return cls(root, DOMINANT_7TH)

    @classmethod
    def major7(cls, root: PitchClass) -> "Chord":
        return cls(root, MAJOR_7TH)

    @classmethod
    def minor7(cls, root: PitchClass) -> "Chord":
        return cls(root, MINOR_7TH)

    def __str__(self) -> str:
        return self.get_name()
