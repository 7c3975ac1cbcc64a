"""
Chord identification from the set of sounding notes.

The basic identifier tries each distinct pitch class as a root, in the order
the notes are held, and returns the first exact catalog match. The extended
identifier falls back to scoring every (root, chord type) pair with the F1
score of the played and catalog pitch-class sets when nothing matches
exactly.

Both are pure functions of the note snapshot: identical input gives an equal
Chord (or None), and malformed input yields None rather than an error.
"""
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from midichords.core.music_theory import Chord, ChordCatalog, ChordType, DEFAULT_CATALOG, PitchClass
from midichords.core.note_tracker import ActiveNote, NoteStateTracker
from midichords.core.signals import Signal, Subscription

logger = logging.getLogger(__name__)

# --- Constants ---
MIN_PITCH_CLASSES_FOR_CHORD = 3
PARTIAL_MATCH_THRESHOLD = 0.8


def distinct_pitch_classes(notes: Iterable[ActiveNote]) -> List[PitchClass]:
    """Pitch classes of ``notes`` in first-seen order."""
    seen: List[PitchClass] = []
    for note in notes:
        pc = PitchClass.from_midi_note(note.note_number)
        if pc not in seen:
            seen.append(pc)
    return seen


def find_bass_note(notes: Iterable[ActiveNote]) -> Optional[PitchClass]:
    lowest = min(notes, key=lambda n: n.note_number, default=None)
    if lowest is None:
        return None
    return PitchClass.from_midi_note(lowest.note_number)


def intervals_from_root(pitch_classes: Iterable[PitchClass], root: PitchClass) -> Tuple[int, ...]:
    return tuple(sorted({(pc.position - root.position + 12) % 12 for pc in pitch_classes}))


def match_score(actual_intervals: Sequence[int], chord_intervals: Sequence[int]) -> float:
    """F1 score (harmonic mean of precision and recall) of two interval sets."""
    actual = set(actual_intervals)
    target = set(chord_intervals)
    if not actual or not target:
        return 0.0
    matched = len(actual & target)
    precision = matched / len(actual)
    recall = matched / len(target)
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


def build_chord(root: PitchClass, chord_type: ChordType, bass: Optional[PitchClass]) -> Chord:
    inversion = 0
    if bass is not None:
        chord_pcs = [PitchClass.from_position(root.position + i) for i in chord_type.intervals]
        if bass in chord_pcs:
            inversion = chord_pcs.index(bass)
    return Chord(root, chord_type, inversion, bass)


class BasicChordIdentifier:
    """Exact interval-set matching against a chord catalog."""

    def __init__(self, catalog: ChordCatalog = DEFAULT_CATALOG):
        self.catalog = catalog

    def identify(self, notes: Sequence[ActiveNote]) -> Optional[Chord]:
        try:
            pitch_classes = distinct_pitch_classes(notes)
            bass = find_bass_note(notes)
        except (AttributeError, TypeError) as e:
            logger.debug(f"Cannot identify chord from malformed notes: {e}")
            return None
        return self.identify_pitch_classes(pitch_classes, bass)

    def identify_pitch_classes(
        self, pitch_classes: Sequence[PitchClass], bass: Optional[PitchClass] = None
    ) -> Optional[Chord]:
        pitch_classes = list(dict.fromkeys(pitch_classes))
        if len(pitch_classes) < MIN_PITCH_CLASSES_FOR_CHORD:
            return None
        return self._exact_match(pitch_classes, bass)

    def _exact_match(self, pitch_classes: List[PitchClass], bass: Optional[PitchClass]) -> Optional[Chord]:
        for root in pitch_classes:
            chord_type = self.catalog.find_by_intervals(intervals_from_root(pitch_classes, root))
            if chord_type is not None:
                chord = build_chord(root, chord_type, bass)
                logger.debug(f"Exact match: {chord.get_name()}")
                return chord
        return None


class ExtendedChordIdentifier(BasicChordIdentifier):
    """
    Exact matching first, then best partial match.

    Partial matches are scored per (root, chord type) pair. Roots are tried
    in ascending pitch-class order and chord types in catalog order; a pair
    only displaces the current best with a strictly higher score, so true
    ties resolve to the lowest root, then the earliest catalog entry.
    """

    def __init__(self, catalog: ChordCatalog = DEFAULT_CATALOG,
                 threshold: float = PARTIAL_MATCH_THRESHOLD):
        super().__init__(catalog)
        self.threshold = threshold

    def identify_pitch_classes(
        self, pitch_classes: Sequence[PitchClass], bass: Optional[PitchClass] = None
    ) -> Optional[Chord]:
        chord = super().identify_pitch_classes(pitch_classes, bass)
        if chord is not None:
            return chord
        pitch_classes = list(dict.fromkeys(pitch_classes))
        if len(pitch_classes) < MIN_PITCH_CLASSES_FOR_CHORD:
            return None
        return self.find_best_partial_match(pitch_classes, bass)

    def find_best_partial_match(
        self, pitch_classes: Sequence[PitchClass], bass: Optional[PitchClass] = None
    ) -> Optional[Chord]:
        best_score = 0.0
        best: Optional[Tuple[PitchClass, ChordType]] = None

        for root in sorted(set(pitch_classes), key=lambda pc: pc.position):
            actual = intervals_from_root(pitch_classes, root)
            for chord_type in self.catalog:
                score = match_score(actual, chord_type.pitch_class_intervals)
                if score >= self.threshold and score > best_score:
                    best_score = score
                    best = (root, chord_type)

        if best is None:
            return None
        chord = build_chord(best[0], best[1], bass)
        logger.debug(f"Found partial match chord: {chord.get_name()} with score: {best_score:.3f}")
        return chord


class ChordNotifier:
    """
    Re-identifies on every active-set change and reports chord changes.

    Signals:
        chord_identified(Chord, Tuple[ActiveNote, ...]) when the chord differs
            from the last one reported
        chord_not_identified(Tuple[ActiveNote, ...]) when a previously
            identified chord stops applying
    """

    def __init__(self, identifier: Optional[BasicChordIdentifier] = None):
        self.identifier = identifier if identifier is not None else ExtendedChordIdentifier()
        self.last_chord: Optional[Chord] = None
        self.current_notes: Tuple[ActiveNote, ...] = ()
        self.chord_identified = Signal("chord_identified")
        self.chord_not_identified = Signal("chord_not_identified")
        self._subscription: Optional[Subscription] = None
        self._tracker: Optional[NoteStateTracker] = None

    def attach(self, tracker: NoteStateTracker) -> None:
        self.detach()
        self._tracker = tracker
        self._subscription = tracker.active_notes_changed.connect(self.on_active_notes_changed)

    def detach(self) -> None:
        if self._tracker is not None and self._subscription is not None:
            self._tracker.active_notes_changed.disconnect(self._subscription)
        self._tracker = None
        self._subscription = None

    def on_active_notes_changed(self, notes: Sequence[ActiveNote]) -> None:
        self.current_notes = tuple(notes)
        chord = self.identifier.identify(self.current_notes)
        if chord is not None:
            if chord != self.last_chord:
                self.last_chord = chord
                logger.info(f"Chord identified: {chord.get_name()}")
                self.chord_identified.emit(chord, self.current_notes)
        elif self.last_chord is not None:
            self.last_chord = None
            logger.info(f"No chord identified from {len(self.current_notes)} notes")
            self.chord_not_identified.emit(self.current_notes)

    def reset(self) -> None:
        self.last_chord = None
        self.current_notes = ()
