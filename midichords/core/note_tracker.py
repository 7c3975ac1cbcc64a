from collections import OrderedDict
from dataclasses import dataclass, replace
import logging
import time
from typing import Dict, Optional, Tuple

from midichords.core.midi_events import MidiEvent, MidiEventType, SUSTAIN_THRESHOLD
from midichords.core.music_theory import Note, PitchClass, midi_to_frequency
from midichords.core.signals import Signal

# --- Logging Setup ---
logger = logging.getLogger(__name__)

NoteKey = Tuple[int, int]


@dataclass(frozen=True)
class ActiveNote:
    """
    A currently sounding note.

    Attributes:
        note_number: MIDI note number (0-127)
        velocity: Note On velocity (1-127)
        channel: MIDI channel the note arrived on (0-15)
        timestamp: Activation time in milliseconds
        sustained: Released while the sustain pedal was down
    """
    note_number: int
    velocity: int
    channel: int
    timestamp: int
    sustained: bool = False

    @property
    def key(self) -> NoteKey:
        return (self.note_number, self.channel)

    @property
    def pitch_class(self) -> PitchClass:
        return PitchClass.from_midi_note(self.note_number)

    def frequency(self) -> float:
        return midi_to_frequency(self.note_number)

    def get_name(self, use_flats: bool = False) -> str:
        return Note.from_midi_note(self.note_number).get_name(use_flats)

    def is_same_note(self, other: "ActiveNote") -> bool:
        return self.key == other.key


class NoteStateTracker:
    """
    Tracks sounding notes from decoded MIDI events.

    Notes are keyed by (note number, channel). With the sustain pedal down a
    Note Off only flags the note as sustained; releasing the pedal removes
    every flagged note at once. Not thread-safe: feed it from one thread.

    Signals:
        note_activated(ActiveNote)
        note_deactivated(ActiveNote)
        active_notes_changed(Tuple[ActiveNote, ...])
        sustain_changed(bool)
    """

    def __init__(self):
        self._notes: Dict[NoteKey, ActiveNote] = OrderedDict()
        self._sustain_on = False
        self.note_activated = Signal("note_activated")
        self.note_deactivated = Signal("note_deactivated")
        self.active_notes_changed = Signal("active_notes_changed")
        self.sustain_changed = Signal("sustain_changed")

    def on_event(self, event: MidiEvent) -> None:
        if event.type is MidiEventType.NOTE_ON:
            if event.data2 == 0:
                self._process_note_off(event)
            else:
                self._process_note_on(event)
        elif event.type is MidiEventType.NOTE_OFF:
            self._process_note_off(event)
        elif event.is_sustain_pedal():
            self.set_sustain_pedal(event.data2 >= SUSTAIN_THRESHOLD)

    def _process_note_on(self, event: MidiEvent) -> None:
        note = ActiveNote(
            note_number=event.data1,
            velocity=event.data2,
            channel=event.channel,
            timestamp=int(time.time() * 1000),
        )
        retriggered = self._replace(note)
        logger.debug(
            f"Note ON{' (re-trigger)' if retriggered else ''}: {note.note_number} Vel: {note.velocity} "
            f"| Active: {self._active_numbers()}"
        )
        self.note_activated.emit(note)
        self._notify_active_notes_changed()

    def _process_note_off(self, event: MidiEvent) -> None:
        note = self._notes.get((event.data1, event.channel))
        if note is None:
            return
        if self._sustain_on:
            if not note.sustained:
                self._notes[note.key] = replace(note, sustained=True)
            logger.debug(f"Note OFF (sustained): {note.note_number}")
            return
        del self._notes[note.key]
        logger.debug(f"Note OFF: {note.note_number} | Active: {self._active_numbers()}")
        self.note_deactivated.emit(note)
        self._notify_active_notes_changed()

    def _replace(self, note: ActiveNote) -> bool:
        """Insert ``note``, displacing any note with the same key to the end."""
        previous = self._notes.pop(note.key, None)
        self._notes[note.key] = note
        return previous is not None

    def set_sustain_pedal(self, is_on: bool) -> None:
        if self._sustain_on == is_on:
            return
        self._sustain_on = is_on
        logger.debug(f"Sustain Pedal {'ON' if is_on else 'OFF'} | Active: {self._active_numbers()}")

        if not is_on:
            released = [note for note in self._notes.values() if note.sustained]
            for note in released:
                del self._notes[note.key]
            for note in released:
                self.note_deactivated.emit(note)
            if released:
                logger.debug(
                    f"Post Sustain OFF, removed: {sorted(n.note_number for n in released)} "
                    f"| Active: {self._active_numbers()}"
                )
                self._notify_active_notes_changed()

        self.sustain_changed.emit(is_on)

    def get_active_notes(self) -> Tuple[ActiveNote, ...]:
        return tuple(self._notes.values())

    def find_active_note(self, note_number: int, channel: Optional[int] = None) -> Optional[ActiveNote]:
        """Look up by (note, channel), or by note number alone when channel is None."""
        if channel is not None:
            return self._notes.get((note_number, channel))
        return next((n for n in self._notes.values() if n.note_number == note_number), None)

    def is_note_active(self, note_number: int, channel: Optional[int] = None) -> bool:
        return self.find_active_note(note_number, channel) is not None

    @property
    def active_note_count(self) -> int:
        return len(self._notes)

    @property
    def is_sustain_on(self) -> bool:
        return self._sustain_on

    def reset(self) -> None:
        """Drop all notes and lift the pedal without notifying."""
        self._notes.clear()
        self._sustain_on = False
        logger.debug("Note state cleared.")

    def _active_numbers(self):
        return sorted(n.note_number for n in self._notes.values())

    def _notify_active_notes_changed(self) -> None:
        self.active_notes_changed.emit(self.get_active_notes())
