import pytest

from midichords.core.midi_decoder import MidiDecoder
from midichords.core.midi_events import MidiEvent, MidiEventType
from midichords.core.note_tracker import ActiveNote, NoteStateTracker


@pytest.fixture
def decoder():
    return MidiDecoder()


@pytest.fixture
def tracker():
    return NoteStateTracker()


@pytest.fixture
def recorded(tracker):
    """Every tracker signal, in emission order, as (signal_name, payload)."""
    log = []
    tracker.note_activated.connect(lambda note: log.append(("activated", note.note_number)))
    tracker.note_deactivated.connect(lambda note: log.append(("deactivated", note.note_number)))
    tracker.active_notes_changed.connect(
        lambda notes: log.append(("changed", [n.note_number for n in notes]))
    )
    tracker.sustain_changed.connect(lambda is_on: log.append(("sustain", is_on)))
    return log


@pytest.fixture
def make_notes():
    def _make(*note_numbers, channel=0):
        return tuple(
            ActiveNote(note_number=n, velocity=100, channel=channel, timestamp=i)
            for i, n in enumerate(note_numbers)
        )
    return _make


@pytest.fixture
def midi():
    """Factories for MidiEvents."""
    class _Factory:
        @staticmethod
        def note_on(note, velocity=100, channel=0):
            return MidiEvent(MidiEventType.NOTE_ON, channel, note, velocity)

        @staticmethod
        def note_off(note, channel=0):
            return MidiEvent(MidiEventType.NOTE_OFF, channel, note, 0)

        @staticmethod
        def cc(controller, value, channel=0):
            return MidiEvent(MidiEventType.CONTROL_CHANGE, channel, controller, value)

    return _Factory
