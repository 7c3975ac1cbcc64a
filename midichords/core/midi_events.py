from dataclasses import dataclass
from enum import Enum
import time
from typing import Optional

# --- Constants ---
SUSTAIN_PEDAL_CONTROLLER = 64
SUSTAIN_THRESHOLD = 64


class MidiEventType(Enum):
    NOTE_OFF = 0x80
    NOTE_ON = 0x90
    POLYPHONIC_AFTERTOUCH = 0xA0
    CONTROL_CHANGE = 0xB0
    PROGRAM_CHANGE = 0xC0
    CHANNEL_AFTERTOUCH = 0xD0
    PITCH_BEND = 0xE0
    SYSTEM_EXCLUSIVE = 0xF0
    SYSTEM_COMMON = 0xF1
    SYSTEM_REAL_TIME = 0xF8

    @classmethod
    def from_status_byte(cls, status_byte: int) -> Optional["MidiEventType"]:
        status_byte &= 0xFF
        if status_byte < 0x80:
            return None
        if status_byte >= 0xF8:
            return cls.SYSTEM_REAL_TIME
        if status_byte == 0xF0:
            return cls.SYSTEM_EXCLUSIVE
        if status_byte > 0xF0:
            return cls.SYSTEM_COMMON
        return cls(status_byte & 0xF0)


@dataclass(frozen=True)
class MidiEvent:
    """
    A decoded MIDI channel message.

    Attributes:
        type: Message category
        channel: MIDI channel (0-15)
        data1: Note number for note events, controller number for CC events
        data2: Velocity for note events, value for CC events
        timestamp: Transport timestamp the bytes arrived with
    """
    type: MidiEventType
    channel: int
    data1: int
    data2: int = 0
    timestamp: int = 0

    @classmethod
    def from_bytes(cls, status_byte: int, data1: int, data2: int = 0,
                   timestamp: Optional[int] = None) -> Optional["MidiEvent"]:
        event_type = MidiEventType.from_status_byte(status_byte)
        if event_type is None:
            return None
        return cls(
            type=event_type,
            channel=status_byte & 0x0F,
            data1=data1 & 0x7F,
            data2=data2 & 0x7F,
            timestamp=time.monotonic_ns() if timestamp is None else timestamp,
        )

    def is_note_on(self) -> bool:
        return self.type is MidiEventType.NOTE_ON and self.data2 > 0

    def is_note_off(self) -> bool:
        return self.type is MidiEventType.NOTE_OFF or (
            self.type is MidiEventType.NOTE_ON and self.data2 == 0
        )

    def is_sustain_pedal(self) -> bool:
        return self.type is MidiEventType.CONTROL_CHANGE and self.data1 == SUSTAIN_PEDAL_CONTROLLER

    def is_sustain_on(self) -> bool:
        """For sustain pedal events, True if the pedal is pressed."""
        return self.is_sustain_pedal() and self.data2 >= SUSTAIN_THRESHOLD
