"""
MIDI byte decoding.

Two wire shapes are understood:

- the standard byte stream, with running status: a data byte in status
  position reuses the last channel status byte seen;
- 4-byte packets ``[header, status, data1, data2]`` where the header's high
  nibble is 0 and its low nibble (Code Index Number) is 0x8-0xE. Packets are
  self-contained and neither read nor update running status.

A byte window that cannot be decoded yields ``None``. That is a normal
outcome on a live stream, never an exception.

Note On with velocity 0 is normalized here to a NOTE_OFF event so that
downstream consumers only ever see one "note released" shape.
"""
from dataclasses import dataclass
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from midichords.core.midi_events import MidiEvent, MidiEventType
from midichords.core.signals import Signal, Subscription
from midichords.utils.utils import format_midi_bytes

logger = logging.getLogger(__name__)

# --- Constants ---
PACKET_SIZE = 4
MIN_PACKET_CIN = 0x08
MAX_PACKET_CIN = 0x0E
SYSEX_END = 0xF7

# Data bytes that follow each channel status command
CHANNEL_DATA_LENGTHS: Dict[int, int] = {
    0x80: 2,  # Note Off
    0x90: 2,  # Note On
    0xA0: 2,  # Polyphonic Aftertouch
    0xB0: 2,  # Control Change
    0xC0: 1,  # Program Change
    0xD0: 1,  # Channel Aftertouch
    0xE0: 2,  # Pitch Bend
}

# Commands that produce events; the rest are skipped over
SUPPORTED_COMMANDS: Dict[int, MidiEventType] = {
    0x80: MidiEventType.NOTE_OFF,
    0x90: MidiEventType.NOTE_ON,
    0xB0: MidiEventType.CONTROL_CHANGE,
}

SYSTEM_COMMON_DATA_LENGTHS: Dict[int, int] = {
    0xF1: 1,  # MTC Quarter Frame
    0xF2: 2,  # Song Position Pointer
    0xF3: 1,  # Song Select
    0xF4: 0,
    0xF5: 0,
    0xF6: 0,  # Tune Request
    0xF7: 0,  # stray End of Exclusive
}


@dataclass(frozen=True)
class DecoderState:
    """Running-status state threaded between decode calls."""
    running_status: Optional[int] = None

    def with_status(self, status_byte: Optional[int]) -> "DecoderState":
        if status_byte == self.running_status:
            return self
        return DecoderState(running_status=status_byte)


INITIAL_STATE = DecoderState()


def is_packet_header(byte: int) -> bool:
    byte &= 0xFF
    return (byte & 0xF0) == 0x00 and MIN_PACKET_CIN <= (byte & 0x0F) <= MAX_PACKET_CIN


def _build_event(status_byte: int, data1: int, data2: int, timestamp: int) -> Optional[MidiEvent]:
    command = status_byte & 0xF0
    channel = status_byte & 0x0F
    if command not in SUPPORTED_COMMANDS:
        logger.debug(f"Unsupported command: 0x{command:02x}")
        return None
    if command == 0x90 and data2 == 0:
        status_byte = 0x80 | channel
    return MidiEvent.from_bytes(status_byte, data1, data2, timestamp)


def _decode_packet(data: Sequence[int], offset: int, timestamp: int) -> Optional[MidiEvent]:
    status_byte = data[offset + 1] & 0xFF
    data1 = data[offset + 2] & 0xFF
    data2 = data[offset + 3] & 0xFF
    if status_byte < 0x80 or data1 >= 0x80 or data2 >= 0x80:
        logger.debug(f"Malformed packet: {format_midi_bytes(data, offset, PACKET_SIZE)}")
        return None
    logger.debug(
        f"Packet CIN 0x{data[offset] & 0x0F:x}: status=0x{status_byte:02x}, data1={data1}, data2={data2}"
    )
    return _build_event(status_byte, data1, data2, timestamp)


def _decode_standard(
    data: Sequence[int], offset: int, length: int, timestamp: int, state: DecoderState
) -> Tuple[Optional[MidiEvent], int, DecoderState]:
    """Decode one message at ``offset``; returns (event, bytes consumed, new state)."""
    first = data[offset] & 0xFF
    if first >= 0x80:
        if first >= 0xF8:
            return None, 1, state
        if first >= 0xF0:
            # System exclusive/common cancel running status
            return None, 1, state.with_status(None)
        status_byte = first
        header = 1
        state = state.with_status(status_byte)
    else:
        if state.running_status is None:
            logger.debug("No running status available for data byte")
            return None, 1, state
        status_byte = state.running_status
        header = 0

    command = status_byte & 0xF0
    needed = CHANNEL_DATA_LENGTHS[command]
    available = 0
    while available < needed and header + available < length:
        if data[offset + header + available] & 0x80:
            break
        available += 1

    if available < needed:
        logger.debug(
            f"Insufficient data for status 0x{status_byte:02x}: need {needed}, have {available}"
        )
        return None, header + available, state

    data1 = data[offset + header] & 0xFF
    data2 = data[offset + header + 1] & 0xFF if needed == 2 else 0
    return _build_event(status_byte, data1, data2, timestamp), header + needed, state


def decode(
    data: Sequence[int],
    offset: int,
    length: int,
    timestamp: int = 0,
    state: DecoderState = INITIAL_STATE,
) -> Tuple[Optional[MidiEvent], DecoderState]:
    """
    Decode at most one event from ``data[offset:offset+length]``.

    Returns the event (or None) and the state to pass to the next call.
    """
    if length < 1 or offset < 0 or offset + length > len(data):
        logger.debug(f"Invalid byte window: offset={offset}, length={length}, size={len(data)}")
        return None, state
    if length >= PACKET_SIZE and is_packet_header(data[offset]):
        return _decode_packet(data, offset, timestamp), state
    event, _, new_state = _decode_standard(data, offset, length, timestamp, state)
    return event, new_state


def _is_interrupting_status(byte: int) -> bool:
    # Real-time bytes may appear anywhere; any other status byte ends a message
    return 0x80 <= byte < 0xF8


def _skip_sysex(data: Sequence[int], pos: int, end: int) -> int:
    """Position after the SysEx body starting at ``pos``."""
    while pos < end:
        byte = data[pos] & 0xFF
        if byte == SYSEX_END:
            return pos + 1
        if _is_interrupting_status(byte):
            logger.debug(f"Unterminated SysEx ended by status 0x{byte:02x}")
            return pos
        pos += 1
    return pos


def _skip_data_bytes(data: Sequence[int], pos: int, end: int, count: int) -> int:
    skipped = 0
    while pos < end and skipped < count:
        byte = data[pos] & 0xFF
        if _is_interrupting_status(byte):
            logger.debug(f"Truncated system common message ended by status 0x{byte:02x}")
            break
        if byte < 0x80:
            skipped += 1
        pos += 1
    return pos


def decode_stream(
    data: Sequence[int], timestamp: int = 0, state: DecoderState = INITIAL_STATE
) -> Tuple[List[MidiEvent], DecoderState]:
    """Decode every complete message in a standard MIDI byte stream."""
    events: List[MidiEvent] = []
    pos = 0
    end = len(data)
    while pos < end:
        byte = data[pos] & 0xFF
        if byte >= 0xF8:
            pos += 1
        elif byte == 0xF0:
            state = state.with_status(None)
            pos = _skip_sysex(data, pos + 1, end)
        elif byte > 0xF0:
            state = state.with_status(None)
            pos = _skip_data_bytes(data, pos + 1, end, SYSTEM_COMMON_DATA_LENGTHS[byte])
        else:
            event, consumed, state = _decode_standard(data, pos, end - pos, timestamp, state)
            if event is not None:
                events.append(event)
            pos += consumed
    return events, state


def decode_packets(data: Sequence[int], timestamp: int = 0) -> List[MidiEvent]:
    """Decode consecutive 4-byte packets; a trailing partial packet is ignored."""
    events: List[MidiEvent] = []
    for pos in range(0, len(data) - PACKET_SIZE + 1, PACKET_SIZE):
        if not is_packet_header(data[pos]):
            continue
        event = _decode_packet(data, pos, timestamp)
        if event is not None:
            events.append(event)
    return events


class MidiDecoder:
    """
    Stateful decoder owning one running-status value.

    Single-writer: one decoder per input stream, fed from one thread at a
    time. Every decoded event is also emitted on ``midi_event``.
    """

    def __init__(self, state: DecoderState = INITIAL_STATE):
        self.state = state
        self.midi_event = Signal("midi_event")

    def process_midi_data(
        self, data: Sequence[int], offset: int, length: int, timestamp: int = 0
    ) -> Optional[MidiEvent]:
        event, self.state = decode(data, offset, length, timestamp, self.state)
        if event is None:
            logger.debug(f"No event from bytes: {format_midi_bytes(data, offset, max(length, 0))}")
            return None
        self._notify(event)
        return event

    def feed(self, data: Sequence[int], timestamp: int = 0) -> List[MidiEvent]:
        events, self.state = decode_stream(data, timestamp, self.state)
        for event in events:
            self._notify(event)
        return events

    def feed_packets(self, data: Sequence[int], timestamp: int = 0) -> List[MidiEvent]:
        events = decode_packets(data, timestamp)
        for event in events:
            self._notify(event)
        return events

    def reset(self) -> None:
        self.state = INITIAL_STATE

    def subscribe(self, listener) -> Subscription:
        return self.midi_event.connect(listener)

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self.midi_event.disconnect(subscription)

    def _notify(self, event: MidiEvent) -> None:
        logger.debug(
            f"Decoded {event.type.name}: channel={event.channel}, data1={event.data1}, data2={event.data2}"
        )
        self.midi_event.emit(event)
