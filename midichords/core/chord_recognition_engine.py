import logging
import argparse
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import mido
import zmq

from midichords.core.chord_identifier import BasicChordIdentifier, ChordNotifier, ExtendedChordIdentifier
from midichords.core.midi_decoder import MidiDecoder
from midichords.core.midi_events import MidiEvent
from midichords.core.music_theory import Chord, DEFAULT_CHORD_CONFIG_PATH, PitchClass, load_chord_catalog
from midichords.core.note_tracker import ActiveNote, NoteStateTracker

# --- Constants ---
DEFAULT_ZMQ_PUB_PORT = 5557
DEFAULT_LOG_LEVEL = "INFO"
NO_CHORD = "N.C."
LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(threadName)s] %(name)s.%(funcName)s:%(lineno)d - %(message)s"

# --- Logging Setup ---
logger = logging.getLogger(__name__)  # Initial logger


def build_publish_data(
    chord: Optional[Chord], notes: Sequence[ActiveNote], use_flats: bool = False
) -> Dict[str, Any]:
    played = sorted(note.note_number for note in notes)
    publish_data: Dict[str, Any] = {
        "timestamp": time.time(),
        "full_chord_name": NO_CHORD,
        "chord_description": None,
        "played_notes_midi": played,
        "root_note_name": None,
        "bass_note_name": None,
        "inversion": None,
    }
    if played:  # Set bass_note_name if notes are played, even if no chord
        publish_data["bass_note_name"] = PitchClass.from_midi_note(played[0]).get_name(use_flats)
    if chord is not None:
        publish_data.update({
            "full_chord_name": chord.get_name(use_flats),
            "chord_description": chord.get_full_name(use_flats),
            "root_note_name": chord.root.get_name(use_flats),
            "inversion": chord.inversion,
        })
    return publish_data


# --- MIDIChordRecognizer Class ---
class MIDIChordRecognizer:
    """
    Wires a MIDI input port into the decoder, note tracker and chord notifier.

    Incoming messages are handled one at a time under ``self.lock``. Each
    chord change is sent to ``update_callback`` and, when enabled, published
    as JSON on a ZeroMQ PUB socket.
    """

    def __init__(
        self,
        midi_port_name: Optional[str] = None,
        zmq_pub_port: int = DEFAULT_ZMQ_PUB_PORT,
        chord_config_path: str = DEFAULT_CHORD_CONFIG_PATH,
        use_zmq: bool = True,
        extended: bool = True,
        use_flats: bool = False,
        update_callback: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.midi_port_name = midi_port_name
        self.zmq_pub_port = zmq_pub_port
        self.chord_config_path = chord_config_path
        self.use_zmq = use_zmq
        self.use_flats = use_flats
        self.update_callback = update_callback
        self.running = False
        self.midi_port: Optional[mido.ports.BaseInput] = None
        self.zmq_context: Optional[zmq.Context] = None
        self.zmq_socket: Optional[zmq.Socket] = None
        self.lock = threading.Lock()
        self.midi_thread: Optional[threading.Thread] = None

        catalog = load_chord_catalog(self.chord_config_path)
        identifier_cls = ExtendedChordIdentifier if extended else BasicChordIdentifier
        self.decoder = MidiDecoder()
        self.tracker = NoteStateTracker()
        self.notifier = ChordNotifier(identifier_cls(catalog))
        self.decoder.subscribe(self.tracker.on_event)
        self.notifier.attach(self.tracker)
        self.notifier.chord_identified.connect(self._on_chord_identified)
        self.notifier.chord_not_identified.connect(self._on_chord_not_identified)

    def _setup_midi(self) -> bool:
        try:
            available_ports = mido.get_input_names()
            if not available_ports:
                logger.error("No MIDI input ports found.")
                return False
            port_to_open: Optional[str] = None
            if self.midi_port_name:
                if self.midi_port_name in available_ports:
                    port_to_open = self.midi_port_name
                else:
                    logger.warning(
                        f"Specified MIDI port '{self.midi_port_name}' not found. "
                        f"Available ports: {available_ports}. Using first available: '{available_ports[0]}'."
                    )
                    port_to_open = available_ports[0]
            else:
                port_to_open = available_ports[0]
                logger.info(f"No MIDI port specified. Using first available: '{port_to_open}'.")
            self.midi_port = mido.open_input(port_to_open)
            logger.info(f"Successfully opened MIDI port: '{self.midi_port.name}'.")
            return True
        except OSError as e:
            logger.error(f"Mido MIDI I/O Error: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to open MIDI port: {e}")
            return False

    def _setup_zmq(self) -> bool:
        if not self.use_zmq:
            self.zmq_context = None
            self.zmq_socket = None
            logger.info("ZMQ publishing is disabled for this recognizer instance.")
            return True
        try:
            self.zmq_context = zmq.Context()
            self.zmq_socket = self.zmq_context.socket(zmq.PUB)
            self.zmq_socket.bind(f"tcp://*:{self.zmq_pub_port}")
            logger.info(f"ZMQ publisher bound to tcp://*:{self.zmq_pub_port}")
            return True
        except zmq.ZMQError as e:
            logger.error(f"ZMQ Error during setup: {e}")
            return False

    def process_midi_bytes(self, data: Sequence[int], timestamp: Optional[int] = None) -> List[MidiEvent]:
        """Feed one delivery of standard-stream bytes through the pipeline."""
        if timestamp is None:
            timestamp = time.monotonic_ns()
        with self.lock:
            return self.decoder.feed(data, timestamp)

    def process_midi_packets(self, data: Sequence[int], timestamp: Optional[int] = None) -> List[MidiEvent]:
        """Feed 4-byte packetized data through the pipeline."""
        if timestamp is None:
            timestamp = time.monotonic_ns()
        with self.lock:
            return self.decoder.feed_packets(data, timestamp)

    def process_message(self, msg: mido.Message) -> List[MidiEvent]:
        return self.process_midi_bytes(msg.bytes())

    def _midi_handler(self):
        logger.info("MIDI handler thread started.")
        while self.running:
            try:
                if not self.midi_port:
                    logger.error("MIDI port is not open in handler loop.")
                    time.sleep(1)
                    continue
                msg = self.midi_port.receive(block=True)
                if not self.running:
                    break
                self.process_message(msg)
            except Exception as e:
                if self.running:
                    logger.error(f"Error in MIDI handler thread: {e}", exc_info=True)
                    time.sleep(0.1)
        logger.info("MIDI handler thread stopped.")

    def _on_chord_identified(self, chord: Chord, notes: Tuple[ActiveNote, ...]) -> None:
        publish_data = build_publish_data(chord, notes, self.use_flats)
        logger.info(
            f"Chord: {publish_data['full_chord_name']} "
            f"({publish_data['chord_description']}), "
            f"Notes: {publish_data['played_notes_midi']}"
        )
        self._dispatch(publish_data)

    def _on_chord_not_identified(self, notes: Tuple[ActiveNote, ...]) -> None:
        publish_data = build_publish_data(None, notes, self.use_flats)
        logger.info(f"N.C. Active notes: {publish_data['played_notes_midi']}")
        self._dispatch(publish_data)

    def _dispatch(self, publish_data: Dict[str, Any]) -> None:
        if self.update_callback:
            try:
                self.update_callback(publish_data)
            except Exception as e:
                logger.error(f"Error in update_callback: {e}", exc_info=True)
        if self.use_zmq:
            self._publish(publish_data)

    def _publish(self, data_to_publish: Dict[str, Any]):
        if not self.zmq_socket or not self.running:
            return
        try:
            self.zmq_socket.send_json(data_to_publish)
            logger.debug(f"ZMQ Published: {data_to_publish.get('full_chord_name', NO_CHORD)}")
        except zmq.ZMQError as e:
            logger.warning(f"ZMQ publish error: {e}")

    def start(self) -> bool:
        with self.lock:
            if self.running:
                logger.info("Recognizer already running.")
                return True
            logger.info("Starting MIDI Chord Recognizer...")
            if not self._setup_midi() or not self._setup_zmq():
                logger.error("Setup failed. Cleaning up and aborting start.")
                self._cleanup()
                return False
            self.running = True
            self.midi_thread = threading.Thread(
                target=self._midi_handler, name="MIDIHandlerThread", daemon=True
            )
            self.midi_thread.start()
            logger.info("Recognizer started successfully.")
            return True

    def stop(self):
        logger.info("Stopping MIDI Chord Recognizer...")
        with self.lock:
            if not self.running:
                logger.info("Recognizer already stopped.")
                return
            self.running = False
        if self.midi_thread and self.midi_thread.is_alive():
            logger.debug("Waiting for MIDI handler thread to join...")
            if self.midi_port:
                try:
                    self.midi_port.close()
                    logger.debug("MIDI port closed to help thread unblock.")
                except Exception as e:
                    logger.warning(f"Exception closing MIDI port during stop: {e}")
            self.midi_thread.join(timeout=2.0)
            if self.midi_thread.is_alive():
                logger.warning("MIDI handler thread did not join in time.")
        with self.lock:
            self._cleanup()
        logger.info("Recognizer stopped.")

    def _cleanup(self):
        logger.debug("Cleaning up resources...")
        if self.midi_port and not self.midi_port.closed:
            try:
                self.midi_port.close()
                logger.debug("MIDI port closed.")
            except Exception as e:
                logger.warning(f"Error closing MIDI port: {e}")
        self.midi_port = None
        if self.zmq_socket:
            try:
                self.zmq_socket.close(linger=0)
                logger.debug("ZMQ socket closed.")
            except zmq.ZMQError as e:
                logger.warning(f"Error closing ZMQ socket: {e}")
        self.zmq_socket = None
        if self.zmq_context:
            try:
                self.zmq_context.term()
                logger.debug("ZMQ context terminated.")
            except zmq.ZMQError as e:
                logger.warning(f"Error terminating ZMQ context: {e}")
        self.zmq_context = None
        self.decoder.reset()
        self.tracker.reset()
        self.notifier.reset()
        logger.debug("Internal state cleared.")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="MIDI Chord Recognizer with ZMQ Publisher."
    )
    parser.add_argument(
        "--midi-port", type=str, default=None, help="Name of the MIDI input port."
    )
    parser.add_argument(
        "--zmq-port",
        type=int,
        default=DEFAULT_ZMQ_PUB_PORT,
        help=f"ZMQ port (default: {DEFAULT_ZMQ_PUB_PORT}).",
    )
    parser.add_argument(
        "--no-zmq", action="store_true", help="Disable ZMQ publishing."
    )
    parser.add_argument(
        "--config",
        type=str,
        default=DEFAULT_CHORD_CONFIG_PATH,
        help=f"Chord definitions JSON (default: '{DEFAULT_CHORD_CONFIG_PATH}').",
    )
    parser.add_argument(
        "--basic", action="store_true", help="Exact matches only, no partial matching."
    )
    parser.add_argument(
        "--use-flats", action="store_true", help="Spell chord names with flats."
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=DEFAULT_LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=f"Logging level (default: {DEFAULT_LOG_LEVEL}).",
    )
    parser.add_argument(
        "--list-midi-ports", action="store_true", help="List MIDI input ports and exit."
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    log_level_numeric = getattr(logging, args.log_level.upper(), logging.INFO)
    logging.basicConfig(level=log_level_numeric, format=LOG_FORMAT)

    if args.list_midi_ports:
        try:
            available_ports = mido.get_input_names()
        except Exception as e:
            logger.error(f"Could not list MIDI ports: {e}")
            return 1
        if available_ports:
            print("Available MIDI input ports:")
            for p in available_ports:
                print(f'  - "{p}"')
        else:
            print("No MIDI input ports found.")
        return 0

    recognizer = MIDIChordRecognizer(
        midi_port_name=args.midi_port,
        zmq_pub_port=args.zmq_port,
        chord_config_path=args.config,
        use_zmq=not args.no_zmq,
        extended=not args.basic,
        use_flats=args.use_flats,
    )

    if not recognizer.start():
        logger.error("Failed to start MIDI Chord Recognizer.")
        return 1
    logger.info("MIDI Chord Recognizer running. Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received.")
    finally:
        recognizer.stop()
    return 0


# --- Main Execution ---
if __name__ == "__main__":
    raise SystemExit(main())
