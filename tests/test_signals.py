import logging

from midichords.core.signals import Signal


def test_emit_in_connection_order():
    signal = Signal("test")
    calls = []
    signal.connect(lambda x: calls.append(("a", x)))
    signal.connect(lambda x: calls.append(("b", x)))
    signal.emit(1)
    assert calls == [("a", 1), ("b", 1)]
    assert len(signal) == 2


def test_disconnect():
    signal = Signal("test")
    calls = []
    sub = signal.connect(calls.append)
    assert signal.disconnect(sub) is True
    assert signal.disconnect(sub) is False
    signal.emit(1)
    assert calls == []


def test_failing_slot_is_logged_and_skipped(caplog):
    signal = Signal("test")
    calls = []

    def broken(_):
        raise ValueError("boom")

    signal.connect(broken)
    signal.connect(calls.append)
    with caplog.at_level(logging.ERROR, logger="midichords.core.signals"):
        signal.emit(7)
    assert calls == [7]
    assert "boom" in caplog.text


def test_slot_may_disconnect_during_emit():
    signal = Signal("test")
    calls = []
    subs = {}

    def once(x):
        calls.append(x)
        signal.disconnect(subs["once"])

    subs["once"] = signal.connect(once)
    signal.connect(calls.append)
    signal.emit(1)
    signal.emit(2)
    assert calls == [1, 1, 2]
