import os
import signal
import threading

from gumloop.controls.interrupt import InterruptMonitor


def test_request_sets_flag_and_fires_callback_once():
    calls = []
    monitor = InterruptMonitor(signals=(), on_interrupt=lambda: calls.append("stop"))

    assert monitor.requested is False
    monitor.request()
    monitor.request()

    assert monitor.requested is True
    assert calls == ["stop"]


def test_signal_is_recorded_and_handlers_restored():
    previous = signal.getsignal(signal.SIGUSR1)
    monitor = InterruptMonitor(signals=(signal.SIGUSR1,))

    with monitor:
        assert signal.getsignal(signal.SIGUSR1) == monitor._handle
        os.kill(os.getpid(), signal.SIGUSR1)

    assert monitor.requested is True
    assert signal.getsignal(signal.SIGUSR1) == previous


def test_install_off_main_thread_is_noop():
    monitor = InterruptMonitor(signals=(signal.SIGUSR1,))
    previous = signal.getsignal(signal.SIGUSR1)
    errors = []

    def _install():
        try:
            monitor.install()
        except Exception as exc:  # pragma: no cover - failure path
            errors.append(exc)

    thread = threading.Thread(target=_install)
    thread.start()
    thread.join()

    assert errors == []
    assert signal.getsignal(signal.SIGUSR1) == previous
    monitor.restore()
