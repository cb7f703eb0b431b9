"""Helpers for KeyboardInterrupt handling inside worker threads.

Build work runs on background threads (the pipeline worker, download and
resolver pools). A KeyboardInterrupt caught on one of those threads would
otherwise die with the thread, so it is forwarded to the main thread first.
"""

import _thread


def handle_keyboard_interrupt_properly(ke: KeyboardInterrupt) -> None:
    """Forward a KeyboardInterrupt to the main thread and re-raise it.

    Usage:
        try:
            extractor.extract(archive, target)
        except KeyboardInterrupt as ke:
            handle_keyboard_interrupt_properly(ke)

    Args:
        ke: The KeyboardInterrupt being handled

    Raises:
        KeyboardInterrupt: Always
    """
    _thread.interrupt_main()
    raise ke
