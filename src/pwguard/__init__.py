"""pwguard - a watchdog for PipeWire audio routing.

Probes the audio server on an interval, escalates through a ladder of
increasingly invasive repairs when it degrades, re-verifies after every
repair, and alerts a human once the ladder is exhausted.
"""

__version__ = "0.1.0"
