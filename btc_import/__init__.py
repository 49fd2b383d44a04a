"""
BTC → TangoTiempo event import.

One-way migration of events from the Boston Tango Calendar WordPress API into
the TangoTiempo events API, resolving venues, organizers and categories along
the way.
"""

__version__ = "0.3.0"
