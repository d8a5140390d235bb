"""Poissonarr - Poisson-timed Traffic Noise Engine.

Generates an irregular stream of decoy browsing actions (searches, page
visits, ad-heavy page visits) whose arrivals follow a Poisson process, and
survives the hosting process being restarted between any two calls.
"""

__version__ = "0.1.0"
