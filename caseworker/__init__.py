"""
Offline caching and synchronization layer for the case tracker PWA.

Intercepts page traffic, serves it through per-resource caching lanes,
queues writes made while offline and replays them when connectivity returns.
"""
__version__ = "1.0.0"
