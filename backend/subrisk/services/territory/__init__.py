"""Territory domain services: graph, rosters, conquest rules and win detection.

HTTP routes and socket handlers call into this package; nothing here knows
about transports beyond the broadcaster interface in ``events``.
"""
