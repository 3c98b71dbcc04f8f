"""
challengers — Offline Challenge Exchange & Leaderboard Gossip
=============================================================
Players send each other challenges as share links or QR codes, prove
completion through a second link, and spread a shared leaderboard by
piggybacking rankings on every exchange.  There is no server: each
device keeps its own store and replicas meet only through payloads.

Package layout::

    challengers/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Query params, payload tags, error keys
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Player, inventory, sent/received challenges, leaderboard
    ├── engine/
    │   ├── codec.py       # legacy / v2 / TA: encodings, link parsing
    │   ├── payloads.py    # Typed wire payloads (tagged union)
    │   ├── reward.py      # Completion reward + streak multiplier
    │   └── expiry.py      # Optional challenge deadlines
    └── services/
        ├── challenge_service.py     # Exchange state machine (3 legs)
        ├── proximity_service.py     # Single-QR in-person approval
        ├── leaderboard_service.py   # Gossip merge + top entries
        ├── profile_card_service.py  # Read-only profile cards
        ├── player_service.py        # Local player, inventory, monthly reset
        ├── events.py                # Store change notifications
        ├── results.py               # ProtocolResult
        └── link_router.py           # Incoming link / QR dispatch (async)
"""

__version__ = "0.1.0"
