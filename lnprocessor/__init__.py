"""Lightning Network payment verification and tracking.

Verifies claimed Lightning payments against an interchangeable backend
(managed wallet service, embedded protocol-native node or a stub),
tracks each payment through its lifecycle and emits domain events.
"""

__version__ = "0.1.0"
