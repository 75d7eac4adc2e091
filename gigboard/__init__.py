"""gigboard - job marketplace backend.

Clients post local service jobs, workers claim them, and each job moves
through posted -> assigned -> active -> completed with an OTP handshake
gating completion.
"""

__version__ = "0.1.0"
