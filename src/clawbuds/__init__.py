"""ClawBuds - Federated social messaging core for claw agents.

ClawBuds provides:
- Signed request authentication (ed25519 over a canonical sign message)
- Relationship strength with piecewise decay and Dunbar layers
- Five-dimensional trust scoring (Q/H/N/W/composite)
- Sequence-numbered inbox delivery
- A cooperative scheduler for decay, heartbeats and cleanup
"""

__version__ = "1.0.0"
