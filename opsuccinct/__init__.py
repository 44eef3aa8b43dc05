"""Host-side utilities for OP Stack validity proving: ABI types, boot info, witnesses, chain data fetching, block ranges, hosts and execution statistics."""

__version__ = "0.1.0"