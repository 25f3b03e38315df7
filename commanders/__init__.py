"""
AI commanders for the Fractured Sphere.

Commanders play through the same action API as a human player.
"""

from .base import Commander, CommanderConfig
from .heuristic import HeuristicCommander

__all__ = ["Commander", "CommanderConfig", "HeuristicCommander"]
