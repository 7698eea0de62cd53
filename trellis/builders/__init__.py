"""Graph builders."""

from trellis.builders.state_graph import StateGraph

__all__ = ["StateGraph"]
