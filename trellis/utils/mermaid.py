"""Diagram export for compiled Trellis graphs.

Renders the static topology (nodes, fixed edges, conditional-edge path-map
entries) as Mermaid, Graphviz DOT or a plain-text summary, and saves
Mermaid diagrams as images through the mermaid.ink API. This is a pure read
of the graph metadata; conditional edges without a path map cannot be
enumerated and are rendered as comments.
"""

import base64
import logging
from typing import List, Optional, Tuple, TYPE_CHECKING
from pathlib import Path

import httpx

from trellis.core.graph import END, START

if TYPE_CHECKING:
    from trellis.core.graph import ExecutionGraph

logger = logging.getLogger(__name__)

MERMAID_INK_URL = "https://mermaid.ink"


def _fixed_edges(graph: "ExecutionGraph") -> List[Tuple[str, str]]:
    return sorted((edge.source, edge.target) for edge in graph.edges)


def _conditional_edges(graph: "ExecutionGraph"):
    return sorted(graph.conditional_edges, key=lambda ce: ce.source)


def generate_mermaid_code(
    graph: "ExecutionGraph",
    title: Optional[str] = None,
    direction: str = "TD",
) -> str:
    """Generate Mermaid flowchart code from an ExecutionGraph.

    START and END are rounded nodes, user nodes rectangles. Fixed edges are
    solid arrows; path-map entries are dashed arrows labelled with their
    label. Deferred nodes are tagged with a ``deferred`` class.

    Args:
        graph: The ExecutionGraph to visualize
        title: Optional title to display above the diagram
        direction: Flowchart direction - "TD" (top-down) or "LR" (left-right)

    Returns:
        String containing Mermaid flowchart code
    """
    lines = []

    if title:
        lines.append("---")
        lines.append(f"title: {title}")
        lines.append("---")

    lines.append(f"graph {direction}")

    lines.append(f'    {START}(["{START}"])')
    for name in sorted(graph.nodes):
        lines.append(f'    {name}["{name}"]')
    lines.append(f'    {END}(["{END}"])')

    lines.append(f"    {START} --> {graph.entry_point}")

    for source, target in _fixed_edges(graph):
        lines.append(f"    {source} --> {target}")

    for ce in _conditional_edges(graph):
        if ce.path_map:
            for label in sorted(ce.path_map):
                lines.append(f"    {ce.source} -.-> |{label}| {ce.path_map[label]}")
        else:
            lines.append(f"    %% {ce.source} has conditional edge (path_map not provided)")

    deferred = sorted(graph.deferred_nodes)
    if deferred:
        lines.append("")
        lines.append("    classDef deferred stroke-dasharray: 5 5")
        for name in deferred:
            lines.append(f"    class {name} deferred")

    return "\n".join(lines)


def generate_ascii(graph: "ExecutionGraph") -> str:
    """Render a plain-text summary of the graph."""
    lines = ["Graph:"]
    lines.append(f"  Nodes: {', '.join(sorted(graph.nodes))}")
    lines.append(f"  Entry: {START} -> {graph.entry_point}")
    lines.append("  Edges:")

    for source, target in _fixed_edges(graph):
        lines.append(f"    {source} -> {target}")

    for ce in _conditional_edges(graph):
        if ce.path_map:
            targets = sorted(set(ce.path_map.values()))
            lines.append(f"    {ce.source} -> {' | '.join(targets)}  [conditional]")
        else:
            lines.append(f"    {ce.source} -> ???  [conditional]")

    return "\n".join(lines)


def generate_dot(graph: "ExecutionGraph") -> str:
    """Render the graph in Graphviz DOT format."""
    lines = ["digraph G {", "    rankdir=TD;"]

    lines.append(f'    "{START}" [shape=oval];')
    for name in sorted(graph.nodes):
        lines.append(f'    "{name}" [shape=box];')
    lines.append(f'    "{END}" [shape=oval];')

    lines.append(f'    "{START}" -> "{graph.entry_point}" [style=solid];')

    for source, target in _fixed_edges(graph):
        lines.append(f'    "{source}" -> "{target}" [style=solid];')

    for ce in _conditional_edges(graph):
        for label in sorted(ce.path_map or {}):
            lines.append(
                f'    "{ce.source}" -> "{ce.path_map[label]}" [style=dashed, label="{label}"];'
            )

    lines.append("}")
    return "\n".join(lines)


def save_mermaid_image(
    mermaid_code: str,
    output_path: str,
    image_format: str = "png",
    theme: str = "default",
    background_color: str = "white",
    client: Optional[httpx.Client] = None,
) -> str:
    """Save Mermaid diagram as an image using mermaid.ink API.

    Args:
        mermaid_code: Mermaid diagram code to render
        output_path: Path where image should be saved
        image_format: Output format - "png", "svg", or "pdf"
        theme: Mermaid theme - "default", "dark", "forest", "neutral"
        background_color: Background color for the diagram
        client: Optional httpx client (a 30s-timeout client is created otherwise)

    Returns:
        Path to saved image file

    Raises:
        httpx.HTTPError: If image generation fails
        ValueError: If invalid format specified
    """
    valid_formats = ["png", "svg", "pdf"]
    if image_format not in valid_formats:
        raise ValueError(f"Invalid format: {image_format}. Must be one of {valid_formats}")

    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    encoded = base64.urlsafe_b64encode(mermaid_code.encode("utf-8")).decode("utf-8")

    if image_format == "svg":
        url = f"{MERMAID_INK_URL}/svg/{encoded}"
    elif image_format == "pdf":
        url = f"{MERMAID_INK_URL}/pdf/{encoded}"
    else:
        url = f"{MERMAID_INK_URL}/img/{encoded}"

    params = {}
    if image_format == "png":
        params["type"] = "png"
    if theme != "default":
        params["theme"] = theme
    if background_color != "white":
        params["bgColor"] = background_color

    if client is None:
        with httpx.Client(timeout=30.0) as owned:
            response = owned.get(url, params=params)
    else:
        response = client.get(url, params=params)
    response.raise_for_status()

    output_file.write_bytes(response.content)
    logger.debug("Saved %s diagram to %s", image_format, output_file)

    return str(output_file.absolute())
