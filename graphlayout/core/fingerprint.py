"""Snapshot fingerprints: order-independent content keys for the layout cache.

A fingerprint is computed from:
- node descriptors ``id:kind``, sorted by node id, joined with ``|``
- link descriptors ``kind:source->target``, sorted, joined with ``|``
- the two joined strings concatenated with ``::``
- a 32-bit djb2-xor rolling hash over the result, as 8 lowercase hex digits

Known limitation:
    Collisions are accepted. A hit on a different graph with the same key only
    shows a stale but plausible layout, and the cache filter drops every cached
    position whose node id is not in the current snapshot. Keys are not
    verified against the full descriptor string.
"""

from typing import Iterable, Tuple

from graphlayout.models.graph_snapshot import GraphSnapshot, Link, Node

NODE_SEPARATOR = "|"
SECTION_SEPARATOR = "::"

_HASH_SEED = 5381
_HASH_MASK = 0xFFFFFFFF


def rolling_hash(text: str) -> int:
    """32-bit djb2-xor hash: ``h = (h * 33) ^ ord(c)`` truncated to 32 bits."""
    value = _HASH_SEED
    for char in text:
        value = ((value * 33) ^ ord(char)) & _HASH_MASK
    return value


def node_descriptor(node: Node) -> str:
    return f"{node.id}:{node.kind.value}"


def link_descriptor(link: Link) -> str:
    return f"{link.kind.value}:{link.source}->{link.target}"


def canonical_form(nodes: Iterable[Node], links: Iterable[Link]) -> str:
    """The string that is hashed; exposed for debugging cache misses."""
    node_part = NODE_SEPARATOR.join(
        node_descriptor(node) for node in sorted(nodes, key=_node_sort_key)
    )
    link_part = NODE_SEPARATOR.join(sorted(link_descriptor(link) for link in links))
    return f"{node_part}{SECTION_SEPARATOR}{link_part}"


def fingerprint(nodes: Iterable[Node], links: Iterable[Link]) -> str:
    """Fingerprint a node/link set.

    Returns:
        8-character lowercase hex string
    """
    return f"{rolling_hash(canonical_form(nodes, links)):08x}"


def fingerprint_snapshot(snapshot: GraphSnapshot) -> str:
    return fingerprint(snapshot.nodes, snapshot.links)


def _node_sort_key(node: Node) -> Tuple[str, str]:
    # kind breaks ties between duplicate ids so the order is total
    return (node.id, node.kind.value)


__all__ = [
    "rolling_hash",
    "node_descriptor",
    "link_descriptor",
    "canonical_form",
    "fingerprint",
    "fingerprint_snapshot",
]
