"""golden-link - record linkage engine and golden-record link graph.

Decides which incoming person records (patients, practitioners, ...) refer
to the same real-world identity and keeps a graph linking each source
record to one canonical "golden" record.
"""

__version__ = "0.1.0"


# Lazy imports to avoid circular dependencies
def __getattr__(name: str):
    if name == "rules":
        from golden_link import rules
        return rules
    if name == "links":
        from golden_link import links
        return links
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
