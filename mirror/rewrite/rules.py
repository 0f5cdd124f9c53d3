"""
Heuristic URL rewriting for arbitrary text payloads.

The rules are plain substring replacements applied in a fixed order. Each
rule runs over the output of the previous one, so the order goes from the
most specific shapes (relative references, escaped origins) to the most
general one (the bare hostname). Matches are not boundary aware: any text
containing the upstream hostname is rewritten, URL or not.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from mirror.rewrite.origins import Endpoint


@dataclass(frozen=True)
class RewriteRule:
    pattern: str
    replacement: str

    def apply(self, text: str) -> str:
        return text.replace(self.pattern, self.replacement)


def _escape_slashes(value: str) -> str:
    return value.replace("/", "\\/")


def build_rules(origin: Endpoint, public: Endpoint) -> List[RewriteRule]:
    """Ordered rules moving references from ``origin`` to ``public``."""
    return [
        # Relative URLs
        RewriteRule("'/", f"'{public.origin}/"),
        RewriteRule('"/', f'"{public.origin}/'),
        RewriteRule("</", f"<{public.origin}/"),
        # URLs with escaped "/" in JavaScript/JSON
        RewriteRule(
            _escape_slashes(origin.origin),
            _escape_slashes(public.origin) + _escape_slashes(public.path),
        ),
        # Full URL
        RewriteRule(origin.origin, public.origin),
        # URL with // instead of a scheme
        RewriteRule(
            f"//{origin.host_port}{origin.path}",
            f"//{public.host_port}{public.path}/",
        ),
        # Hostname and port
        RewriteRule(origin.hostname, public.host_port),
    ]


def apply_rules(rules: Sequence[RewriteRule], text: str) -> str:
    for rule in rules:
        text = rule.apply(text)
    return text


def rewrite(origin: Endpoint, public: Endpoint) -> Callable[[Optional[str]], str]:
    """
    Build the text rewriter for one origin pair.

    The returned function maps ``None`` to an empty string and otherwise
    applies every rule of ``build_rules`` in order.
    """
    rules = tuple(build_rules(origin, public))

    def rewrite_urls(text: Optional[str]) -> str:
        if text is None:
            return ""
        return apply_rules(rules, text)

    return rewrite_urls
