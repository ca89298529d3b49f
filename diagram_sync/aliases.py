"""
Alias registry - bidirectional TextId <-> StableId mapping.

The text of a diagram names nodes by human-editable identifiers that change
whenever the user renames something. Everything else in the engine refers
to nodes by stable ids; this registry is the only bridge between the two.
"""

from typing import Iterator, Optional


class AliasRegistry:
    """
    Symmetric lookup table between text ids and stable ids.

    Invariant: every forward entry has exactly one matching reverse entry,
    and a text id is bound to at most one stable id at a time.
    """

    def __init__(self):
        self._text_to_stable: dict[str, str] = {}
        self._stable_to_text: dict[str, str] = {}

    def resolve(self, text_id: str) -> Optional[str]:
        """Get the stable id currently bound to a text id."""
        return self._text_to_stable.get(text_id)

    def resolve_reverse(self, stable_id: str) -> Optional[str]:
        """Get the text id currently bound to a stable id."""
        return self._stable_to_text.get(stable_id)

    def bind(self, stable_id: str, text_id: str):
        """
        Bind `text_id` to `stable_id` in both directions.

        Any previous binding of either side is dropped first, so the last
        writer wins when the same text id shows up twice in one document.
        """
        previous_stable = self._text_to_stable.get(text_id)
        if previous_stable is not None and previous_stable != stable_id:
            self._stable_to_text.pop(previous_stable, None)

        previous_text = self._stable_to_text.get(stable_id)
        if previous_text is not None and previous_text != text_id:
            self._text_to_stable.pop(previous_text, None)

        self._text_to_stable[text_id] = stable_id
        self._stable_to_text[stable_id] = text_id

    def unbind_stable(self, stable_id: str):
        """Remove every binding of a stable id."""
        text_id = self._stable_to_text.pop(stable_id, None)
        if text_id is not None and self._text_to_stable.get(text_id) == stable_id:
            del self._text_to_stable[text_id]

    def copy(self) -> "AliasRegistry":
        """Get an independent copy of this registry."""
        clone = AliasRegistry()
        clone._text_to_stable = dict(self._text_to_stable)
        clone._stable_to_text = dict(self._stable_to_text)
        return clone

    def items(self) -> Iterator[tuple[str, str]]:
        """Iterate over (text_id, stable_id) pairs."""
        return iter(list(self._text_to_stable.items()))

    def to_json_dict(self) -> dict:
        return {
            "text_to_stable": dict(self._text_to_stable),
            "stable_to_text": dict(self._stable_to_text),
        }

    def __contains__(self, text_id: object) -> bool:
        return text_id in self._text_to_stable

    def __len__(self) -> int:
        return len(self._text_to_stable)
