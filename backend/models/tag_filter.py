"""Conjunctive tag filter for retrieval."""
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class TagFilter:
    """
    Set of required key=value tag pairs.

    An entry qualifies only if it carries every pair. The empty filter
    matches every entry; a key that no entry defines matches none.
    """
    constraints: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def from_dict(cls, tags: Optional[Mapping[str, str]]) -> "TagFilter":
        """Build a filter from a mapping of required tags."""
        if not tags:
            return cls()
        return cls(tuple(sorted((str(k), str(v)) for k, v in tags.items())))

    @classmethod
    def parse(cls, text: str) -> "TagFilter":
        """
        Parse "key=value, key=value" into a filter.

        Args:
            text: Comma separated constraints; blank text gives the empty filter

        Returns:
            TagFilter with one constraint per pair

        Raises:
            ValueError: If a pair is malformed or a key is given two values
        """
        tags: Dict[str, str] = {}
        for part in (text or "").split(","):
            part = part.strip()
            if not part:
                continue
            key, sep, value = part.partition("=")
            key, value = key.strip(), value.strip()
            if not sep or not key or not value:
                raise ValueError(f"Invalid tag constraint '{part}', expected key=value")
            if key in tags and tags[key] != value:
                raise ValueError(f"Tag '{key}' constrained to both '{tags[key]}' and '{value}'")
            tags[key] = value
        return cls.from_dict(tags)

    @property
    def is_empty(self) -> bool:
        return not self.constraints

    def as_dict(self) -> Dict[str, str]:
        return dict(self.constraints)

    def matches(self, tags: Optional[Mapping[str, str]]) -> bool:
        """Return True if `tags` carries every constrained pair."""
        tags = tags or {}
        return all(tags.get(key) == value for key, value in self.constraints)

    def __str__(self) -> str:
        return ", ".join(f"{key}={value}" for key, value in self.constraints) or "(none)"
