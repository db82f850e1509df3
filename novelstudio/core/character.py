"""Character records for Novel Pipeline Studio."""

from typing import Dict, List, Any, Iterable, Optional
from dataclasses import dataclass


PROTAGONIST_MARKERS = ("主角", "protagonist")


@dataclass
class Character:
    """Represents a character in the novel."""

    id: int
    name: str
    role: str = ""
    plot_function: str = ""  # e.g. mentor, rival, comic relief
    traits: str = ""
    bio: str = ""
    image_url: str = ""

    @property
    def is_protagonist(self) -> bool:
        role = self.role.lower()
        return any(marker in role for marker in PROTAGONIST_MARKERS)

    def brief(self) -> str:
        """One-line description used inside prompts."""
        details = ", ".join(part for part in (self.role, self.plot_function) if part)
        return f"{self.name} ({details})" if details else self.name

    def to_dict(self) -> Dict[str, Any]:
        """Convert character to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "plotFunction": self.plot_function,
            "traits": self.traits,
            "bio": self.bio,
            "imageUrl": self.image_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Character":
        """Create character from dictionary.

        Records written before the plot-function field existed import with it empty.
        """
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            role=data.get("role", ""),
            plot_function=data.get("plotFunction") or "",
            traits=data.get("traits", ""),
            bio=data.get("bio", ""),
            image_url=data.get("imageUrl", ""),
        )

    def __str__(self) -> str:
        return self.brief()


def find_protagonist(characters: Iterable[Character]) -> Optional[Character]:
    """First character whose role marks them as the protagonist, else the first character."""
    characters = list(characters)
    for character in characters:
        if character.is_protagonist:
            return character
    return characters[0] if characters else None


def match_names(characters: Iterable[Character], names: List[str]) -> List[int]:
    """Ids of characters whose name contains, or is contained in, any of ``names``."""
    wanted = [n.strip() for n in names if n and n.strip()]
    return [
        c.id for c in characters
        if any(n in c.name or c.name in n for n in wanted)
    ]
