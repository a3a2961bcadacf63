"""
Action Catalog

Static, in-memory registry of every action neurontainer knows about.
Built once at startup from the action groups in `neurontainer.actions`
and read-only afterwards.
"""

from typing import Dict, Iterable, List, Optional
import logging

from .types import RCEAction, WireAction

logger = logging.getLogger(__name__)


class ActionCatalog:
    """
    Ordered registry of RCE actions.

    Actions keep the order in which their groups were registered. Duplicate
    names are a configuration error: each repeat is logged with both indices
    and lookups keep resolving to the first declaration.
    """

    def __init__(self, actions: Iterable[RCEAction] = ()):
        self._actions: List[RCEAction] = list(actions)
        self._first_index: Dict[str, int] = {}
        self.duplicates: List[tuple] = []  # (name, first_index, duplicate_index)

        for index, action in enumerate(self._actions):
            first = self._first_index.get(action.name)
            if first is not None:
                logger.error(
                    f'Duplicate action name: "{action.name}" at indices {first} and {index}'
                )
                self.duplicates.append((action.name, first, index))
            else:
                self._first_index[action.name] = index

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self):
        return iter(self._actions)

    def __contains__(self, name: object) -> bool:
        return name in self._first_index

    def list_actions(self) -> List[RCEAction]:
        """All actions, in registration order (duplicates included)"""
        return list(self._actions)

    def names(self) -> List[str]:
        """Unique action names, in order of first declaration"""
        return list(self._first_index.keys())

    def find_by_name(self, name: str) -> Optional[RCEAction]:
        """Resolve an action by name; the first declaration wins"""
        index = self._first_index.get(name)
        if index is None:
            return None
        return self._actions[index]

    def wire_view(self, names: Optional[Iterable[str]] = None) -> List[WireAction]:
        """
        Strip actions down to what the caller may see.

        Args:
            names: Restrict the view to these action names (catalog order is kept)

        Returns:
            One WireAction per unique action name
        """
        wanted = set(names) if names is not None else None
        view = []
        for name in self._first_index:
            if wanted is not None and name not in wanted:
                continue
            view.append(self.find_by_name(name).to_wire())
        return view
