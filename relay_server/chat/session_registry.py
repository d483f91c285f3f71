"""
Session registry: which connection currently answers to which display name.
"""

from typing import Dict, List, Optional


class SessionRegistry:
    """
    Maps live display names to connection ids.

    Two tables are kept: ``owners`` (name -> cid) is the registry proper and
    follows last-bind-wins, ``bound`` (cid -> name) remembers the name each
    connection last claimed, even after another connection took it over.
    """

    def __init__(self):
        self.owners: Dict[str, str] = {}
        self.bound: Dict[str, str] = {}

    def claim(self, cid: str, name: str) -> bool:
        """
        Bind ``name`` to connection ``cid``.

        Returns False when the connection already holds that name. Any
        previous holder of ``name`` is overwritten without notice.
        """
        if self.bound.get(cid) == name:
            return False

        self._drop_owner(cid)
        self.bound[cid] = name
        self.owners[name] = cid
        return True

    def release(self, cid: str) -> Optional[str]:
        """Forget connection ``cid``; returns the name it had bound, if any."""
        self._drop_owner(cid)
        return self.bound.pop(cid, None)

    def bound_name(self, cid: str) -> Optional[str]:
        return self.bound.get(cid)

    def owner_of(self, name: str) -> Optional[str]:
        return self.owners.get(name)

    def online_names(self) -> List[str]:
        return list(self.owners)

    def _drop_owner(self, cid: str):
        # at most one entry can point at a given connection
        for name, owner in list(self.owners.items()):
            if owner == cid:
                del self.owners[name]
                break

    def __len__(self):
        return len(self.owners)
