"""Association records linking version object paths to anchors and tags."""

import logging
from typing import Callable, List, NamedTuple, Optional, Tuple

ACTIVATION_FWD_ASSOCIATION = "inventory"
ACTIVATION_REV_ASSOCIATION = "activation"
ACTIVE_FWD_ASSOCIATION = "active"
ACTIVE_REV_ASSOCIATION = "software_version"
FUNCTIONAL_FWD_ASSOCIATION = "functional"
FUNCTIONAL_REV_ASSOCIATION = "software_version"
UPDATEABLE_FWD_ASSOCIATION = "updateable"
UPDATEABLE_REV_ASSOCIATION = "software_version"


class Association(NamedTuple):
    forward: str
    reverse: str
    path: str


def inventory_association(inventory_path: str) -> Association:
    return Association(ACTIVATION_FWD_ASSOCIATION, ACTIVATION_REV_ASSOCIATION, inventory_path)


class AssociationSet:
    """Flat ordered association list, republished whole on every change.

    ``published`` is replaced by a new tuple on each change, so a reader
    holding it never observes a half-applied update.
    """

    def __init__(self, on_publish: Optional[Callable[[Tuple[Association, ...]], None]] = None):
        self.logger = logging.getLogger("fwupdater.associations")
        self._assocs: List[Association] = []
        self._published: Tuple[Association, ...] = ()
        self._on_publish = on_publish

    @property
    def published(self) -> Tuple[Association, ...]:
        return self._published

    def add(self, forward: str, reverse: str, path: str) -> None:
        assoc = Association(forward, reverse, path)
        if assoc in self._assocs:
            self.logger.debug(f"Association already present: {assoc}")
            return
        self._assocs.append(assoc)
        self._publish()

    def create_active(self, path: str) -> None:
        self.add(ACTIVE_FWD_ASSOCIATION, ACTIVE_REV_ASSOCIATION, path)

    def create_functional(self, path: str) -> None:
        self.add(FUNCTIONAL_FWD_ASSOCIATION, FUNCTIONAL_REV_ASSOCIATION, path)

    def create_updateable(self, path: str) -> None:
        self.add(UPDATEABLE_FWD_ASSOCIATION, UPDATEABLE_REV_ASSOCIATION, path)

    def remove_path(self, path: str) -> None:
        """Remove every association whose object path matches."""
        idx = 0
        while idx < len(self._assocs):
            if self._assocs[idx].path == path:
                del self._assocs[idx]
                self._publish()
            else:
                idx += 1

    def has(self, forward: str, path: str) -> bool:
        return any(a.forward == forward and a.path == path for a in self._published)

    def is_functional(self, path: str) -> bool:
        return self.has(FUNCTIONAL_FWD_ASSOCIATION, path)

    def _publish(self) -> None:
        self._published = tuple(self._assocs)
        if self._on_publish is not None:
            self._on_publish(self._published)

    def __len__(self) -> int:
        return len(self._published)

    def __iter__(self):
        return iter(self._published)
