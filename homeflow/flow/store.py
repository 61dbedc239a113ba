"""Id-keyed store of flow annotations with symmetric alternate maintenance."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from ..errors import (
    CyclicDependency,
    DataIntegrityWarning,
    InvalidAlternate,
    InvalidDependency,
)
from .models import FlowConfig, FlowType

logger = logging.getLogger(__name__)

_EMPTY = FlowConfig()
_UNSET: Any = object()


def _append(ids: tuple[str, ...], node_id: str) -> tuple[str, ...]:
    return ids if node_id in ids else ids + (node_id,)


def _without(ids: tuple[str, ...], node_id: str) -> tuple[str, ...]:
    return tuple(i for i in ids if i != node_id)


class FlowGraph(BaseModel):
    """Immutable adjacency map of :class:`FlowConfig` keyed by node id.

    Every edit returns a new ``FlowGraph``; the receiver is left untouched so
    callers can keep the previous snapshot around. Alternate edges are kept
    symmetric: adding or removing ``a <-> b`` always updates both endpoints.
    """

    configs: Mapping[str, FlowConfig] = Field(default_factory=dict, validate_default=True)

    model_config = ConfigDict(frozen=True)

    @field_validator("configs", mode="after")
    @classmethod
    def _read_only(cls, value: Mapping[str, FlowConfig]) -> Mapping[str, FlowConfig]:
        return MappingProxyType(dict(value))

    @field_serializer("configs")
    def _serialize_configs(self, value: Mapping[str, FlowConfig]) -> dict[str, FlowConfig]:
        return dict(value)

    def __deepcopy__(self, memo: Optional[dict] = None) -> FlowGraph:
        # Nothing inside can change, so the copy is the snapshot itself.
        return self

    # ------------------------------------------------------------------
    # Reads
    def get_config(self, node_id: str) -> FlowConfig:
        """Return the config for ``node_id`` or an empty (standard) one."""
        return self.configs.get(node_id, _EMPTY)

    def flow_type(self, node_id: str) -> Optional[FlowType]:
        return self.get_config(node_id).type

    def dependents_of(self, node_id: str) -> list[str]:
        """Ids of nodes marked dependent on ``node_id``, in insertion order."""
        return [
            other
            for other, cfg in self.configs.items()
            if cfg.type is FlowType.DEPENDENT and cfg.dependent_on == node_id
        ]

    def _neighbors(self, node_id: str) -> list[str]:
        # Both directions, so a half-written edge still joins the group.
        found = list(self.get_config(node_id).alternate_ids)
        for other, cfg in self.configs.items():
            if node_id in cfg.alternate_ids and other not in found:
                found.append(other)
        return found

    def alternate_group(self, node_id: str) -> tuple[str, ...]:
        """Return the choice group containing ``node_id``.

        The group is the connected component over alternate edges, listed in
        breadth-first order starting at ``node_id``.
        """
        group = [node_id]
        queue = [node_id]
        while queue:
            current = queue.pop(0)
            for other in self._neighbors(current):
                if other not in group:
                    group.append(other)
                    queue.append(other)
        return tuple(group)

    def alternate_groups(self) -> list[tuple[str, ...]]:
        """Return every alternate group, ordered by first insertion."""
        seen: set[str] = set()
        groups: list[tuple[str, ...]] = []
        for node_id, cfg in self.configs.items():
            if node_id in seen:
                continue
            if cfg.type is not FlowType.ALTERNATE and not cfg.alternate_ids:
                continue
            group = self.alternate_group(node_id)
            seen.update(group)
            groups.append(group)
        return groups

    # ------------------------------------------------------------------
    # Edits
    def _replace(self, updates: dict[str, Optional[FlowConfig]]) -> FlowGraph:
        configs = dict(self.configs)
        for node_id, cfg in updates.items():
            if cfg is None:
                configs.pop(node_id, None)
            else:
                configs[node_id] = cfg
        return FlowGraph(configs=configs)

    def _guard_type_change(self, node_id: str, new_type: Optional[FlowType]) -> None:
        if self.flow_type(node_id) is not FlowType.IF_NECESSARY:
            return
        if new_type is FlowType.IF_NECESSARY:
            return
        dependents = self.dependents_of(node_id)
        if dependents:
            raise InvalidDependency(
                f"{node_id!r} is still the prerequisite of {', '.join(dependents)}",
                node_id,
                dependents[0],
            )

    def _detach_alternates(self, node_id: str) -> FlowGraph:
        updates: dict[str, Optional[FlowConfig]] = {}
        for other in self._neighbors(node_id):
            cfg = self.get_config(other)
            updates[other] = cfg.model_copy(
                update={"alternate_ids": _without(cfg.alternate_ids, node_id)}
            )
        if node_id in self.configs:
            updates[node_id] = self.get_config(node_id).model_copy(
                update={"alternate_ids": ()}
            )
        return self._replace(updates) if updates else self

    def _checked_predecessors(self, node_id: str, ids: Iterable[str]) -> tuple[str, ...]:
        predecessors = tuple(dict.fromkeys(ids))
        if node_id in predecessors:
            raise InvalidDependency(
                f"{node_id!r} cannot be its own prerequisite", node_id, node_id
            )

        def reaches_node(start: str) -> bool:
            stack, seen = [start], set()
            while stack:
                current = stack.pop()
                if current == node_id:
                    return True
                if current in seen:
                    continue
                seen.add(current)
                stack.extend(self.get_config(current).predecessor_ids)
            return False

        for predecessor in predecessors:
            if reaches_node(predecessor):
                raise CyclicDependency(
                    f"making {predecessor!r} a prerequisite of {node_id!r} creates a cycle",
                    node_id,
                    predecessor,
                )
        return predecessors

    def set_config(self, node_id: str, **fields: Any) -> FlowGraph:
        """Merge ``fields`` into the config of ``node_id``.

        ``alternate_ids`` and ``dependent_on`` are routed through
        :meth:`add_alternate`/:meth:`remove_alternate` and
        :meth:`set_dependent` so their invariants hold. An explicit
        ``dependent_on=None`` clears the prerequisite, which is only valid
        when the node stops being dependent in the same call.
        """
        unknown = set(fields) - set(FlowConfig.model_fields)
        if unknown:
            raise TypeError(f"Unknown flow config fields: {', '.join(sorted(unknown))}")

        alternate_ids = fields.pop("alternate_ids", None)
        dependent_on = fields.pop("dependent_on", _UNSET)
        if dependent_on is None:
            fields["dependent_on"] = None
        graph = self

        if "type" in fields:
            new_type = FlowType(fields["type"]) if fields["type"] is not None else None
            graph._guard_type_change(node_id, new_type)
            fields["type"] = new_type
            if new_type is not FlowType.ALTERNATE:
                graph = graph._detach_alternates(node_id)
            if new_type is not FlowType.DEPENDENT:
                fields["dependent_on"] = None
        if "predecessor_ids" in fields:
            fields["predecessor_ids"] = graph._checked_predecessors(
                node_id, fields["predecessor_ids"] or ()
            )

        graph = graph._replace(
            {node_id: graph.get_config(node_id).model_copy(update=fields)}
        )

        if alternate_ids is not None:
            wanted = list(alternate_ids)
            for other in graph.get_config(node_id).alternate_ids:
                if other not in wanted:
                    graph = graph.remove_alternate(node_id, other)
            for other in wanted:
                graph = graph.add_alternate(node_id, other)

        if dependent_on is not _UNSET and dependent_on is not None:
            graph = graph.set_dependent(node_id, dependent_on)

        cfg = graph.get_config(node_id)
        if cfg.type is FlowType.DEPENDENT and cfg.dependent_on is None:
            raise InvalidDependency(f"dependent {node_id!r} needs a prerequisite", node_id)
        return graph

    def add_alternate(self, a: str, b: str) -> FlowGraph:
        """Make ``a`` and ``b`` mutually exclusive alternates. Idempotent."""
        if a == b:
            raise InvalidAlternate(f"{a!r} cannot be an alternate of itself")
        cfg_a, cfg_b = self.get_config(a), self.get_config(b)
        if (
            cfg_a.type is FlowType.ALTERNATE
            and cfg_b.type is FlowType.ALTERNATE
            and b in cfg_a.alternate_ids
            and a in cfg_b.alternate_ids
        ):
            return self
        self._guard_type_change(a, FlowType.ALTERNATE)
        self._guard_type_change(b, FlowType.ALTERNATE)
        return self._replace(
            {
                a: cfg_a.model_copy(
                    update={
                        "type": FlowType.ALTERNATE,
                        "alternate_ids": _append(cfg_a.alternate_ids, b),
                        "dependent_on": None,
                    }
                ),
                b: cfg_b.model_copy(
                    update={
                        "type": FlowType.ALTERNATE,
                        "alternate_ids": _append(cfg_b.alternate_ids, a),
                        "dependent_on": None,
                    }
                ),
            }
        )

    def remove_alternate(self, a: str, b: str) -> FlowGraph:
        """Remove the alternate edge between ``a`` and ``b`` on both sides.

        The flow type is left as is even when no alternates remain; use
        :meth:`clear` for an explicit reset.
        """
        cfg_a, cfg_b = self.get_config(a), self.get_config(b)
        if b not in cfg_a.alternate_ids and a not in cfg_b.alternate_ids:
            return self
        updates: dict[str, Optional[FlowConfig]] = {}
        if a in self.configs:
            updates[a] = cfg_a.model_copy(
                update={"alternate_ids": _without(cfg_a.alternate_ids, b)}
            )
        if b in self.configs:
            updates[b] = cfg_b.model_copy(
                update={"alternate_ids": _without(cfg_b.alternate_ids, a)}
            )
        return self._replace(updates)

    def set_dependent(self, node_id: str, depends_on: str) -> FlowGraph:
        """Gate ``node_id`` on the if-necessary node ``depends_on``."""
        if node_id == depends_on:
            raise InvalidDependency(
                f"{node_id!r} cannot depend on itself", node_id, depends_on
            )
        if self.flow_type(depends_on) is not FlowType.IF_NECESSARY:
            raise InvalidDependency(
                f"{node_id!r} can only depend on an if-necessary node; "
                f"{depends_on!r} is {self.flow_type(depends_on) or 'standard'}",
                node_id,
                depends_on,
            )
        self._guard_type_change(node_id, FlowType.DEPENDENT)
        graph = self._detach_alternates(node_id)
        cfg = graph.get_config(node_id)
        return graph._replace(
            {
                node_id: cfg.model_copy(
                    update={"type": FlowType.DEPENDENT, "dependent_on": depends_on}
                )
            }
        )

    def mark_if_necessary(self, node_id: str, prompt: Optional[str] = None) -> FlowGraph:
        """Flag ``node_id`` as optional work the user opts into."""
        graph = self._detach_alternates(node_id)
        update: dict[str, Any] = {"type": FlowType.IF_NECESSARY, "dependent_on": None}
        if prompt is not None:
            update["decision_prompt"] = prompt
        return graph._replace({node_id: graph.get_config(node_id).model_copy(update=update)})

    def set_predecessors(self, node_id: str, predecessor_ids: Iterable[str]) -> FlowGraph:
        """Replace the prerequisites of ``node_id``; rejects self-loops and cycles."""
        checked = self._checked_predecessors(node_id, predecessor_ids)
        return self._replace(
            {node_id: self.get_config(node_id).model_copy(update={"predecessor_ids": checked})}
        )

    def clear(self, node_id: str) -> FlowGraph:
        """Reset ``node_id`` to standard work, detaching all its alternates."""
        self._guard_type_change(node_id, None)
        graph = self._detach_alternates(node_id)
        return graph._replace({node_id: None})

    def rekey(self, remap: Mapping[str, str]) -> FlowGraph:
        """Copy the configs of the nodes in ``remap`` under their new ids.

        Alternate and prerequisite edges are rewritten to the new ids; edges
        to nodes outside ``remap`` are dropped. A dependent keeps an outside
        prerequisite unchanged so resolution can report it if it is missing.
        """
        configs: dict[str, FlowConfig] = {}
        for old_id, new_id in remap.items():
            cfg = self.configs.get(old_id)
            if cfg is None:
                continue
            configs[new_id] = cfg.model_copy(
                update={
                    "alternate_ids": tuple(remap[i] for i in cfg.alternate_ids if i in remap),
                    "predecessor_ids": tuple(
                        remap[i] for i in cfg.predecessor_ids if i in remap
                    ),
                    "dependent_on": remap.get(cfg.dependent_on, cfg.dependent_on)
                    if cfg.dependent_on is not None
                    else None,
                }
            )
        return FlowGraph(configs=configs)

    def merge(self, other: FlowGraph) -> FlowGraph:
        """Return a graph holding both sets of configs; ``other`` wins on overlap."""
        if not other.configs:
            return self
        return FlowGraph(configs={**self.configs, **other.configs})

    # ------------------------------------------------------------------
    # Integrity
    def audit(self) -> list[DataIntegrityWarning]:
        """Report invariant violations found in stored (possibly stale) data."""
        warnings: list[DataIntegrityWarning] = []
        for node_id, cfg in self.configs.items():
            for other in cfg.alternate_ids:
                if node_id not in self.get_config(other).alternate_ids:
                    warnings.append(
                        DataIntegrityWarning(
                            code="asymmetric-alternate",
                            message=f"{node_id!r} lists {other!r} as alternate but not vice versa",
                            node_id=node_id,
                        )
                    )
            if cfg.type is FlowType.DEPENDENT:
                target = cfg.dependent_on
                if target is None or self.flow_type(target) is not FlowType.IF_NECESSARY:
                    warnings.append(
                        DataIntegrityWarning(
                            code="invalid-dependent",
                            message=f"dependent {node_id!r} points at {target!r}, which is not if-necessary",
                            node_id=node_id,
                        )
                    )
            if node_id in cfg.predecessor_ids:
                warnings.append(
                    DataIntegrityWarning(
                        code="self-predecessor",
                        message=f"{node_id!r} lists itself as a prerequisite",
                        node_id=node_id,
                    )
                )
        return warnings

    def prune(self, existing_ids: Iterable[str]) -> tuple[FlowGraph, list[DataIntegrityWarning]]:
        """Drop configs and edges that reference nodes no longer in the project.

        Dependents whose prerequisite was deleted keep their dangling target;
        resolution drops them and reports it.
        """
        existing = set(existing_ids)
        warnings: list[DataIntegrityWarning] = []
        configs: dict[str, FlowConfig] = {}
        for node_id, cfg in self.configs.items():
            if node_id not in existing:
                logger.debug(f"Dropping flow config of deleted node {node_id}")
                continue
            alternates = tuple(i for i in cfg.alternate_ids if i in existing)
            predecessors = tuple(
                i for i in cfg.predecessor_ids if i in existing and i != node_id
            )
            for missing in (i for i in cfg.alternate_ids if i not in alternates):
                warnings.append(
                    DataIntegrityWarning(
                        code="dangling-alternate",
                        message=f"alternate {missing!r} of {node_id!r} no longer exists",
                        node_id=node_id,
                    )
                )
            for missing in (i for i in cfg.predecessor_ids if i not in predecessors):
                warnings.append(
                    DataIntegrityWarning(
                        code="dangling-predecessor",
                        message=f"prerequisite {missing!r} of {node_id!r} was dropped",
                        node_id=node_id,
                    )
                )
            if alternates != cfg.alternate_ids or predecessors != cfg.predecessor_ids:
                cfg = cfg.model_copy(
                    update={"alternate_ids": alternates, "predecessor_ids": predecessors}
                )
            configs[node_id] = cfg
        return FlowGraph(configs=configs), warnings

    # ------------------------------------------------------------------
    # Serialization
    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Serialize to the camelCase mapping used by storage."""
        return {
            node_id: cfg.model_dump(mode="json", by_alias=True, exclude_defaults=True)
            for node_id, cfg in self.configs.items()
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> FlowGraph:
        return cls(
            configs={
                node_id: FlowConfig.model_validate(raw)
                for node_id, raw in (data or {}).items()
            }
        )
