"""Field transforms applied while localizing or copying records.

Transforms are registered explicitly on a TransformRegistry. Each one may
declare which transforms it runs before or after; the registry orders them
once, topologically, and the engine applies them in that order to every
translatable field.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from cmsops.core.database import Language
from cmsops.core.errors import InvalidArgument

logger = logging.getLogger(__name__)

DEFAULT_LABEL_TEMPLATE = "[Translate to {title}:]"


@dataclass(frozen=True)
class TransformContext:
    """What a transform needs to know about the current operation."""

    source_language: Language
    dest_language: Language
    action: str
    table: str
    field: str


@runtime_checkable
class LabelTransform(Protocol):
    """Protocol for field transforms.

    ``before`` and ``after`` name other transforms this one must run
    before or after.
    """

    name: str
    before: tuple[str, ...]
    after: tuple[str, ...]

    def apply(self, value: Any, context: TransformContext) -> Any:
        ...


@dataclass
class TranslateLabelTransform:
    """Prefixes text with a "[Translate to <language>:]" marker."""

    template: str = DEFAULT_LABEL_TEMPLATE
    name: str = "translate_label"
    before: tuple[str, ...] = ()
    after: tuple[str, ...] = ("strip_whitespace",)

    def label_for(self, language: Language) -> str:
        return self.template.format(title=language.title, iso_code=language.iso_code)

    def apply(self, value: Any, context: TransformContext) -> Any:
        if not isinstance(value, str) or not value:
            return value
        return f"{self.label_for(context.dest_language)} {value}"


@dataclass
class StripWhitespaceTransform:
    """Trims surrounding whitespace from string values; other values pass through."""

    name: str = "strip_whitespace"
    before: tuple[str, ...] = ()
    after: tuple[str, ...] = ()

    def apply(self, value: Any, context: TransformContext) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


class TransformRegistry:
    """Named transforms, ordered by their before/after constraints."""

    def __init__(self) -> None:
        self._transforms: dict[str, LabelTransform] = {}
        self._ordered: list[LabelTransform] | None = None

    def register(self, transform: LabelTransform) -> None:
        """Add a transform. A later registration with the same name wins.

        Raises:
            InvalidArgument: If the object does not implement LabelTransform
        """
        if not isinstance(transform, LabelTransform):
            raise InvalidArgument(f"Not a label transform: {transform!r}")
        self._transforms[transform.name] = transform
        self._ordered = None
        logger.debug("Registered transform '%s'", transform.name)

    def names(self) -> list[str]:
        return [t.name for t in self.ordered()]

    def ordered(self) -> list[LabelTransform]:
        """Transforms in application order (computed once, then cached).

        Uses Kahn's algorithm; among transforms with no pending
        dependencies, registration order decides.

        Raises:
            InvalidArgument: On a dependency cycle or an unknown name
        """
        if self._ordered is not None:
            return self._ordered

        names = list(self._transforms)
        edges: dict[str, set[str]] = {name: set() for name in names}
        for name, transform in self._transforms.items():
            for other in transform.before:
                self._check_known(name, other)
                edges[name].add(other)
            for other in transform.after:
                self._check_known(name, other)
                edges[other].add(name)

        indegree = {name: 0 for name in names}
        for targets in edges.values():
            for target in targets:
                indegree[target] += 1

        ready = [name for name in names if indegree[name] == 0]
        result: list[LabelTransform] = []
        while ready:
            name = ready.pop(0)
            result.append(self._transforms[name])
            for target in sorted(edges[name], key=names.index):
                indegree[target] -= 1
                if indegree[target] == 0:
                    ready.append(target)
            ready.sort(key=names.index)

        if len(result) != len(names):
            cyclic = sorted(name for name, degree in indegree.items() if degree > 0)
            raise InvalidArgument(f"Transform ordering has a cycle: {', '.join(cyclic)}")

        self._ordered = result
        return result

    def _check_known(self, name: str, other: str) -> None:
        if other not in self._transforms:
            raise InvalidArgument(f"Transform '{name}' refers to unknown transform '{other}'")

    def apply(self, value: Any, context: TransformContext) -> Any:
        for transform in self.ordered():
            value = transform.apply(value, context)
        return value


def default_registry(label_template: str = DEFAULT_LABEL_TEMPLATE) -> TransformRegistry:
    """Registry with the built-in transforms."""
    registry = TransformRegistry()
    registry.register(StripWhitespaceTransform())
    registry.register(TranslateLabelTransform(template=label_template))
    return registry
