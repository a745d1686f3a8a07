"""
Debian version comparison and relationship fields.

Thin layer over python-debian: ``Version`` implements the dpkg ordering
(epoch, upstream version, revision, ``~`` sorting before everything) and
``PkgRelation`` parses Depends-style fields. Results are converted into
frozen models so they can be stored on records and compared.
"""

from __future__ import annotations

import logging

from debian.deb822 import PkgRelation
from debian.debian_support import Version
from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

# Relation operators as written in control files; "<" and ">" are obsolete
# spellings of "<=" and ">=".
OPERATORS = ("<<", "<=", "=", ">=", ">>")
OBSOLETE_OPERATORS = {"<": "<=", ">": ">="}


def parse_version(text: str) -> Version:
    """Parse a Debian version string.

    Raises:
        ValueError: If the string is not a valid Debian version
    """
    return Version(text.strip())


def compare_versions(a: str, b: str) -> int:
    """Compare two version strings; negative, zero or positive like cmp()."""
    va, vb = parse_version(a), parse_version(b)
    if va < vb:
        return -1
    if va > vb:
        return 1
    return 0


def satisfies(version: str, operator: str, target: str) -> bool:
    """Return True if ``version <operator> target`` holds under dpkg ordering."""
    operator = OBSOLETE_OPERATORS.get(operator, operator)
    result = compare_versions(version, target)
    if operator == "<<":
        return result < 0
    if operator == "<=":
        return result <= 0
    if operator == "=":
        return result == 0
    if operator == ">=":
        return result >= 0
    if operator == ">>":
        return result > 0
    raise ValueError(f"Unknown version relation operator: {operator!r}")


class VersionConstraint(BaseModel):
    """A version restriction such as ``>= 1.2-1``."""

    model_config = ConfigDict(frozen=True)

    operator: str
    version: str

    @field_validator("operator")
    @classmethod
    def validate_operator(cls, v: str) -> str:
        v = OBSOLETE_OPERATORS.get(v.strip(), v.strip())
        if v not in OPERATORS:
            raise ValueError(f"Invalid version operator: {v!r}. Must be one of {OPERATORS}")
        return v

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        parse_version(v)
        return v.strip()

    @classmethod
    def parse(cls, text: str) -> VersionConstraint:
        """Parse ``">= 1.0"`` or ``"(>= 1.0)"``."""
        text = text.strip().removeprefix("(").removesuffix(")").strip()
        for operator in ("<<", "<=", ">=", ">>", "=", "<", ">"):
            if text.startswith(operator):
                return cls(operator=operator, version=text[len(operator) :])
        raise ValueError(f"Missing operator in version constraint: {text!r}")

    def matches(self, version: str) -> bool:
        return satisfies(version, self.operator, self.version)

    def __str__(self) -> str:
        return f"{self.operator} {self.version}"


class Relation(BaseModel):
    """One alternative of a relationship field (``foo:any (>= 1.0) [amd64]``)."""

    model_config = ConfigDict(frozen=True)

    name: str
    arch_qualifier: str | None = None
    constraint: VersionConstraint | None = None
    architectures: tuple[str, ...] = ()

    def __str__(self) -> str:
        text = self.name
        if self.arch_qualifier:
            text += f":{self.arch_qualifier}"
        if self.constraint:
            text += f" ({self.constraint})"
        if self.architectures:
            text += f" [{' '.join(self.architectures)}]"
        return text


def parse_relations(text: str) -> list[list[Relation]]:
    """Parse a relationship field into AND-ed groups of OR-ed alternatives.

    Example:
        >>> groups = parse_relations("libc6 (>= 2.34), foo | bar")
        >>> [[r.name for r in group] for group in groups]
        [['libc6'], ['foo', 'bar']]
    """
    groups: list[list[Relation]] = []
    if not text.strip():
        return groups
    for group in PkgRelation.parse_relations(text):
        alternatives = []
        for rel in group:
            if not rel.get("name"):
                continue
            constraint = None
            if rel.get("version"):
                operator, version = rel["version"]
                constraint = VersionConstraint(operator=operator, version=version)
            architectures = tuple(
                ("" if arch.enabled else "!") + arch.arch for arch in rel.get("arch") or ()
            )
            alternatives.append(
                Relation(
                    name=rel["name"],
                    arch_qualifier=rel.get("archqual"),
                    constraint=constraint,
                    architectures=architectures,
                )
            )
        if alternatives:
            groups.append(alternatives)
    return groups
