"""Provider classification rules.

A rule is a small boolean expression tree: ``all`` / ``any`` / ``not``
combinators over leaves that look at HTTP headers, MX and NS hosts, the
certificate issuer and the registrar name. Evaluation is pure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter
import structlog

logger = structlog.get_logger()


class HeaderEquals(BaseModel):
    kind: Literal["header_equals"] = "header_equals"
    name: str
    value: str


class HeaderIncludes(BaseModel):
    kind: Literal["header_includes"] = "header_includes"
    name: str
    substr: str


class HeaderPresent(BaseModel):
    kind: Literal["header_present"] = "header_present"
    name: str


class MxSuffix(BaseModel):
    kind: Literal["mx_suffix"] = "mx_suffix"
    suffix: str


class MxRegex(BaseModel):
    kind: Literal["mx_regex"] = "mx_regex"
    pattern: str
    flags: str | None = None


class NsSuffix(BaseModel):
    kind: Literal["ns_suffix"] = "ns_suffix"
    suffix: str


class NsRegex(BaseModel):
    kind: Literal["ns_regex"] = "ns_regex"
    pattern: str
    flags: str | None = None


class IssuerEquals(BaseModel):
    kind: Literal["issuer_equals"] = "issuer_equals"
    value: str


class IssuerIncludes(BaseModel):
    kind: Literal["issuer_includes"] = "issuer_includes"
    substr: str


class RegistrarEquals(BaseModel):
    kind: Literal["registrar_equals"] = "registrar_equals"
    value: str


class RegistrarIncludes(BaseModel):
    kind: Literal["registrar_includes"] = "registrar_includes"
    substr: str


class AllRule(BaseModel):
    kind: Literal["all"] = "all"
    rules: list[Rule]


class AnyRule(BaseModel):
    kind: Literal["any"] = "any"
    rules: list[Rule]


class NotRule(BaseModel):
    kind: Literal["not"] = "not"
    rule: Rule


Rule = Annotated[
    HeaderEquals
    | HeaderIncludes
    | HeaderPresent
    | MxSuffix
    | MxRegex
    | NsSuffix
    | NsRegex
    | IssuerEquals
    | IssuerIncludes
    | RegistrarEquals
    | RegistrarIncludes
    | AllRule
    | AnyRule
    | NotRule,
    Field(discriminator="kind"),
]

AllRule.model_rebuild()
AnyRule.model_rebuild()
NotRule.model_rebuild()

_RULE_ADAPTER: TypeAdapter[Rule] = TypeAdapter(Rule)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# JavaScript flag letters; only i, m and s change how a host is matched
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}
_JS_FLAGS = frozenset("dgimsuvy")


def _normalize(data: Any) -> Any:
    """Rewrite catalog shorthand into the tagged form."""
    if not isinstance(data, dict):
        return data
    if "kind" not in data:
        if "all" in data:
            return {"kind": "all", "rules": [_normalize(r) for r in data["all"]]}
        if "any" in data:
            return {"kind": "any", "rules": [_normalize(r) for r in data["any"]]}
        if "not" in data:
            return {"kind": "not", "rule": _normalize(data["not"])}
        return data

    normalized = dict(data)
    normalized["kind"] = _CAMEL_BOUNDARY.sub("_", data["kind"]).lower()
    if "rules" in normalized:
        normalized["rules"] = [_normalize(r) for r in normalized["rules"]]
    if "rule" in normalized:
        normalized["rule"] = _normalize(normalized["rule"])
    return normalized


def parse_rule(data: dict[str, Any]) -> Rule:
    """Parse a catalog rule; raises pydantic.ValidationError on unknown shapes."""
    return _RULE_ADAPTER.validate_python(_normalize(data))


def _host(value: str) -> str:
    return value.strip().lower().rstrip(".")


@dataclass
class DetectionContext:
    """Facts a rule can look at, already lower-cased.

    Build it with ``DetectionContext.create`` so that header names, hosts,
    issuer and registrar are normalized once.
    """

    headers: dict[str, str] = field(default_factory=dict)
    mx: list[str] = field(default_factory=list)
    ns: list[str] = field(default_factory=list)
    issuer: str | None = None
    registrar: str | None = None

    @classmethod
    def create(
        cls,
        headers: list[tuple[str, str]] | dict[str, str] | None = None,
        mx: list[str] | None = None,
        ns: list[str] | None = None,
        issuer: str | None = None,
        registrar: str | None = None,
    ) -> DetectionContext:
        items = headers.items() if isinstance(headers, dict) else headers or []
        return cls(
            headers={name.lower(): value.strip().lower() for name, value in items},
            mx=[_host(h) for h in mx or []],
            ns=[_host(h) for h in ns or []],
            issuer=issuer.strip().lower() if issuer else None,
            registrar=registrar.strip().lower() if registrar else None,
        )


def _suffix_match(hosts: list[str], suffix: str) -> bool:
    suffix = _host(suffix)
    return any(h == suffix or h.endswith(f".{suffix}") for h in hosts)


def _regex_match(hosts: list[str], pattern: str, flags: str | None) -> bool:
    letters = flags if flags is not None else "i"
    if not set(letters) <= _JS_FLAGS or len(set(letters)) != len(letters):
        logger.warning("provider_rule_flags_invalid", pattern=pattern, flags=flags)
        return False
    re_flags = 0
    for letter in letters:
        re_flags |= _REGEX_FLAGS.get(letter, 0)
    try:
        compiled = re.compile(pattern, re_flags)
    except re.error as e:
        logger.warning("provider_rule_regex_invalid", pattern=pattern, error=str(e))
        return False
    return any(compiled.search(h) for h in hosts)


def eval_rule(rule: Rule, ctx: DetectionContext) -> bool:
    """Evaluate ``rule`` against ``ctx``. Never raises for well-formed rules."""
    if isinstance(rule, AllRule):
        return all(eval_rule(r, ctx) for r in rule.rules)
    if isinstance(rule, AnyRule):
        return any(eval_rule(r, ctx) for r in rule.rules)
    if isinstance(rule, NotRule):
        return not eval_rule(rule.rule, ctx)

    if isinstance(rule, HeaderEquals):
        value = ctx.headers.get(rule.name.lower())
        return value is not None and value == rule.value.strip().lower()
    if isinstance(rule, HeaderIncludes):
        value = ctx.headers.get(rule.name.lower())
        return value is not None and rule.substr.lower() in value
    if isinstance(rule, HeaderPresent):
        return rule.name.lower() in ctx.headers

    if isinstance(rule, MxSuffix):
        return _suffix_match(ctx.mx, rule.suffix)
    if isinstance(rule, MxRegex):
        return _regex_match(ctx.mx, rule.pattern, rule.flags)
    if isinstance(rule, NsSuffix):
        return _suffix_match(ctx.ns, rule.suffix)
    if isinstance(rule, NsRegex):
        return _regex_match(ctx.ns, rule.pattern, rule.flags)

    if isinstance(rule, IssuerEquals):
        return ctx.issuer is not None and ctx.issuer == rule.value.strip().lower()
    if isinstance(rule, IssuerIncludes):
        return ctx.issuer is not None and rule.substr.lower() in ctx.issuer
    if isinstance(rule, RegistrarEquals):
        return ctx.registrar is not None and ctx.registrar == rule.value.strip().lower()
    if isinstance(rule, RegistrarIncludes):
        return ctx.registrar is not None and rule.substr.lower() in ctx.registrar

    raise TypeError(f"Unknown rule type: {type(rule).__name__}")
