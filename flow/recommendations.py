"""Fix suggestions for single findings and grouped recommendations for reports."""

from collections import Counter
from typing import Dict, List, Optional

from contracts import (
    BrokerTransformation,
    ConsumerContract,
    FindingKind,
    FlowFinding,
    KIND_ORDER,
    NestedProperty,
    ProducerContract,
    Recommendation,
    Severity,
)
from config import Settings, settings as default_settings
from extractors.source_text import to_kebab_case


PRODUCER_TEMPLATE = """export const {function_name} = ({bus}, data) => {{
  {bus}.{entry_point}('{event_id}', {{
{properties}
  }});
}};"""

_GROUPS: Dict[FindingKind, Dict[str, object]] = {
    FindingKind.MISSING_PROPERTY: {
        "title": "Missing Property Fix",
        "description": "Add missing properties to producer payloads or broker special cases ({count} instances)",
        "code_suggestion": "Review producer payload objects and the broker's special-cased transformations",
        "priority": Severity.CRITICAL,
    },
    FindingKind.NESTED_MISMATCH: {
        "title": "Nested Property Fix",
        "description": "Fix nested property structure mismatches ({count} instances)",
        "code_suggestion": "Ensure nested objects are properly structured in producer payloads",
        "priority": Severity.ERROR,
    },
    FindingKind.ORPHAN_HANDLER: {
        "title": "Orphan Handler Fix",
        "description": "Create producers for handlers nothing dispatches to ({count} instances)",
        "priority": Severity.WARNING,
    },
    FindingKind.ORPHAN_PRODUCER: {
        "title": "Orphan Producer Review",
        "description": "Add handlers for producers nobody consumes, or remove the producers ({count} instances)",
        "code_suggestion": "Check event ids for typos between producers and handler names",
        "priority": Severity.WARNING,
    },
}

_INFRASTRUCTURE_GROUP = {
    "title": "Review Unanalysed Files",
    "description": "Some files or pairs could not be analysed ({count} instances); results may be incomplete",
    "code_suggestion": "Review the listed files for syntax errors, unreadable content or unusual structure",
}


class RecommendationBuilder:
    """Writes suggested fixes and groups findings into recommendations."""

    def __init__(self, config: Optional[Settings] = None):
        self.settings = config or default_settings

    def missing_property_fix(
        self,
        property_name: str,
        producer: ProducerContract,
        transformation: Optional[BrokerTransformation],
    ) -> str:
        if transformation is not None and transformation.is_special_cased:
            return (
                f"Add '{property_name}' to the special-cased transformation for event "
                f"'{transformation.event_id}' in {self.settings.broker_routine}()"
            )
        return f"Add '{property_name}' to the payload object in producer '{producer.function_name}'"

    def nested_fix(self, nested: NestedProperty, producer: ProducerContract) -> str:
        return (
            f"Ensure '{nested.parent_path}' object contains '{nested.name}' property "
            f"in producer '{producer.function_name}'"
        )

    def orphan_handler_fix(self, consumer: ConsumerContract) -> str:
        return f"Create a producer that starts '{consumer.event_id}' for handler '{consumer.handler_name}'"

    def orphan_producer_fix(self, producer: ProducerContract) -> str:
        return (
            f"Add a handler for '{producer.target_event_id}' or remove producer "
            f"'{producer.function_name}'"
        )

    def infrastructure_fix(self, kind: FindingKind, file_path: str) -> str:
        target = file_path or "the module root"
        if kind == FindingKind.DISCOVERY_FAILURE:
            return f"Check that {target} exists and is readable"
        return f"Review {target}; it could not be analysed"

    def producer_template(self, consumer: ConsumerContract) -> str:
        """Skeleton producer that would satisfy a handler's requirements."""
        names = [p.name for p in consumer.required_properties if not p.is_nested]
        roots = [n.root for n in consumer.nested_properties if n.is_required]
        for name in roots:
            if name not in names:
                names.append(name)
        properties = "\n".join(f"    {name}: data.{name}," for name in names) or "    // no required properties"
        words = to_kebab_case(consumer.event_id).split("-")
        function_name = "start" + "".join(w.capitalize() for w in words if w) + "Flow"
        return PRODUCER_TEMPLATE.format(
            function_name=function_name,
            bus=self.settings.ignored_producer_parameters[0] if self.settings.ignored_producer_parameters else "eventBus",
            entry_point=self.settings.broker_entry_point,
            event_id=consumer.event_id,
            properties=properties,
        )

    def build(
        self,
        findings: List[FlowFinding],
        orphan_consumers: Optional[List[ConsumerContract]] = None,
    ) -> List[Recommendation]:
        """Group findings by kind into one recommendation each."""
        counts = Counter(f.kind for f in findings)
        recommendations: List[Recommendation] = []

        infrastructure = 0
        for kind in sorted(counts, key=lambda k: KIND_ORDER[k]):
            if kind not in _GROUPS:
                infrastructure += counts[kind]
                continue
            group = _GROUPS[kind]
            code_suggestion = group.get("code_suggestion", "")
            if kind == FindingKind.ORPHAN_HANDLER and orphan_consumers:
                code_suggestion = self.producer_template(orphan_consumers[0])
            recommendations.append(Recommendation(
                kind=kind,
                title=group["title"],
                description=group["description"].format(count=counts[kind]),
                code_suggestion=code_suggestion,
                priority=group["priority"],
                count=counts[kind],
            ))

        if infrastructure:
            infrastructure_kinds = [k for k in counts if k not in _GROUPS]
            worst = min(
                (f.severity for f in findings if f.kind in infrastructure_kinds),
                key=_severity_rank,
            )
            recommendations.append(Recommendation(
                kind=min(infrastructure_kinds, key=lambda k: KIND_ORDER[k]),
                title=_INFRASTRUCTURE_GROUP["title"],
                description=_INFRASTRUCTURE_GROUP["description"].format(count=infrastructure),
                code_suggestion=_INFRASTRUCTURE_GROUP["code_suggestion"],
                priority=worst,
                count=infrastructure,
            ))

        return recommendations


def _severity_rank(severity: Severity) -> int:
    return [Severity.CRITICAL, Severity.ERROR, Severity.WARNING].index(severity)
